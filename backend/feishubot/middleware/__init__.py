"""Middleware module."""

from .logging_middleware import RequestLoggingMiddleware

__all__ = ['RequestLoggingMiddleware']
