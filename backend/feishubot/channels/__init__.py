"""Channels module - chat platform clients."""

from .feishu import FeishuBot

__all__ = ['FeishuBot']
