"""LLM module - provides a unified interface for generative AI providers."""

from .base import LLMProvider, LLMMessage, LLMResponse, Balance
from .openai_provider import OpenAIProvider
from .factory import create_llm_provider

__all__ = [
    'LLMProvider',
    'LLMMessage',
    'LLMResponse',
    'Balance',
    'OpenAIProvider',
    'create_llm_provider',
]
