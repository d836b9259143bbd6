"""
LLM Provider Factory - Builds the provider described by the application settings.
"""

from typing import Any, Dict, Optional

from ..config.settings import Settings, settings
from .base import LLMProvider
from .openai_provider import OpenAIProvider


def create_llm_provider(config: Optional[Settings] = None) -> Optional[LLMProvider]:
    """
    Create the configured LLM provider.

    Only OpenAI-compatible backends are supported; point ``llm_base_url`` at a
    gateway to use another vendor. Unset model names and URLs fall back to the
    provider defaults.

    Args:
        config: Settings to read; the process-wide settings when omitted

    Returns:
        The provider, or None when no API key is configured

    Raises:
        ValueError: If ``llm_provider`` names an unsupported backend
    """
    config = config or settings
    if not config.api_key:
        return None
    if config.llm_provider != "openai":
        raise ValueError(f"Unsupported LLM provider: {config.llm_provider}")

    params: Dict[str, Any] = {
        "api_key": config.api_key,
        "timeout": config.llm_timeout,
        "image_timeout": config.image_timeout,
    }
    optional = {
        "model": config.llm_model,
        "base_url": config.llm_base_url,
        "image_model": config.llm_image_model,
    }
    params.update({name: value for name, value in optional.items() if value})
    return OpenAIProvider(**params)
