"""
LLM Provider Base - Abstract base for generative AI backends.
Covers text completion, image generation/variation and balance queries.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field


@dataclass
class LLMMessage:
    """A message in a conversation."""
    role: str  # "system", "user", "assistant"
    content: str

    @staticmethod
    def text(role: str, text: str) -> "LLMMessage":
        """Create a text-only message."""
        return LLMMessage(role=role, content=text)


@dataclass
class LLMResponse:
    """Response from an LLM API call."""
    content: str
    model: str = ""
    usage: Dict[str, int] = field(default_factory=dict)
    raw: Optional[Dict[str, Any]] = None


@dataclass
class Balance:
    """Credit grant summary of the API account, in USD."""
    total_granted: float
    total_used: float
    total_available: float
    effective_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class LLMProvider(ABC):
    """
    Abstract base class for generative AI providers.
    Every method raises BackendError on failure, timeouts included.
    """

    def __init__(self, api_key: str, model: str, base_url: Optional[str] = None,
                 default_temperature: float = 1.0, default_max_tokens: int = 2048):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.default_temperature = default_temperature
        self.default_max_tokens = default_max_tokens

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[LLMMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: Conversation, system prompt first
            temperature: Sampling temperature override
            max_tokens: Max tokens override

        Returns:
            LLMResponse with the generated content
        """
        pass

    @abstractmethod
    async def generate_image(self, prompt: str, size: str) -> bytes:
        """
        Generate one image from a prompt.

        Args:
            prompt: Image description
            size: "256x256", "512x512" or "1024x1024"

        Returns:
            PNG image bytes
        """
        pass

    @abstractmethod
    async def generate_image_variant(self, image: bytes, size: str) -> bytes:
        """Generate one variation of an existing image. Returns PNG bytes."""
        pass

    @abstractmethod
    async def get_balance(self) -> Balance:
        """Query the account's remaining credit."""
        pass

    def _format_messages(self, messages: List[LLMMessage]) -> List[Dict[str, Any]]:
        """Convert LLMMessage list to API-compatible format."""
        return [{"role": m.role, "content": m.content} for m in messages]
