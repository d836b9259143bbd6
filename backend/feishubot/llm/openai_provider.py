"""
OpenAI LLM Provider.
Chat completions and image endpoints go through the official SDK;
the billing endpoint, which the SDK does not cover, goes through httpx.
"""

import base64
import logging
import time
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

import httpx
import openai
from openai import AsyncOpenAI

from .base import LLMProvider, LLMMessage, LLMResponse, Balance
from ..exceptions import BackendError

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """
    Provider for the OpenAI API or any OpenAI-compatible gateway.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-3.5-turbo",
        base_url: str = "https://api.openai.com/v1",
        image_model: str = "dall-e-2",
        balance_url: str = "https://api.openai.com/dashboard/billing/credit_grants",
        default_temperature: float = 1.0,
        default_max_tokens: int = 2048,
        timeout: float = 120.0,
        image_timeout: float = 180.0,
    ):
        super().__init__(api_key, model, base_url, default_temperature, default_max_tokens)
        self.image_model = image_model
        self.balance_url = balance_url
        self.timeout = timeout
        self.image_timeout = image_timeout
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    async def chat_completion(
        self,
        messages: List[LLMMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> LLMResponse:
        """Send request to the Chat Completions endpoint."""
        start_time = time.time()
        model = kwargs.get("model", self.model)
        temperature = temperature if temperature is not None else self.default_temperature

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                f"LLM API call starting: provider=openai, model={model}, "
                f"temperature={temperature}, {len(messages)} messages"
            )

        try:
            resp = await self.client.chat.completions.create(
                model=model,
                messages=self._format_messages(messages),
                temperature=temperature,
                max_tokens=max_tokens or self.default_max_tokens,
            )
        except openai.OpenAIError as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"LLM API call failed: {str(e)}",
                exc_info=True,
                extra={"extra_fields": {
                    "provider": "openai",
                    "model": model,
                    "duration_ms": round(duration_ms, 2),
                    "error": str(e),
                }}
            )
            raise BackendError("chat_completion", str(e)) from e

        usage = resp.usage.model_dump() if resp.usage else {}
        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "LLM API call completed",
            extra={"extra_fields": {
                "provider": "openai",
                "model": resp.model,
                "prompt_tokens": usage.get("prompt_tokens", 0),
                "completion_tokens": usage.get("completion_tokens", 0),
                "total_tokens": usage.get("total_tokens", 0),
                "duration_ms": round(duration_ms, 2),
            }}
        )

        return LLMResponse(
            content=resp.choices[0].message.content or "",
            model=resp.model,
            usage=usage,
            raw=resp.model_dump(),
        )

    @staticmethod
    def _decode_image(resp, operation: str) -> bytes:
        if not resp.data or not resp.data[0].b64_json:
            raise BackendError(operation, "no image in response")
        return base64.b64decode(resp.data[0].b64_json)

    async def generate_image(self, prompt: str, size: str) -> bytes:
        logger.info(f"Image generation starting: size={size}, prompt={prompt[:100]}")
        try:
            resp = await self.client.images.generate(
                model=self.image_model,
                prompt=prompt,
                n=1,
                size=size,
                response_format="b64_json",
                timeout=self.image_timeout,
            )
        except openai.OpenAIError as e:
            logger.error(f"Image generation failed: {e}", exc_info=True)
            raise BackendError("generate_image", str(e)) from e
        return self._decode_image(resp, "generate_image")

    async def generate_image_variant(self, image: bytes, size: str) -> bytes:
        logger.info(f"Image variation starting: size={size}, bytes={len(image)}")
        try:
            resp = await self.client.images.create_variation(
                image=("image.png", image, "image/png"),
                n=1,
                size=size,
                response_format="b64_json",
                timeout=self.image_timeout,
            )
        except openai.OpenAIError as e:
            logger.error(f"Image variation failed: {e}", exc_info=True)
            raise BackendError("generate_image_variant", str(e)) from e
        return self._decode_image(resp, "generate_image_variant")

    async def get_balance(self) -> Balance:
        """Query the credit grants endpoint."""
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(self.balance_url, headers=headers)
                resp.raise_for_status()
                data: Dict[str, Any] = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Balance query failed: {e}")
            raise BackendError("get_balance", str(e)) from e

        try:
            grants = (data.get("grants") or {}).get("data") or [{}]
            return Balance(
                total_granted=float(data.get("total_granted") or 0),
                total_used=float(data.get("total_used") or 0),
                total_available=float(data.get("total_available") or 0),
                effective_at=_from_timestamp(grants[0].get("effective_at")),
                expires_at=_from_timestamp(grants[0].get("expires_at")),
            )
        except (TypeError, ValueError, AttributeError, OverflowError, OSError) as e:
            logger.error(f"Unexpected balance response: {e}")
            raise BackendError("get_balance", f"unexpected response: {e}") from e


def _from_timestamp(value) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(float(value), tz=timezone.utc)
