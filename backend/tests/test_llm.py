"""
Unit tests for the LLM module.
Tests LLMMessage, LLMResponse, the OpenAI provider, and factory.
"""

import base64
import pytest
import httpx
import openai
from unittest.mock import AsyncMock, patch, MagicMock

from feishubot.config.settings import Settings
from feishubot.exceptions import BackendError
from feishubot.llm.base import LLMMessage, LLMResponse
from feishubot.llm.openai_provider import OpenAIProvider
from feishubot.llm.factory import create_llm_provider


def _connection_error():
    return openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1"))


class TestLLMMessage:
    """Tests for LLMMessage dataclass."""

    def test_text_message(self):
        msg = LLMMessage.text("user", "Hello")
        assert msg.role == "user"
        assert msg.content == "Hello"

    def test_system_message(self):
        msg = LLMMessage.text("system", "You are a helpful assistant")
        assert msg.role == "system"


class TestLLMResponse:
    """Tests for LLMResponse dataclass."""

    def test_basic_response(self):
        resp = LLMResponse(content="Hello!", model="gpt-4")
        assert resp.content == "Hello!"
        assert resp.usage == {}
        assert resp.raw is None


class TestOpenAIProvider:
    """Tests for the OpenAI-compatible provider."""

    def test_init_defaults(self):
        provider = OpenAIProvider(api_key="test-key")
        assert provider.api_key == "test-key"
        assert provider.model == "gpt-3.5-turbo"
        assert provider.base_url == "https://api.openai.com/v1"
        assert provider.image_model == "dall-e-2"

    def test_format_messages(self):
        provider = OpenAIProvider(api_key="test")
        messages = [
            LLMMessage.text("system", "sys prompt"),
            LLMMessage.text("user", "hello")
        ]
        formatted = provider._format_messages(messages)
        assert formatted == [
            {"role": "system", "content": "sys prompt"},
            {"role": "user", "content": "hello"},
        ]

    @pytest.mark.asyncio
    async def test_chat_completion_success(self):
        provider = OpenAIProvider(api_key="test-key")
        mock_resp = MagicMock()
        mock_resp.model = "gpt-3.5-turbo"
        mock_resp.choices = [MagicMock()]
        mock_resp.choices[0].message.content = "Test response"
        mock_resp.usage.model_dump.return_value = {"prompt_tokens": 10, "completion_tokens": 5}
        mock_resp.model_dump.return_value = {}
        provider.client = MagicMock()
        provider.client.chat.completions.create = AsyncMock(return_value=mock_resp)

        result = await provider.chat_completion([LLMMessage.text("user", "Hello")], temperature=0.2)

        assert result.content == "Test response"
        assert result.usage["prompt_tokens"] == 10
        kwargs = provider.client.chat.completions.create.call_args.kwargs
        assert kwargs["temperature"] == 0.2
        assert kwargs["messages"] == [{"role": "user", "content": "Hello"}]

    @pytest.mark.asyncio
    async def test_chat_completion_error_raises_backend_error(self):
        provider = OpenAIProvider(api_key="test-key")
        provider.client = MagicMock()
        provider.client.chat.completions.create = AsyncMock(side_effect=_connection_error())

        with pytest.raises(BackendError):
            await provider.chat_completion([LLMMessage.text("user", "Hello")])

    @pytest.mark.asyncio
    async def test_generate_image_decodes_b64(self):
        provider = OpenAIProvider(api_key="test-key")
        image_resp = MagicMock()
        image_resp.data = [MagicMock(b64_json=base64.b64encode(b"png").decode())]
        provider.client = MagicMock()
        provider.client.images.generate = AsyncMock(return_value=image_resp)

        assert await provider.generate_image("a cat", "512x512") == b"png"
        assert provider.client.images.generate.call_args.kwargs["size"] == "512x512"

    @pytest.mark.asyncio
    async def test_generate_image_without_data(self):
        provider = OpenAIProvider(api_key="test-key")
        provider.client = MagicMock()
        provider.client.images.generate = AsyncMock(return_value=MagicMock(data=[]))

        with pytest.raises(BackendError):
            await provider.generate_image("a cat", "256x256")

    @pytest.mark.asyncio
    async def test_generate_image_variant_error(self):
        provider = OpenAIProvider(api_key="test-key")
        provider.client = MagicMock()
        provider.client.images.create_variation = AsyncMock(side_effect=_connection_error())

        with pytest.raises(BackendError):
            await provider.generate_image_variant(b"img", "256x256")

    @pytest.mark.asyncio
    async def test_get_balance(self):
        provider = OpenAIProvider(api_key="sk-test")
        mock_response = MagicMock()
        mock_response.json.return_value = {
            "total_granted": 18,
            "total_used": 2.5,
            "total_available": 15.5,
            "grants": {"data": [{"effective_at": 1672531200, "expires_at": 1688169600}]},
        }
        mock_response.raise_for_status = MagicMock()

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.get.return_value = mock_response
            mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
            mock_instance.__aexit__ = AsyncMock(return_value=False)
            mock_client.return_value = mock_instance

            balance = await provider.get_balance()

        assert balance.total_available == 15.5
        assert balance.effective_at.year == 2023
        headers = mock_instance.get.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer sk-test"

    @pytest.mark.asyncio
    async def test_get_balance_http_error(self):
        provider = OpenAIProvider(api_key="sk-test")

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.get.side_effect = httpx.ConnectError("refused")
            mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
            mock_instance.__aexit__ = AsyncMock(return_value=False)
            mock_client.return_value = mock_instance

            with pytest.raises(BackendError):
                await provider.get_balance()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"total_granted": "n/a"},
        {"total_granted": 18, "grants": ["not-a-dict"]},
        {"grants": {"data": [{"effective_at": "soon"}]}},
        ["not", "an", "object"],
    ])
    async def test_get_balance_malformed_response(self, payload):
        provider = OpenAIProvider(api_key="sk-test")
        mock_response = MagicMock()
        mock_response.json.return_value = payload
        mock_response.raise_for_status = MagicMock()

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.get.return_value = mock_response
            mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
            mock_instance.__aexit__ = AsyncMock(return_value=False)
            mock_client.return_value = mock_instance

            with pytest.raises(BackendError, match="unexpected response"):
                await provider.get_balance()

    @pytest.mark.asyncio
    async def test_get_balance_null_totals_default_to_zero(self):
        provider = OpenAIProvider(api_key="sk-test")
        mock_response = MagicMock()
        mock_response.json.return_value = {"total_granted": None, "grants": None}
        mock_response.raise_for_status = MagicMock()

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.get.return_value = mock_response
            mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
            mock_instance.__aexit__ = AsyncMock(return_value=False)
            mock_client.return_value = mock_instance

            balance = await provider.get_balance()

        assert balance.total_granted == 0.0
        assert balance.effective_at is None


class TestFactory:
    """Tests for create_llm_provider."""

    def test_no_api_key_returns_none(self):
        assert create_llm_provider(Settings(llm_api_key="", openai_api_key="")) is None

    def test_openai(self):
        provider = create_llm_provider(Settings(
            llm_api_key="key", llm_model="gpt-4o", llm_timeout=30.0, image_timeout=90.0
        ))
        assert isinstance(provider, OpenAIProvider)
        assert provider.model == "gpt-4o"
        assert provider.image_model == "dall-e-2"
        assert provider.timeout == 30.0
        assert provider.image_timeout == 90.0

    def test_legacy_openai_key(self):
        provider = create_llm_provider(Settings(llm_api_key="", openai_api_key="sk-legacy"))
        assert provider.api_key == "sk-legacy"

    def test_custom_base_url(self):
        provider = create_llm_provider(Settings(
            llm_api_key="key", llm_base_url="https://gateway.example.com/v1"
        ))
        assert provider.base_url == "https://gateway.example.com/v1"

    def test_unsupported_provider(self):
        with pytest.raises(ValueError, match="Unsupported"):
            create_llm_provider(Settings(llm_provider="unknown", llm_api_key="key"))
