"""
Shared test fixtures and configuration.
"""

import pytest
import os
from unittest.mock import AsyncMock, MagicMock

# Set test environment variables before importing app modules
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOCAL_STORAGE_PATH", "/tmp/feishubot_test_data")
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("LOG_API_REQUESTS", "false")
os.environ.setdefault("FEISHU_APP_ID", "")
os.environ.setdefault("FEISHU_APP_SECRET", "")
os.environ.setdefault("LLM_API_KEY", "")
os.environ.setdefault("OPENAI_API_KEY", "")

from feishubot.core.dispatcher import CardActionDispatcher  # noqa: E402
from feishubot.core.roles import RoleCatalog  # noqa: E402
from feishubot.services.image_jobs import ImageJobRunner  # noqa: E402
from feishubot.storage.session_store import MemorySessionStore  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def bot():
    """Feishu client double recording every outbound call."""
    bot = MagicMock()
    bot.reply_text = AsyncMock(return_value={"code": 0})
    bot.reply_card = AsyncMock(return_value={"code": 0})
    bot.upload_image = AsyncMock(return_value="img_uploaded")
    bot.download_image = AsyncMock(return_value=b"source-image")
    bot.download_image_by_key = AsyncMock(return_value=b"source-image")
    bot.download_audio = AsyncMock(return_value=b"audio")
    bot.is_mentioned = MagicMock(return_value=True)
    return bot


@pytest.fixture
def llm_provider():
    provider = MagicMock()
    provider.generate_image = AsyncMock(return_value=b"png-bytes")
    provider.generate_image_variant = AsyncMock(return_value=b"png-variant")
    provider.chat_completion = AsyncMock()
    provider.get_balance = AsyncMock()
    return provider


@pytest.fixture
def job_runner(llm_provider, bot):
    return ImageJobRunner(llm_provider, bot, timeout=5)


@pytest.fixture
def dispatcher(store, bot, job_runner, llm_provider):
    return CardActionDispatcher(store, bot, job_runner, llm_provider=llm_provider, roles=RoleCatalog())
