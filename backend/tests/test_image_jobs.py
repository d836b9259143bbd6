"""
Unit tests for the async image job runner.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock

from feishubot.exceptions import BackendError
from feishubot.models.session import PicResolution
from feishubot.services.image_jobs import ImageJob, ImageJobRunner


def _job(**kwargs):
    params = {"session_key": "s1", "message_id": "om_1", "resolution": PicResolution.RES_512}
    params.update(kwargs)
    return ImageJob(**params)


class TestImageJob:

    def test_prompt_job_is_not_variant(self):
        assert _job(prompt="a cat").is_variant is False

    def test_source_job_is_variant(self):
        assert _job(source_image_key="img_1").is_variant is True

    def test_job_ids_are_unique(self):
        assert _job(prompt="a").job_id != _job(prompt="a").job_id


class TestImageJobRunner:

    @pytest.mark.asyncio
    async def test_success_calls_back_once_with_image_key(self, llm_provider, bot):
        runner = ImageJobRunner(llm_provider, bot, timeout=5)
        on_complete = AsyncMock()

        task = runner.spawn(_job(prompt="a cat"), on_complete)
        await task

        on_complete.assert_awaited_once()
        outcome = on_complete.call_args[0][0]
        assert outcome.ok
        assert outcome.image_key == "img_uploaded"
        llm_provider.generate_image.assert_awaited_once_with("a cat", "512x512")
        bot.upload_image.assert_awaited_once_with(b"png-bytes")

    @pytest.mark.asyncio
    async def test_uses_image_sent_by_user(self, llm_provider, bot):
        runner = ImageJobRunner(llm_provider, bot, timeout=5)
        on_complete = AsyncMock()

        await runner.spawn(_job(source_image=b"user-photo"), on_complete)

        llm_provider.generate_image_variant.assert_awaited_once_with(b"user-photo", "512x512")
        bot.download_image_by_key.assert_not_called()
        assert on_complete.call_args[0][0].ok

    @pytest.mark.asyncio
    async def test_backend_failure_calls_back_once_with_error(self, llm_provider, bot):
        llm_provider.generate_image.side_effect = BackendError("generate_image", "rejected")
        runner = ImageJobRunner(llm_provider, bot, timeout=5)
        on_complete = AsyncMock()

        await runner.spawn(_job(prompt="a cat"), on_complete)

        on_complete.assert_awaited_once()
        outcome = on_complete.call_args[0][0]
        assert not outcome.ok
        assert isinstance(outcome.error, BackendError)
        bot.upload_image.assert_not_called()

    @pytest.mark.asyncio
    async def test_upload_failure_calls_back_once(self, llm_provider, bot):
        bot.upload_image.side_effect = RuntimeError("network down")
        runner = ImageJobRunner(llm_provider, bot, timeout=5)
        on_complete = AsyncMock()

        await runner.spawn(_job(prompt="a cat"), on_complete)

        on_complete.assert_awaited_once()
        assert not on_complete.call_args[0][0].ok

    @pytest.mark.asyncio
    async def test_timeout_calls_back_once_with_backend_error(self, llm_provider, bot):
        async def slow(prompt, size):
            await asyncio.sleep(10)
            return b"late"

        llm_provider.generate_image.side_effect = slow
        runner = ImageJobRunner(llm_provider, bot, timeout=0.05)
        on_complete = AsyncMock()

        await runner.spawn(_job(prompt="a cat"), on_complete)

        on_complete.assert_awaited_once()
        error = on_complete.call_args[0][0].error
        assert isinstance(error, BackendError)
        assert "timed out" in str(error)

    @pytest.mark.asyncio
    async def test_missing_provider_fails_job(self, bot):
        runner = ImageJobRunner(None, bot, timeout=5)
        on_complete = AsyncMock()

        await runner.spawn(_job(prompt="a cat"), on_complete)

        assert isinstance(on_complete.call_args[0][0].error, BackendError)

    @pytest.mark.asyncio
    async def test_callback_error_is_contained(self, llm_provider, bot):
        runner = ImageJobRunner(llm_provider, bot, timeout=5)
        on_complete = AsyncMock(side_effect=RuntimeError("reply failed"))

        await runner.spawn(_job(prompt="a cat"), on_complete)

        on_complete.assert_awaited_once()
        assert runner.in_flight == 0

    @pytest.mark.asyncio
    async def test_cancelled_job_still_calls_back(self, llm_provider, bot):
        started = asyncio.Event()

        async def hang(prompt, size):
            started.set()
            await asyncio.sleep(10)

        llm_provider.generate_image.side_effect = hang
        runner = ImageJobRunner(llm_provider, bot, timeout=30)
        on_complete = AsyncMock()

        task = runner.spawn(_job(prompt="a cat"), on_complete)
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        on_complete.assert_awaited_once()
        assert not on_complete.call_args[0][0].ok

    @pytest.mark.asyncio
    async def test_job_outlives_spawning_request(self, llm_provider, bot):
        runner = ImageJobRunner(llm_provider, bot, timeout=5)
        on_complete = AsyncMock()

        async def request():
            runner.spawn(_job(prompt="a cat"), on_complete)

        request_task = asyncio.create_task(request())
        await request_task
        await runner.shutdown(timeout=5)

        on_complete.assert_awaited_once()
        assert on_complete.call_args[0][0].ok

    @pytest.mark.asyncio
    async def test_shutdown_cancels_stragglers(self, llm_provider, bot):
        async def hang(prompt, size):
            await asyncio.sleep(10)

        llm_provider.generate_image.side_effect = hang
        runner = ImageJobRunner(llm_provider, bot, timeout=30)
        on_complete = AsyncMock()

        runner.spawn(_job(prompt="a cat"), on_complete)
        await asyncio.sleep(0)
        await runner.shutdown(timeout=0.05)

        on_complete.assert_awaited_once()
        assert runner.in_flight == 0
