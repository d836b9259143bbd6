"""
Async Image Job Runner - Image generation outside the inbound request.

Jobs run as tasks owned by the runner, not by the request that spawned
them, so a cancelled or timed-out webhook request never cancels a job.
Every job ends with exactly one call to its completion callback, carrying
either the uploaded image key or the error.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Set

from ..exceptions import BackendError
from ..llm.base import LLMProvider
from ..models.card_action import ChatScope
from ..models.session import PicResolution

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageJob:
    """
    One image to generate. Exactly one of prompt, source_image_key and
    source_image is set.
    """
    session_key: str
    message_id: str  # message the result is replied to
    resolution: PicResolution
    prompt: Optional[str] = None
    source_image_key: Optional[str] = None  # image the bot uploaded earlier
    source_image: Optional[bytes] = field(default=None, repr=False)  # image a user sent
    chat_scope: ChatScope = ChatScope.PERSONAL
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def is_variant(self) -> bool:
        return self.prompt is None


@dataclass
class ImageJobOutcome:
    job: ImageJob
    image_key: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.image_key is not None


CompletionCallback = Callable[[ImageJobOutcome], Awaitable[None]]


class ImageJobRunner:
    """
    Runs image jobs as detached asyncio tasks.

    Args:
        llm_provider: Backend that generates images
        uploader: Platform client with ``upload_image`` and ``download_image_by_key``
        timeout: Seconds allowed for generate + upload of one job
    """

    def __init__(self, llm_provider: Optional[LLMProvider], uploader, timeout: float = 180.0):
        self.llm_provider = llm_provider
        self.uploader = uploader
        self.timeout = timeout
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def spawn(self, job: ImageJob, on_complete: CompletionCallback) -> asyncio.Task:
        """
        Start a job. Returns immediately; on_complete is awaited once when
        the job finishes, successfully or not.
        """
        task = asyncio.create_task(self._run(job, on_complete), name=f"image-job-{job.job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(
            f"Image job {job.job_id} spawned",
            extra={"extra_fields": {
                "job_id": job.job_id,
                "session_key": job.session_key,
                "variant": job.is_variant,
                "resolution": job.resolution.value,
            }}
        )
        return task

    async def _produce(self, job: ImageJob) -> str:
        if self.llm_provider is None:
            raise BackendError("image_job", "LLM provider not configured")

        if job.prompt is not None:
            image = await self.llm_provider.generate_image(job.prompt, job.resolution.value)
        else:
            source = job.source_image
            if source is None:
                source = await self.uploader.download_image_by_key(job.source_image_key)
            image = await self.llm_provider.generate_image_variant(source, job.resolution.value)

        return await self.uploader.upload_image(image)

    async def _run(self, job: ImageJob, on_complete: CompletionCallback) -> None:
        start_time = time.time()
        outcome = ImageJobOutcome(job=job)
        cancelled = False
        try:
            outcome.image_key = await asyncio.wait_for(self._produce(job), timeout=self.timeout)
        except asyncio.TimeoutError:
            outcome.error = BackendError("image_job", f"timed out after {self.timeout}s")
        except asyncio.CancelledError as e:
            outcome.error = e
            cancelled = True
        except Exception as e:
            outcome.error = e

        duration_ms = (time.time() - start_time) * 1000
        if outcome.ok:
            logger.info(
                f"Image job {job.job_id} completed in {duration_ms:.0f}ms",
                extra={"extra_fields": {"job_id": job.job_id, "duration_ms": round(duration_ms, 2)}}
            )
        else:
            logger.error(
                f"Image job {job.job_id} failed: {outcome.error!r}",
                extra={"extra_fields": {"job_id": job.job_id, "error": str(outcome.error)}}
            )

        try:
            await on_complete(outcome)
        except Exception:
            logger.exception(f"Image job {job.job_id}: delivering the result failed")

        if cancelled:
            raise asyncio.CancelledError()

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Wait for in-flight jobs; cancel the ones still running after timeout."""
        if not self._tasks:
            return
        pending = set(self._tasks)
        logger.info(f"Waiting for {len(pending)} image jobs")
        done, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
