"""
FeishuGPT Bot - Main FastAPI Application
"""

import asyncio
import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager, suppress

from .config import settings
from .api import feishu_router
from .channels.feishu import FeishuBot
from .core.dispatcher import CardActionDispatcher
from .core.logging_config import setup_logging
from .core.message_handler import MessageHandler
from .core.roles import RoleCatalog
from .llm.factory import create_llm_provider
from .middleware import RequestLoggingMiddleware
from .services.image_jobs import ImageJobRunner
from .services.transcription import TranscriptionService
from .storage.local_storage import LocalStorage
from .storage.session_store import MemorySessionStore, create_session_store

# Logger will be initialized after setup_logging() is called
logger = logging.getLogger(__name__)


def _build_bot():
    """Feishu bot, or None when credentials are missing."""
    if not settings.feishu_configured:
        logger.warning("Feishu credentials not set; webhook endpoints will answer 503")
        return None
    return FeishuBot(
        app_id=settings.feishu_app_id,
        app_secret=settings.feishu_app_secret,
        verification_token=settings.feishu_verification_token,
        encrypt_key=settings.feishu_encrypt_key,
        bot_name=settings.feishu_bot_name,
        timeout=settings.feishu_timeout,
    )


def _build_roles() -> RoleCatalog:
    if not settings.role_list_path:
        return RoleCatalog()
    return RoleCatalog.from_file(settings.role_list_path)


async def _sweep_sessions(store: MemorySessionStore, interval_seconds: float) -> None:
    """Drop expired in-memory sessions until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        store.evict_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    # Startup
    setup_logging(settings)

    bot = _build_bot()
    llm_provider = create_llm_provider(settings)
    if llm_provider is None:
        logger.warning("LLM_API_KEY not set; AI replies are disabled")

    storage = LocalStorage(settings.local_storage_path) if settings.session_store == "local" else None
    store = create_session_store(settings.session_store, storage, settings.session_ttl_hours)

    job_runner = ImageJobRunner(llm_provider, bot, timeout=settings.image_timeout)
    dispatcher = CardActionDispatcher(
        store,
        bot,
        job_runner,
        llm_provider=llm_provider,
        roles=_build_roles(),
    )
    transcription = TranscriptionService(
        api_key=settings.api_key,
        base_url=settings.llm_base_url,
        timeout=settings.llm_timeout,
    )

    app.state.bot = bot
    app.state.store = store
    app.state.job_runner = job_runner
    app.state.dispatcher = dispatcher
    app.state.message_handler = MessageHandler(
        store, bot, dispatcher, llm_provider=llm_provider, transcription=transcription
    )

    sweeper = None
    if isinstance(store, MemorySessionStore) and store.ttl is not None:
        sweeper = asyncio.create_task(_sweep_sessions(store, settings.session_sweep_minutes * 60))

    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Session store: {settings.session_store}")
    logger.info(f"Log level: {settings.log_level.upper()}")
    logger.info(f"Debug mode: {settings.debug}")
    yield
    # Shutdown
    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
    await job_runner.shutdown()
    logger.info(f"Shutting down {settings.app_name}")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Feishu chat bot backed by generative AI",
    lifespan=lifespan
)

# Add request logging middleware
if settings.log_api_requests:
    app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(feishu_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "feishu_configured": settings.feishu_configured,
        "session_store": settings.session_store,
        "version": settings.app_version
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "feishubot.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
