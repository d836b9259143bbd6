"""
Session Store - Owns every Session and serializes read-modify-write per key.

Callers never keep a Session across calls: ``get`` hands out a copy, and
mutations go through ``edit``, which holds the per-key lock while the
session is loaded, changed and written back.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Dict, Optional, Tuple

from pydantic import ValidationError

from ..models.session import AIMode, ChatTurn, PicResolution, Session, SessionMode
from ..exceptions import StorageError
from .interface import StorageInterface

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """
    Base class for session stores.
    Subclasses only implement raw read/write/remove of a Session.
    """

    def __init__(self):
        # key -> (lock, number of tasks holding or waiting on it)
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    @abstractmethod
    async def _read(self, session_key: str) -> Optional[Session]:
        """Return a private copy of the stored session, or None."""
        pass

    @abstractmethod
    async def _write(self, session: Session) -> None:
        pass

    @abstractmethod
    async def _remove(self, session_key: str) -> None:
        pass

    @asynccontextmanager
    async def _locked(self, session_key: str) -> AsyncIterator[None]:
        """Hold the per-key lock. It is dropped once nobody holds or awaits it."""
        lock, users = self._locks.get(session_key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[session_key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[session_key]
            if users == 1:
                del self._locks[session_key]
            else:
                self._locks[session_key] = (lock, users - 1)

    async def _load_or_create(self, session_key: str) -> Session:
        session = await self._read(session_key)
        if session is None:
            logger.debug(f"Creating session {session_key}")
            session = Session(session_key=session_key)
        return session

    @asynccontextmanager
    async def edit(self, session_key: str) -> AsyncIterator[Session]:
        """
        Critical section over one session.

        The yielded session is written back when the block exits normally;
        if the block raises, nothing is written.
        """
        async with self._locked(session_key):
            session = await self._load_or_create(session_key)
            yield session
            session.touch()
            await self._write(session)

    async def get(self, session_key: str) -> Session:
        """Fetch (lazily creating) a session. The result is a detached copy."""
        async with self._locked(session_key):
            session = await self._read(session_key)
            if session is None:
                session = Session(session_key=session_key)
                await self._write(session)
            return session

    async def save(self, session: Session) -> None:
        async with self._locked(session.session_key):
            session.touch()
            await self._write(session.model_copy(deep=True))

    async def clear(self, session_key: str) -> Session:
        """Reset to an empty chat session."""
        async with self.edit(session_key) as session:
            session.reset()
        return session

    async def clear_history(self, session_key: str) -> Session:
        """Drop the history, keep mode and its parameters."""
        async with self.edit(session_key) as session:
            session.clear_history()
        return session

    async def get_mode(self, session_key: str) -> SessionMode:
        return (await self.get(session_key)).mode

    async def set_mode(self, session_key: str, mode: SessionMode) -> None:
        async with self.edit(session_key) as session:
            session.mode = mode

    async def get_pic_resolution(self, session_key: str) -> PicResolution:
        return (await self.get(session_key)).pic_resolution

    async def set_pic_resolution(self, session_key: str, resolution: PicResolution) -> None:
        async with self.edit(session_key) as session:
            session.pic_resolution = resolution

    async def set_ai_mode(self, session_key: str, ai_mode: AIMode) -> None:
        async with self.edit(session_key) as session:
            session.ai_mode = ai_mode

    async def append_turns(self, session_key: str, *turns: ChatTurn) -> None:
        async with self.edit(session_key) as session:
            session.history.extend(turns)

    async def delete(self, session_key: str) -> None:
        async with self._locked(session_key):
            await self._remove(session_key)


class MemorySessionStore(SessionStore):
    """
    Process-local store. Sessions idle for longer than ttl are evicted
    lazily on access and by ``evict_expired``.
    """

    def __init__(self, ttl: Optional[timedelta] = timedelta(hours=12)):
        super().__init__()
        self.ttl = ttl
        self._sessions: Dict[str, Session] = {}

    def _expired(self, session: Session, now: datetime) -> bool:
        return self.ttl is not None and session.updated_at + self.ttl < now

    async def _read(self, session_key: str) -> Optional[Session]:
        session = self._sessions.get(session_key)
        if session is None:
            return None
        if self._expired(session, datetime.now(timezone.utc)):
            logger.debug(f"Session {session_key} expired")
            del self._sessions[session_key]
            return None
        return session.model_copy(deep=True)

    async def _write(self, session: Session) -> None:
        self._sessions[session.session_key] = session.model_copy(deep=True)

    async def _remove(self, session_key: str) -> None:
        self._sessions.pop(session_key, None)

    def evict_expired(self) -> int:
        """Drop expired sessions. Returns the count dropped."""
        now = datetime.now(timezone.utc)
        expired = [key for key, s in self._sessions.items() if self._expired(s, now)]
        for key in expired:
            del self._sessions[key]
        if expired:
            logger.info(f"Evicted {len(expired)} expired sessions")
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)


_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class LocalSessionStore(SessionStore):
    """Stores one JSON document per session through a StorageInterface."""

    def __init__(self, storage: StorageInterface, base_path: str = "sessions"):
        super().__init__()
        self.storage = storage
        self.base_path = base_path

    def _path(self, session_key: str) -> str:
        return f"{self.base_path}/{_UNSAFE_KEY_CHARS.sub('_', session_key)}.json"

    async def _read(self, session_key: str) -> Optional[Session]:
        content = await self.storage.load(self._path(session_key))
        if content is None:
            return None
        try:
            return Session.model_validate_json(content)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable session {session_key}: {e}")
            return None

    async def _write(self, session: Session) -> None:
        path = self._path(session.session_key)
        if not await self.storage.save(path, session.model_dump_json()):
            raise StorageError("save", path)

    async def _remove(self, session_key: str) -> None:
        await self.storage.delete(self._path(session_key))


def create_session_store(
    store_type: str = "memory",
    storage: Optional[StorageInterface] = None,
    ttl_hours: Optional[float] = 12,
) -> SessionStore:
    """
    Create a session store from configuration.

    Args:
        store_type: "memory" or "local"
        storage: Storage backend, required for "local"
        ttl_hours: Idle time before in-memory sessions are evicted (None disables)
    """
    if store_type == "memory":
        ttl = timedelta(hours=ttl_hours) if ttl_hours else None
        return MemorySessionStore(ttl=ttl)
    elif store_type == "local":
        if storage is None:
            raise ValueError("A storage backend is required for the local session store")
        return LocalSessionStore(storage)
    else:
        raise ValueError(f"Unsupported session store: {store_type}")
