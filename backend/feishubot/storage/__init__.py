"""Storage module - session persistence and its storage backends."""

from .interface import StorageInterface
from .local_storage import LocalStorage
from .session_store import (
    SessionStore,
    MemorySessionStore,
    LocalSessionStore,
    create_session_store,
)

__all__ = [
    'StorageInterface',
    'LocalStorage',
    'SessionStore',
    'MemorySessionStore',
    'LocalSessionStore',
    'create_session_store',
]
