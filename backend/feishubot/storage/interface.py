"""
Storage Interface - Abstract base class for blob storage backends.
Session persistence goes through this interface so the backing store
(local disk today) can be swapped without touching the session code.
"""

from abc import ABC, abstractmethod
from typing import Optional


class StorageInterface(ABC):
    """
    Contract for key/blob storage used by the file-backed session store.
    """

    @abstractmethod
    async def save(self, path: str, content: bytes | str) -> bool:
        """
        Save content to the specified path.

        Args:
            path: Relative path (e.g., "sessions/om_123.json")
            content: Content to save (bytes or str)

        Returns:
            bool: True if save was successful, False otherwise
        """
        pass

    @abstractmethod
    async def load(self, path: str) -> Optional[bytes]:
        """
        Load content from the specified path.

        Returns:
            Optional[bytes]: File content, or None if the file doesn't exist

        Raises:
            StorageError: If the file exists but cannot be read
        """
        pass

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """
        Delete file at the specified path.

        Returns:
            bool: True if a file was deleted, False otherwise
        """
        pass
