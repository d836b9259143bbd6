"""
Local Filesystem Storage Implementation.
Holds one document per session under a base directory.
"""

import logging
import os
import aiofiles
from pathlib import Path
from typing import Optional
from .interface import StorageInterface
from ..exceptions import StorageError

logger = logging.getLogger(__name__)


class LocalStorage(StorageInterface):
    """
    Local filesystem storage.
    Writes go to a temporary sibling first and are moved into place, so a
    crash mid-write never leaves a truncated session document behind.
    """

    def __init__(self, base_dir: str = "./data"):
        """
        Args:
            base_dir: Directory every relative path is resolved against
        """
        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        full_path = (self.base_dir / path).resolve()
        if self.base_dir not in full_path.parents:
            raise ValueError(f"Invalid path: {path} - path traversal detected")
        return full_path

    async def save(self, path: str, content: bytes | str) -> bool:
        try:
            full_path = self._resolve(path)
            full_path.parent.mkdir(parents=True, exist_ok=True)
            data = content.encode("utf-8") if isinstance(content, str) else content

            tmp_path = full_path.with_name(full_path.name + ".tmp")
            async with aiofiles.open(tmp_path, 'wb') as f:
                await f.write(data)
            os.replace(tmp_path, full_path)
            return True
        except (OSError, ValueError) as e:
            logger.error(f"Error saving {path}: {e}")
            return False

    async def load(self, path: str) -> Optional[bytes]:
        try:
            full_path = self._resolve(path)
            if not full_path.is_file():
                return None
            async with aiofiles.open(full_path, 'rb') as f:
                return await f.read()
        except ValueError as e:
            logger.error(f"Error loading {path}: {e}")
            return None
        except OSError as e:
            logger.error(f"Error loading {path}: {e}")
            raise StorageError("load", path, str(e)) from e

    async def delete(self, path: str) -> bool:
        try:
            full_path = self._resolve(path)
            if not full_path.is_file():
                return False
            full_path.unlink()
            return True
        except (OSError, ValueError) as e:
            logger.error(f"Error deleting {path}: {e}")
            return False
