"""
Blob storage for uploaded media.

Blobs are addressed by the same relative paths embedded in content
(``/uploads/<name>``). ``LocalBlobStore`` keeps them in the uploads
directory on disk.
"""

import logging
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import List

logger = logging.getLogger(__name__)

UPLOADS_URL_PREFIX = "/uploads/"
TRASH_DIR_NAME = "trash"


class BlobStorageError(Exception):
    """Base exception for blob storage errors."""
    pass


@dataclass
class StoredBlob:
    path: str
    size: int


class BlobStore(ABC):
    """Read/write access to named byte blobs."""

    @abstractmethod
    def read_blob(self, path: str) -> bytes:
        """Return the bytes stored under ``path``."""

    @abstractmethod
    def write_blob(self, path: str, data: bytes) -> None:
        """Store ``data`` under ``path``, replacing any existing blob."""

    @abstractmethod
    def list_blobs(self) -> List[StoredBlob]:
        """List top-level stored blobs."""

    @abstractmethod
    def move_to_trash(self, path: str) -> int:
        """Move a blob out of the live set. Returns its size in bytes."""


class LocalBlobStore(BlobStore):
    """
    Blob store backed by the uploads directory.

    ``/uploads/a.png`` maps to ``<uploads_dir>/a.png``. Paths that would
    escape the uploads directory are rejected.
    """

    def __init__(self, uploads_dir: Path = Path("public/uploads")):
        self.uploads_dir = Path(uploads_dir)
        self.trash_dir = self.uploads_dir / TRASH_DIR_NAME
        self.uploads_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Blob storage initialized: {self.uploads_dir}")

    def _resolve(self, path: str) -> Path:
        relative = path[len(UPLOADS_URL_PREFIX):] if path.startswith(UPLOADS_URL_PREFIX) else path.lstrip("/")
        parts = PurePosixPath(relative).parts
        if not parts or any(part in ("..", "") for part in parts):
            raise BlobStorageError(f"Invalid blob path: {path}")
        return self.uploads_dir.joinpath(*parts)

    def read_blob(self, path: str) -> bytes:
        file_path = self._resolve(path)
        try:
            return file_path.read_bytes()
        except OSError as e:
            raise BlobStorageError(f"Failed to read blob {path}: {e}") from e

    def write_blob(self, path: str, data: bytes) -> None:
        file_path = self._resolve(path)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(data)
        except OSError as e:
            raise BlobStorageError(f"Failed to write blob {path}: {e}") from e
        logger.debug(f"Wrote blob {path} ({len(data)} bytes)")

    def list_blobs(self) -> List[StoredBlob]:
        blobs = []
        for file_path in sorted(self.uploads_dir.iterdir()):
            if not file_path.is_file():
                continue
            blobs.append(StoredBlob(
                path=f"{UPLOADS_URL_PREFIX}{file_path.name}",
                size=file_path.stat().st_size,
            ))
        return blobs

    def move_to_trash(self, path: str) -> int:
        file_path = self._resolve(path)
        self.trash_dir.mkdir(parents=True, exist_ok=True)
        try:
            size = file_path.stat().st_size
            shutil.move(str(file_path), str(self.trash_dir / file_path.name))
        except OSError as e:
            raise BlobStorageError(f"Failed to move blob {path} to trash: {e}") from e
        logger.debug(f"Moved blob {path} to trash")
        return size
