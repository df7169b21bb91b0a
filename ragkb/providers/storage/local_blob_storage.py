"""Local-filesystem blob storage for uploaded documents.

Files live under a root directory at content-addressed paths, so the same
upload always lands at the same location.  Blocking file I/O runs through
``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
from pathlib import Path, PurePosixPath

import structlog

from ragkb.interfaces.blob_storage import IBlobStorage
from ragkb.utils.errors import InvalidInputError

logger = structlog.get_logger(logger_name=__name__)


def content_addressed_path(file_hash: str, filename: str | None = None) -> str:
    """Return ``documents/{hash[:2]}/{hash}{suffix}`` for a document's bytes."""
    suffix = PurePosixPath(filename).suffix.lower() if filename else ""
    return f"documents/{file_hash[:2]}/{file_hash}{suffix}"


class LocalBlobStorage(IBlobStorage):
    """Stores blobs as files below *root*; handles are root-relative paths."""

    def __init__(self, root: str | Path = "data/storage") -> None:
        self._root = Path(root).resolve()

    async def store(self, data: bytes, path: str) -> str:
        target = self._resolve(path)
        await asyncio.to_thread(self._write, target, data)
        logger.debug("blob_stored", handle=path, bytes=len(data))
        return path

    async def read(self, handle: str) -> bytes:
        return await asyncio.to_thread(self._resolve(handle).read_bytes)

    async def delete(self, handle: str) -> None:
        target = self._resolve(handle)
        await asyncio.to_thread(target.unlink, missing_ok=True)
        logger.debug("blob_deleted", handle=handle)

    async def exists(self, handle: str) -> bool:
        return await asyncio.to_thread(self._resolve(handle).is_file)

    def _resolve(self, handle: str) -> Path:
        target = (self._root / handle).resolve()
        if not target.is_relative_to(self._root):
            raise InvalidInputError(message=f"Blob path escapes storage root: {handle}")
        return target

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
