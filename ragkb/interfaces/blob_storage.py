"""Abstract base class for uploaded-file storage."""

from __future__ import annotations

from abc import ABC, abstractmethod


class IBlobStorage(ABC):
    """Contract for persisting the raw bytes of uploaded documents.

    Handles are opaque strings returned by :meth:`store` and saved on the
    Document as ``source_path``.
    """

    @abstractmethod
    async def store(self, data: bytes, path: str) -> str:
        """Write *data* under *path* and return a handle for later access."""

    @abstractmethod
    async def read(self, handle: str) -> bytes:
        """Return the bytes stored under *handle*.

        Raises
        ------
        FileNotFoundError
            If nothing is stored under *handle*.
        """

    @abstractmethod
    async def delete(self, handle: str) -> None:
        """Remove the blob; a missing blob is a no-op."""

    @abstractmethod
    async def exists(self, handle: str) -> bool:
        """Return ``True`` if *handle* refers to a stored blob."""
