"""Abstract base class for remote similarity indexes.

Every method is a remote-call failure point.  Write-side operations
(``upsert``, ``delete``, ``delete_all``) and ``stats`` never raise: they log
and return ``False`` or zeroed stats so a pipeline step can decide whether
to retry.  ``query`` raises :class:`~ragkb.utils.errors.VectorDatabaseError`
so the retrieval engine can fall back to keyword search.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ragkb.models.retrieval import VectorIndexStats, VectorMatch


# Concrete implementations:
#   ChromaDBIndex   -- local persistent ChromaDB collection
#   PineconeIndex   -- hosted Pinecone index + namespace
# Located in: ragkb/providers/vector_store/
class IVectorIndex(ABC):
    """Contract for the vector index that holds chunk embeddings."""

    @abstractmethod
    async def upsert(self, vector_id: str, vector: list[float], metadata: dict[str, Any]) -> bool:
        """Insert or overwrite one vector.

        Parameters
        ----------
        vector_id:
            Deterministic id, ``chunk_{chunk_id}_{chunk_hash}``.
        vector:
            The embedding.
        metadata:
            Scalar-valued metadata stored beside the vector.

        Returns
        -------
        bool
            ``True`` on success, ``False`` if the backend call failed.
        """

    @abstractmethod
    async def delete(self, vector_ids: list[str]) -> bool:
        """Delete vectors by id; an empty list is a successful no-op."""

    @abstractmethod
    async def delete_all(self) -> bool:
        """Remove every vector this index owns."""

    @abstractmethod
    async def query(
        self, vector: list[float], limit: int, threshold: float = 0.0
    ) -> list[VectorMatch]:
        """Return up to *limit* matches scoring ``>= threshold``, best first.

        Raises
        ------
        ragkb.utils.errors.VectorDatabaseError
            If the backend cannot be queried.
        """

    @abstractmethod
    async def stats(self) -> VectorIndexStats:
        """Return vector count and dimensionality (zeros on failure)."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"chromadb"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the index is reachable."""
