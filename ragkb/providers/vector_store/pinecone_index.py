"""Pinecone vector index adapter.

Wraps the synchronous ``pinecone`` client to implement
:class:`IVectorIndex`.  Every SDK call runs through ``asyncio.to_thread``
so network latency never blocks the event loop.  All vectors live in one
namespace so :meth:`delete_all` never touches other tenants of the index.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from pinecone import Pinecone

from ragkb.config.settings import Settings
from ragkb.interfaces.vector_index import IVectorIndex
from ragkb.models.retrieval import VectorIndexStats, VectorMatch
from ragkb.utils.errors import ConfigurationMissingError, VectorDatabaseError

logger = structlog.get_logger(logger_name=__name__)

_DELETE_BATCH_LIMIT = 1000


class PineconeIndex(IVectorIndex):
    """Vector index backed by a hosted Pinecone index.

    The index must already exist with a dimension matching the embedding
    model; creating it is an operator task.
    """

    def __init__(self, settings: Settings, client: Pinecone | None = None) -> None:
        if not settings.pinecone_api_key and client is None:
            raise ConfigurationMissingError(
                message="PINECONE_API_KEY is required for the pinecone vector provider",
                provider_name="pinecone",
            )
        self._client = client or Pinecone(api_key=settings.pinecone_api_key)
        self._index_name = settings.pinecone_index
        self._namespace = settings.pinecone_namespace
        self._index = self._client.Index(self._index_name)

    # ------------------------------------------------------------------
    # IVectorIndex implementation
    # ------------------------------------------------------------------

    async def upsert(self, vector_id: str, vector: list[float], metadata: dict[str, Any]) -> bool:
        record = {
            "id": vector_id,
            "values": vector,
            "metadata": {k: v for k, v in metadata.items() if v is not None},
        }
        try:
            await asyncio.to_thread(self._index.upsert, vectors=[record], namespace=self._namespace)
            logger.debug("pinecone_upsert", vector_id=vector_id)
            return True
        except Exception as exc:  # noqa: BLE001
            logger.error("pinecone_upsert_failed", vector_id=vector_id, error=str(exc))
            return False

    async def delete(self, vector_ids: list[str]) -> bool:
        if not vector_ids:
            return True
        try:
            for start in range(0, len(vector_ids), _DELETE_BATCH_LIMIT):
                batch = list(vector_ids[start : start + _DELETE_BATCH_LIMIT])
                await asyncio.to_thread(self._index.delete, ids=batch, namespace=self._namespace)
            logger.info("pinecone_delete", count=len(vector_ids))
            return True
        except Exception as exc:  # noqa: BLE001
            logger.error("pinecone_delete_failed", count=len(vector_ids), error=str(exc))
            return False

    async def delete_all(self) -> bool:
        try:
            await asyncio.to_thread(self._index.delete, delete_all=True, namespace=self._namespace)
            logger.info("pinecone_delete_all", namespace=self._namespace)
            return True
        except Exception as exc:  # noqa: BLE001
            logger.error("pinecone_delete_all_failed", error=str(exc))
            return False

    async def query(
        self, vector: list[float], limit: int, threshold: float = 0.0
    ) -> list[VectorMatch]:
        if limit <= 0:
            return []
        try:
            response = await asyncio.to_thread(
                self._index.query,
                vector=vector,
                top_k=limit,
                include_metadata=True,
                namespace=self._namespace,
            )
        except Exception as exc:
            raise VectorDatabaseError(
                message=f"Pinecone query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        matches = [
            VectorMatch(id=m.id, score=float(m.score), metadata=dict(m.metadata or {}))
            for m in (response.matches or [])
            if float(m.score) >= threshold
        ]
        logger.info(
            "pinecone_query",
            raw_results=len(response.matches or []),
            results_count=len(matches),
        )
        return matches

    async def stats(self) -> VectorIndexStats:
        try:
            response = await asyncio.to_thread(self._index.describe_index_stats)
            namespaces = response.namespaces or {}
            ns_stats = namespaces.get(self._namespace)
            return VectorIndexStats(
                total_vectors=ns_stats.vector_count if ns_stats else 0,
                dimensions=response.dimension or 0,
                index_fullness=response.index_fullness or 0.0,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("pinecone_stats_failed", error=str(exc))
            return VectorIndexStats()

    def get_provider_name(self) -> str:
        return "pinecone"

    def is_available(self) -> bool:
        try:
            self._index.describe_index_stats()
            return True
        except Exception:  # noqa: BLE001
            return False
