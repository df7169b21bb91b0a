"""ChromaDB vector index adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IVectorIndex`.
Uses cosine distance; similarity is reported as ``1 - distance`` clamped
to [0, 1].  Fully local, no external service required.
"""

from __future__ import annotations

import os
from typing import Any

# Disable ChromaDB's anonymous telemetry before the import reads the env.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import chromadb
import structlog

from ragkb.interfaces.vector_index import IVectorIndex
from ragkb.models.retrieval import VectorIndexStats, VectorMatch
from ragkb.utils.errors import VectorDatabaseError

logger = structlog.get_logger(logger_name=__name__)


class _PrecomputedEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Stops ChromaDB from loading its default ONNX model.

    ragkb always passes vectors computed by its own embedding provider.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError("ragkb passes pre-computed embeddings to ChromaDB")

    def name(self) -> str:
        return "ragkb_precomputed"


class ChromaDBIndex(IVectorIndex):
    """Vector index backed by a persistent ChromaDB collection.

    Parameters
    ----------
    persist_directory:
        Directory ChromaDB writes its files to.
    collection_name:
        Collection holding the chunk vectors.
    dimensions:
        Expected vector length, reported by :meth:`stats` when the
        collection is empty.
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "ragkb_chunks",
        dimensions: int = 0,
    ) -> None:
        self._collection_name = collection_name
        self._dimensions = dimensions
        self._client = chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        self._collection = self._open_collection()

    def _open_collection(self) -> Any:
        # Collections persisted with a different embedding function refuse
        # ours; reopen without one in that case.
        try:
            return self._client.get_or_create_collection(
                name=self._collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_PrecomputedEmbeddingFunction(),
            )
        except ValueError:
            return self._client.get_or_create_collection(
                name=self._collection_name,
                metadata={"hnsw:space": "cosine"},
            )

    # ------------------------------------------------------------------
    # IVectorIndex implementation
    # ------------------------------------------------------------------

    async def upsert(self, vector_id: str, vector: list[float], metadata: dict[str, Any]) -> bool:
        try:
            self._collection.upsert(
                ids=[vector_id],
                embeddings=[vector],
                metadatas=[self._scalar_metadata(metadata)],
            )
            logger.debug("chromadb_upsert", vector_id=vector_id)
            return True
        except Exception as exc:  # noqa: BLE001
            logger.error("chromadb_upsert_failed", vector_id=vector_id, error=str(exc))
            return False

    async def delete(self, vector_ids: list[str]) -> bool:
        if not vector_ids:
            return True
        try:
            self._collection.delete(ids=list(vector_ids))
            logger.info("chromadb_delete", count=len(vector_ids))
            return True
        except Exception as exc:  # noqa: BLE001
            logger.error("chromadb_delete_failed", count=len(vector_ids), error=str(exc))
            return False

    async def delete_all(self) -> bool:
        try:
            self._client.delete_collection(name=self._collection_name)
            self._collection = self._open_collection()
            logger.info("chromadb_delete_all", collection=self._collection_name)
            return True
        except Exception as exc:  # noqa: BLE001
            logger.error("chromadb_delete_all_failed", error=str(exc))
            return False

    async def query(
        self, vector: list[float], limit: int, threshold: float = 0.0
    ) -> list[VectorMatch]:
        try:
            count = self._collection.count()
            if count == 0 or limit <= 0:
                return []
            results = self._collection.query(
                query_embeddings=[vector],
                n_results=min(limit, count),
                include=["metadatas", "distances"],
            )
        except Exception as exc:
            raise VectorDatabaseError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = results["ids"][0] if results.get("ids") else []
        metadatas = results["metadatas"][0] if results.get("metadatas") else [{}] * len(ids)
        distances = results["distances"][0] if results.get("distances") else [1.0] * len(ids)

        matches: list[VectorMatch] = []
        for vector_id, meta, distance in zip(ids, metadatas, distances, strict=True):
            similarity = max(0.0, min(1.0, 1.0 - distance))
            if similarity >= threshold:
                matches.append(VectorMatch(id=vector_id, score=similarity, metadata=meta or {}))

        logger.info(
            "chromadb_query",
            raw_results=len(ids),
            results_count=len(matches),
            top_score=matches[0].score if matches else 0.0,
        )
        return matches

    async def stats(self) -> VectorIndexStats:
        try:
            count = self._collection.count()
            dimensions = self._dimensions
            if count:
                sample = self._collection.peek(limit=1)
                embeddings = sample.get("embeddings") if sample else None
                if embeddings is not None and len(embeddings) > 0:
                    dimensions = len(embeddings[0])
            return VectorIndexStats(total_vectors=count, dimensions=dimensions)
        except Exception as exc:  # noqa: BLE001
            logger.error("chromadb_stats_failed", error=str(exc))
            return VectorIndexStats()

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        try:
            self._collection.count()
            return True
        except Exception:  # noqa: BLE001
            return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _scalar_metadata(metadata: dict[str, Any]) -> dict[str, str | int | float | bool]:
        """Drop ``None`` values and stringify anything ChromaDB can't store."""
        clean: dict[str, str | int | float | bool] = {}
        for key, value in metadata.items():
            if value is None:
                continue
            clean[key] = value if isinstance(value, str | int | float | bool) else str(value)
        return clean
