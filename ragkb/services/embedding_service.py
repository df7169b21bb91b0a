"""Embedding service: validation, truncation and caching over any backend.

:class:`EmbeddingService` implements :class:`IEmbeddingProvider` itself, so
the pipeline and retrieval engine depend only on the interface while every
call goes through the same rules:

1. Empty or whitespace-only text is rejected with
   :class:`~ragkb.utils.errors.EmbeddingFailedError`.
2. Text over the backend's token budget is cut proportionally with a 10%
   safety margin, never dropped.
3. Results are cached under ``md5(text + provider + model)``; a batch
   sends only the cache misses to the backend, in one call, and results
   are reassembled in input order.
"""

from __future__ import annotations

import math

import structlog

from ragkb.interfaces.cache_provider import ICacheProvider
from ragkb.interfaces.document_store import IDocumentStore
from ragkb.interfaces.embedding_provider import IEmbeddingProvider
from ragkb.models.answers import ApiUsageRecord
from ragkb.utils.errors import EmbeddingFailedError
from ragkb.utils.hashing import cache_fingerprint

logger = structlog.get_logger(logger_name=__name__)

_CHARS_PER_TOKEN = 4
_TRUNCATION_MARGIN = 0.9


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters, rounded up."""
    return math.ceil(len(text) / _CHARS_PER_TOKEN)


def truncate_to_budget(text: str, max_tokens: int) -> str:
    """Cut *text* so its estimated token count fits *max_tokens*.

    Keeps ``len(text) * (max_tokens / estimate) * 0.9`` characters, a
    deterministic prefix.  Text already within budget is returned as-is.
    """
    estimated = estimate_tokens(text)
    if max_tokens <= 0 or estimated <= max_tokens:
        return text
    ratio = max_tokens / estimated
    keep = int(len(text) * ratio * _TRUNCATION_MARGIN)
    return text[:keep]


class EmbeddingService(IEmbeddingProvider):
    """Caching, validating decorator around an embedding backend.

    Parameters
    ----------
    backend:
        The provider that actually calls the embedding API.
    cache:
        Optional cache; ``None`` disables caching.
    cache_ttl:
        Seconds an embedding stays cached.
    store:
        Optional document store used to record API usage rows.
    """

    def __init__(
        self,
        backend: IEmbeddingProvider,
        cache: ICacheProvider | None = None,
        cache_ttl: int = 86400,
        store: IDocumentStore | None = None,
    ) -> None:
        self._backend = backend
        self._cache = cache
        self._cache_ttl = cache_ttl
        self._store = store

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def generate(self, text: str) -> list[float]:
        prepared = self._prepare(text)
        key = self._cache_key(prepared)

        cached = await self._cache_get(key)
        if cached is not None:
            return cached

        vector = await self._backend.generate(prepared)
        self._check_dimensions([vector])
        await self._cache_set(key, vector)
        await self._record_usage(estimate_tokens(prepared))
        return vector

    async def generate_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        prepared = [self._prepare(t) for t in texts]
        keys = [self._cache_key(t) for t in prepared]
        results: list[list[float] | None] = [None] * len(prepared)

        miss_indices: list[int] = []
        for i, key in enumerate(keys):
            cached = await self._cache_get(key)
            if cached is not None:
                results[i] = cached
            else:
                miss_indices.append(i)

        if miss_indices:
            vectors = await self._backend.generate_batch([prepared[i] for i in miss_indices])
            if len(vectors) != len(miss_indices):
                raise EmbeddingFailedError(
                    message=(
                        f"Backend returned {len(vectors)} embeddings for "
                        f"{len(miss_indices)} inputs"
                    ),
                    provider_name=self.get_provider_name(),
                )
            self._check_dimensions(vectors)
            for i, vector in zip(miss_indices, vectors):
                results[i] = vector
                await self._cache_set(keys[i], vector)
            await self._record_usage(sum(estimate_tokens(prepared[i]) for i in miss_indices))

        logger.debug(
            "embedding_batch_resolved",
            total=len(prepared),
            cache_hits=len(prepared) - len(miss_indices),
        )
        return [r for r in results if r is not None]

    def get_model_name(self) -> str:
        return self._backend.get_model_name()

    def get_dimensions(self) -> int:
        return self._backend.get_dimensions()

    def get_max_input_tokens(self) -> int:
        return self._backend.get_max_input_tokens()

    def get_provider_name(self) -> str:
        return self._backend.get_provider_name()

    def is_available(self) -> bool:
        return self._backend.is_available()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _prepare(self, text: str) -> str:
        if not text or not text.strip():
            raise EmbeddingFailedError(
                message="Empty text provided", provider_name=self.get_provider_name()
            )
        truncated = truncate_to_budget(text, self.get_max_input_tokens())
        if len(truncated) != len(text):
            logger.warning(
                "embedding_input_truncated",
                original_chars=len(text),
                truncated_chars=len(truncated),
                max_tokens=self.get_max_input_tokens(),
            )
        return truncated

    def _cache_key(self, text: str) -> str:
        digest = cache_fingerprint(text, self.get_provider_name(), self.get_model_name())
        return f"embedding:{digest}"

    def _check_dimensions(self, vectors: list[list[float]]) -> None:
        expected = self.get_dimensions()
        for vector in vectors:
            if len(vector) != expected:
                raise EmbeddingFailedError(
                    message=f"Expected {expected}-dim embedding, got {len(vector)}",
                    provider_name=self.get_provider_name(),
                )

    async def _cache_get(self, key: str) -> list[float] | None:
        if self._cache is None:
            return None
        return await self._cache.get(key)

    async def _cache_set(self, key: str, vector: list[float]) -> None:
        if self._cache is not None:
            await self._cache.set(key, vector, ttl=self._cache_ttl)

    async def _record_usage(self, tokens: int) -> None:
        if self._store is None:
            return
        try:
            await self._store.record_api_usage(
                ApiUsageRecord(
                    api_provider=self.get_provider_name(),
                    operation_type="embedding",
                    tokens_used=tokens,
                )
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("embedding_usage_record_failed", error=str(exc))
