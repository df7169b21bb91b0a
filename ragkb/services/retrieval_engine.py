"""Retrieval engine: vector, keyword and hybrid search over the chunk corpus.

Hybrid search runs a vector query and a keyword query independently, each
for ``2 * limit`` candidates, and merges them:

    hybrid_score = similarity * vector_weight                (vector hits)
                 + keyword_score * keyword_weight            (keyword hits)

A chunk found by both methods gets both terms.  Results are sorted by the
combined score and cut to ``limit``.

Vector failures (index down, embedding API error) fall back to keyword-only
search when ``fallback_to_sql`` is on; callers then never see the outage.
"""

from __future__ import annotations

import re
import time

import structlog

from ragkb.config.rag_config import RagConfig
from ragkb.interfaces.cache_provider import ICacheProvider
from ragkb.interfaces.document_store import IDocumentStore
from ragkb.interfaces.embedding_provider import IEmbeddingProvider
from ragkb.interfaces.vector_index import IVectorIndex
from ragkb.models.documents import Chunk
from ragkb.models.retrieval import ScoredChunk, SearchMode, SearchQueryRecord, VectorMatch
from ragkb.utils.errors import (
    EmbeddingFailedError,
    ProviderRequestFailedError,
    SearchFailedError,
    VectorDatabaseError,
)
from ragkb.utils.hashing import cache_fingerprint

logger = structlog.get_logger(logger_name=__name__)

# Errors that mean "the vector path is unavailable" and allow keyword fallback.
_VECTOR_FAILURES = (VectorDatabaseError, EmbeddingFailedError, ProviderRequestFailedError)

_VECTOR_ID_PATTERN = re.compile(r"^chunk_(\d+)_")
_TERM_PATTERN = re.compile(r"\w+")
_MIN_TERM_LENGTH = 3
_MAX_TERMS = 8

SEARCH_CACHE_PREFIX = "vector_search:"


class RetrievalEngine:
    """Ranks chunks for a query.

    Parameters
    ----------
    store:
        Document store used for keyword search, chunk hydration and
        search analytics.
    embedder:
        Embeds the query for vector search.
    vector_index:
        Similarity index queried with the query embedding.
    config:
        Resolved pipeline configuration (search, analytics and cache
        sections are used).
    cache:
        Optional cache for vector search results.
    """

    def __init__(
        self,
        store: IDocumentStore,
        embedder: IEmbeddingProvider,
        vector_index: IVectorIndex,
        config: RagConfig,
        cache: ICacheProvider | None = None,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._vector_index = vector_index
        self._search = config.search
        self._track_searches = config.analytics.track_searches
        self._cache = cache if config.cache.enabled else None
        self._cache_ttl = config.cache.ttl

    async def search(
        self,
        query: str,
        limit: int | None = None,
        threshold: float | None = None,
    ) -> list[ScoredChunk]:
        """Return up to *limit* chunks relevant to *query*, best first.

        An empty or whitespace-only query returns ``[]`` without searching.

        Raises
        ------
        SearchFailedError
            The vector path failed and fallback is disabled, or the keyword
            fallback failed too.
        """
        query = (query or "").strip()
        if not query:
            return []
        limit = limit or self._search.default_limit
        threshold = self._search.similarity_threshold if threshold is None else threshold

        started = time.perf_counter()
        mode = SearchMode.HYBRID if self._search.hybrid.enabled else SearchMode.VECTOR
        try:
            if mode == SearchMode.HYBRID:
                results = await self._hybrid_search(query, limit, threshold)
            else:
                results = await self.vector_search(query, limit, threshold)
        except _VECTOR_FAILURES as exc:
            if not self._search.fallback_to_sql:
                raise SearchFailedError(message=f"Vector search failed: {exc}") from exc
            logger.warning("vector_search_failed_using_keyword_fallback", error=str(exc))
            mode = SearchMode.KEYWORD
            results = await self.keyword_search(query, limit)

        await self._record_query(query, mode, results, started)
        logger.info("search_completed", mode=mode.value, results=len(results))
        return results

    async def vector_search(
        self, query: str, limit: int, threshold: float | None = None
    ) -> list[ScoredChunk]:
        """Embed *query* and return indexed chunks scoring at least *threshold*.

        The threshold is inclusive and applied here whatever the backend
        already filtered.
        """
        threshold = self._search.similarity_threshold if threshold is None else threshold
        cache_key = SEARCH_CACHE_PREFIX + cache_fingerprint(query, limit, threshold)
        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                return cached

        embedding = await self._embedder.generate(query)
        matches = await self._vector_index.query(embedding, limit, threshold)
        results = await self._hydrate(matches, threshold)

        if self._cache is not None:
            await self._cache.set(cache_key, results, ttl=self._cache_ttl)
        return results

    async def keyword_search(self, query: str, limit: int) -> list[ScoredChunk]:
        """Case-insensitive substring search over chunk content.

        With ``keyword_scoring = "fixed"`` the whole query is matched and
        every hit scores ``default_keyword_score``.  With ``"term_overlap"``
        each query term is matched separately and a hit scores the fraction
        of terms its content contains.
        """
        try:
            if self._search.hybrid.keyword_scoring == "term_overlap":
                return await self._term_overlap_search(query, limit)
            rows = await self._store.keyword_search(query, limit)
        except Exception as exc:
            raise SearchFailedError(message=f"Keyword search failed: {exc}") from exc

        score = self._search.hybrid.default_keyword_score
        return [self._scored(chunk, title, score) for chunk, title in rows]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _hybrid_search(self, query: str, limit: int, threshold: float) -> list[ScoredChunk]:
        weights = self._search.hybrid
        vector_hits = await self.vector_search(query, limit * 2, threshold)
        keyword_hits = await self.keyword_search(query, limit * 2)

        merged: dict[int, ScoredChunk] = {}
        for hit in vector_hits:
            if hit.chunk_id not in merged:
                merged[hit.chunk_id] = hit.model_copy(
                    update={"hybrid_score": hit.similarity_score * weights.vector_weight}
                )

        for hit in keyword_hits:
            boost = hit.similarity_score * weights.keyword_weight
            existing = merged.get(hit.chunk_id)
            if existing is not None:
                merged[hit.chunk_id] = existing.model_copy(
                    update={"hybrid_score": (existing.hybrid_score or 0.0) + boost}
                )
            else:
                merged[hit.chunk_id] = hit.model_copy(update={"hybrid_score": boost})

        ranked = sorted(merged.values(), key=lambda r: r.rank_score, reverse=True)
        logger.debug(
            "hybrid_merge",
            vector_hits=len(vector_hits),
            keyword_hits=len(keyword_hits),
            merged=len(merged),
        )
        return ranked[:limit]

    async def _term_overlap_search(self, query: str, limit: int) -> list[ScoredChunk]:
        terms = self._query_terms(query)
        if not terms:
            rows = await self._store.keyword_search(query, limit)
            return [self._scored(c, t, self._search.hybrid.default_keyword_score) for c, t in rows]

        candidates: dict[int, tuple[Chunk, str]] = {}
        for term in terms:
            for chunk, title in await self._store.keyword_search(term, limit):
                if chunk.id is not None:
                    candidates.setdefault(chunk.id, (chunk, title))

        scored = []
        for chunk, title in candidates.values():
            content = chunk.content.lower()
            overlap = sum(1 for term in terms if term in content) / len(terms)
            scored.append(self._scored(chunk, title, overlap))
        scored.sort(key=lambda r: r.similarity_score, reverse=True)
        return scored[:limit]

    async def _hydrate(self, matches: list[VectorMatch], threshold: float) -> list[ScoredChunk]:
        """Resolve vector matches to stored chunks, dropping orphans and duplicates."""
        wanted: list[tuple[int, float]] = []
        seen: set[int] = set()
        for match in sorted(matches, key=lambda m: m.score, reverse=True):
            chunk_id = self._chunk_id(match)
            if chunk_id is None or chunk_id in seen or match.score < threshold:
                continue
            seen.add(chunk_id)
            wanted.append((chunk_id, match.score))

        rows = await self._store.get_chunks_with_titles([cid for cid, _ in wanted])
        results = []
        for chunk_id, score in wanted:
            row = rows.get(chunk_id)
            if row is None:
                logger.debug("orphan_vector_skipped", chunk_id=chunk_id)
                continue
            chunk, title = row
            results.append(self._scored(chunk, title, max(0.0, min(1.0, score))))
        return results

    @staticmethod
    def _chunk_id(match: VectorMatch) -> int | None:
        raw = match.metadata.get("chunk_id")
        if raw is not None:
            try:
                return int(raw)
            except (TypeError, ValueError):
                pass
        found = _VECTOR_ID_PATTERN.match(match.id)
        return int(found.group(1)) if found else None

    @staticmethod
    def _query_terms(query: str) -> list[str]:
        terms: list[str] = []
        for term in _TERM_PATTERN.findall(query.lower()):
            if len(term) >= _MIN_TERM_LENGTH and term not in terms:
                terms.append(term)
        return terms[:_MAX_TERMS]

    @staticmethod
    def _scored(chunk: Chunk, title: str, score: float) -> ScoredChunk:
        return ScoredChunk(
            chunk_id=chunk.id or 0,
            content=chunk.content,
            similarity_score=score,
            document_id=chunk.document_id,
            document_title=title,
            chunk_index=chunk.chunk_index,
            metadata=chunk.chunk_metadata,
        )

    async def _record_query(
        self,
        query: str,
        mode: SearchMode,
        results: list[ScoredChunk],
        started: float,
    ) -> None:
        if not self._track_searches:
            return
        try:
            await self._store.record_search_query(
                SearchQueryRecord(
                    query_text=query,
                    search_type=mode,
                    results_count=len(results),
                    response_time_ms=int((time.perf_counter() - started) * 1000),
                    similarity_scores=[r.similarity_score for r in results],
                )
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("search_query_record_failed", error=str(exc))
