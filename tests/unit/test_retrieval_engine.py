"""Unit tests for RetrievalEngine ranking, fallback and hydration."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from ragkb.config.rag_config import RagConfig
from ragkb.models.documents import Chunk
from ragkb.models.retrieval import SearchMode, VectorMatch
from ragkb.providers.cache.memory_cache import MemoryCacheProvider
from ragkb.services.retrieval_engine import RetrievalEngine
from ragkb.utils.errors import EmbeddingFailedError, SearchFailedError, VectorDatabaseError
from tests.conftest import make_chunk, make_config


def _rows(*chunks: Chunk, title: str = "Doc") -> dict[int, tuple[Chunk, str]]:
    return {chunk.id: (chunk, title) for chunk in chunks}


def _serve_rows(store: MagicMock, rows: dict[int, tuple[Chunk, str]]) -> None:
    store.get_chunks_with_titles = AsyncMock(
        side_effect=lambda ids: {i: rows[i] for i in ids if i in rows}
    )


def _match(chunk_id: int, score: float) -> VectorMatch:
    return VectorMatch(id=f"chunk_{chunk_id}_hash", score=score, metadata={"chunk_id": chunk_id})


def _engine(store, embedder, vector_index, config: RagConfig | None = None, cache=None) -> RetrievalEngine:
    return RetrievalEngine(store, embedder, vector_index, config or RagConfig(), cache=cache)


# ======================================================================
# Hybrid search
# ======================================================================


class TestHybridSearch:
    @pytest.mark.asyncio
    async def test_scores_merge_for_chunk_found_both_ways(
        self, mock_store, mock_embedder, mock_vector_index
    ) -> None:
        both, vector_only, keyword_only = make_chunk(1), make_chunk(2), make_chunk(3)
        _serve_rows(mock_store, _rows(both, vector_only))
        mock_vector_index.query = AsyncMock(return_value=[_match(1, 0.9), _match(2, 0.85)])
        mock_store.keyword_search = AsyncMock(
            return_value=[(both, "Doc"), (keyword_only, "Other")]
        )

        results = await _engine(mock_store, mock_embedder, mock_vector_index).search(
            "query", limit=3
        )

        assert [r.chunk_id for r in results] == [1, 2, 3]
        assert results[0].hybrid_score == pytest.approx(0.82)
        assert results[0].similarity_score == 0.9
        assert results[1].hybrid_score == pytest.approx(0.68)
        assert results[2].hybrid_score == pytest.approx(0.1)
        assert results[2].document_title == "Other"

    @pytest.mark.asyncio
    async def test_candidates_requested_at_twice_the_limit(
        self, mock_store, mock_embedder, mock_vector_index
    ) -> None:
        await _engine(mock_store, mock_embedder, mock_vector_index).search("query", limit=4)

        assert mock_vector_index.query.await_args.args[1] == 8
        assert mock_store.keyword_search.await_args.args == ("query", 8)

    @pytest.mark.asyncio
    async def test_results_cut_to_limit(self, mock_store, mock_embedder, mock_vector_index) -> None:
        chunks = [make_chunk(i) for i in range(1, 6)]
        _serve_rows(mock_store, _rows(*chunks))
        mock_vector_index.query = AsyncMock(
            return_value=[_match(i, 0.95 - i * 0.01) for i in range(1, 6)]
        )

        results = await _engine(mock_store, mock_embedder, mock_vector_index).search(
            "query", limit=2
        )
        assert [r.chunk_id for r in results] == [1, 2]

    @pytest.mark.asyncio
    async def test_default_limit_from_config(
        self, mock_store, mock_embedder, mock_vector_index
    ) -> None:
        chunks = [make_chunk(i) for i in range(1, 6)]
        _serve_rows(mock_store, _rows(*chunks))
        mock_vector_index.query = AsyncMock(return_value=[_match(i, 0.9) for i in range(1, 6)])

        results = await _engine(mock_store, mock_embedder, mock_vector_index).search("query")
        assert len(results) == 3


# ======================================================================
# Vector search
# ======================================================================


class TestVectorSearch:
    @pytest.mark.asyncio
    async def test_threshold_is_inclusive(self, mock_store, mock_embedder, mock_vector_index) -> None:
        _serve_rows(mock_store, _rows(make_chunk(1), make_chunk(2), make_chunk(3)))
        mock_vector_index.query = AsyncMock(
            return_value=[_match(1, 0.71), _match(2, 0.7), _match(3, 0.69)]
        )
        config = make_config(search={"hybrid": {"enabled": False}})

        results = await _engine(mock_store, mock_embedder, mock_vector_index, config).search(
            "query", limit=5, threshold=0.7
        )
        assert [r.chunk_id for r in results] == [1, 2]
        assert all(r.hybrid_score is None for r in results)

    @pytest.mark.asyncio
    async def test_orphan_vectors_skipped(self, mock_store, mock_embedder, mock_vector_index) -> None:
        _serve_rows(mock_store, _rows(make_chunk(1)))
        mock_vector_index.query = AsyncMock(return_value=[_match(99, 0.95), _match(1, 0.9)])

        results = await _engine(mock_store, mock_embedder, mock_vector_index).vector_search(
            "query", limit=5, threshold=0.5
        )
        assert [r.chunk_id for r in results] == [1]

    @pytest.mark.asyncio
    async def test_chunk_id_parsed_from_vector_id(
        self, mock_store, mock_embedder, mock_vector_index
    ) -> None:
        _serve_rows(mock_store, _rows(make_chunk(5, "five")))
        mock_vector_index.query = AsyncMock(
            return_value=[VectorMatch(id="chunk_5_deadbeef", score=0.8, metadata={})]
        )

        results = await _engine(mock_store, mock_embedder, mock_vector_index).vector_search(
            "query", limit=1, threshold=0.5
        )
        assert results[0].chunk_id == 5
        assert results[0].content == "five"

    @pytest.mark.asyncio
    async def test_duplicate_matches_collapsed(
        self, mock_store, mock_embedder, mock_vector_index
    ) -> None:
        _serve_rows(mock_store, _rows(make_chunk(1)))
        mock_vector_index.query = AsyncMock(return_value=[_match(1, 0.8), _match(1, 0.9)])

        results = await _engine(mock_store, mock_embedder, mock_vector_index).vector_search(
            "query", limit=5, threshold=0.5
        )
        assert len(results) == 1
        assert results[0].similarity_score == 0.9

    @pytest.mark.asyncio
    async def test_results_cached(self, mock_store, mock_embedder, mock_vector_index) -> None:
        _serve_rows(mock_store, _rows(make_chunk(1)))
        mock_vector_index.query = AsyncMock(return_value=[_match(1, 0.9)])
        engine = _engine(
            mock_store, mock_embedder, mock_vector_index, cache=MemoryCacheProvider()
        )

        first = await engine.vector_search("query", limit=3, threshold=0.5)
        second = await engine.vector_search("query", limit=3, threshold=0.5)

        assert first == second
        mock_embedder.generate.assert_awaited_once_with("query")

    @pytest.mark.asyncio
    async def test_cache_keys_distinguish_query_and_limit(
        self, mock_store, mock_embedder, mock_vector_index
    ) -> None:
        _serve_rows(mock_store, _rows(make_chunk(1), make_chunk(2)))
        mock_vector_index.query = AsyncMock(side_effect=[[_match(1, 0.9)], [_match(2, 0.9)]])
        engine = _engine(
            mock_store, mock_embedder, mock_vector_index, cache=MemoryCacheProvider()
        )

        first = await engine.vector_search("foo", limit=13, threshold=0.5)
        second = await engine.vector_search("foo1", limit=3, threshold=0.5)

        assert [r.chunk_id for r in first] == [1]
        assert [r.chunk_id for r in second] == [2]
        assert mock_vector_index.query.await_count == 2

    @pytest.mark.asyncio
    async def test_cache_ignored_when_disabled(
        self, mock_store, mock_embedder, mock_vector_index
    ) -> None:
        config = make_config(cache={"enabled": False})
        engine = _engine(
            mock_store, mock_embedder, mock_vector_index, config, cache=MemoryCacheProvider()
        )
        await engine.vector_search("query", limit=3)
        await engine.vector_search("query", limit=3)
        assert mock_embedder.generate.await_count == 2


# ======================================================================
# Keyword search and fallback
# ======================================================================


class TestKeywordSearch:
    @pytest.mark.asyncio
    async def test_fixed_score(self, mock_store, mock_embedder, mock_vector_index) -> None:
        mock_store.keyword_search = AsyncMock(return_value=[(make_chunk(1), "Doc")])
        results = await _engine(mock_store, mock_embedder, mock_vector_index).keyword_search(
            "term", 5
        )
        assert [(r.chunk_id, r.similarity_score) for r in results] == [(1, 0.5)]

    @pytest.mark.asyncio
    async def test_term_overlap_scoring(self, mock_store, mock_embedder, mock_vector_index) -> None:
        partial = make_chunk(1, "Python asyncio guide")
        full = make_chunk(2, "python tutorial covering asyncio")
        by_term = {
            "python": [(partial, "A"), (full, "B")],
            "asyncio": [(partial, "A"), (full, "B")],
            "tutorial": [(full, "B")],
        }
        mock_store.keyword_search = AsyncMock(side_effect=lambda term, limit: by_term.get(term, []))
        config = make_config(search={"hybrid": {"keyword_scoring": "term_overlap"}})

        results = await _engine(mock_store, mock_embedder, mock_vector_index, config).keyword_search(
            "Python asyncio tutorial, a", 5
        )

        assert [r.chunk_id for r in results] == [2, 1]
        assert results[0].similarity_score == pytest.approx(1.0)
        assert results[1].similarity_score == pytest.approx(2 / 3)
        searched = [call.args[0] for call in mock_store.keyword_search.await_args_list]
        assert searched == ["python", "asyncio", "tutorial"]

    @pytest.mark.asyncio
    async def test_store_error_wrapped(self, mock_store, mock_embedder, mock_vector_index) -> None:
        mock_store.keyword_search = AsyncMock(side_effect=RuntimeError("db locked"))
        with pytest.raises(SearchFailedError):
            await _engine(mock_store, mock_embedder, mock_vector_index).keyword_search("x", 5)

    @pytest.mark.asyncio
    async def test_vector_failure_falls_back_to_keyword(
        self, mock_store, mock_embedder, mock_vector_index
    ) -> None:
        mock_vector_index.query = AsyncMock(side_effect=VectorDatabaseError(message="down"))
        mock_store.keyword_search = AsyncMock(return_value=[(make_chunk(7), "Doc")])

        results = await _engine(mock_store, mock_embedder, mock_vector_index).search("query")

        assert [r.chunk_id for r in results] == [7]
        assert results[0].hybrid_score is None
        record = mock_store.record_search_query.await_args.args[0]
        assert record.search_type == SearchMode.KEYWORD
        assert record.results_count == 1

    @pytest.mark.asyncio
    async def test_embedding_failure_falls_back(
        self, mock_store, mock_embedder, mock_vector_index
    ) -> None:
        mock_embedder.generate = AsyncMock(side_effect=EmbeddingFailedError())
        mock_store.keyword_search = AsyncMock(return_value=[(make_chunk(7), "Doc")])
        config = make_config(search={"hybrid": {"enabled": False}})

        results = await _engine(mock_store, mock_embedder, mock_vector_index, config).search("q")
        assert [r.chunk_id for r in results] == [7]

    @pytest.mark.asyncio
    async def test_no_fallback_raises(self, mock_store, mock_embedder, mock_vector_index) -> None:
        mock_vector_index.query = AsyncMock(side_effect=VectorDatabaseError(message="down"))
        config = make_config(search={"fallback_to_sql": False})

        with pytest.raises(SearchFailedError):
            await _engine(mock_store, mock_embedder, mock_vector_index, config).search("query")


# ======================================================================
# Edge cases and analytics
# ======================================================================


class TestSearchEdges:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   ", "\n\t"])
    async def test_blank_query_returns_nothing(
        self, mock_store, mock_embedder, mock_vector_index, query: str
    ) -> None:
        assert await _engine(mock_store, mock_embedder, mock_vector_index).search(query) == []
        mock_embedder.generate.assert_not_awaited()
        mock_store.keyword_search.assert_not_awaited()
        mock_store.record_search_query.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_search_recorded(self, mock_store, mock_embedder, mock_vector_index) -> None:
        _serve_rows(mock_store, _rows(make_chunk(1)))
        mock_vector_index.query = AsyncMock(return_value=[_match(1, 0.9)])

        await _engine(mock_store, mock_embedder, mock_vector_index).search("  what is it  ")

        record = mock_store.record_search_query.await_args.args[0]
        assert record.query_text == "what is it"
        assert record.search_type == SearchMode.HYBRID
        assert record.similarity_scores == [0.9]

    @pytest.mark.asyncio
    async def test_record_failure_does_not_fail_search(
        self, mock_store, mock_embedder, mock_vector_index
    ) -> None:
        mock_store.record_search_query = AsyncMock(side_effect=RuntimeError("disk full"))
        mock_store.keyword_search = AsyncMock(return_value=[(make_chunk(1), "Doc")])

        results = await _engine(mock_store, mock_embedder, mock_vector_index).search("query")
        assert [r.chunk_id for r in results] == [1]

    @pytest.mark.asyncio
    async def test_tracking_disabled(self, mock_store, mock_embedder, mock_vector_index) -> None:
        config = make_config(analytics={"track_searches": False})
        await _engine(mock_store, mock_embedder, mock_vector_index, config).search("query")
        mock_store.record_search_query.assert_not_awaited()
