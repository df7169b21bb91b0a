"""Unit tests for the ChromaDB and Pinecone vector index adapters."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from ragkb.providers.vector_store.chromadb_index import ChromaDBIndex
from ragkb.providers.vector_store.pinecone_index import PineconeIndex
from ragkb.utils.errors import ConfigurationMissingError, VectorDatabaseError
from tests.conftest import make_settings


# ======================================================================
# ChromaDB (real local client in a temp directory)
# ======================================================================


@pytest.fixture
def chroma(tmp_path: Path) -> ChromaDBIndex:
    return ChromaDBIndex(
        persist_directory=str(tmp_path / "chroma"), collection_name="test_chunks", dimensions=3
    )


class TestChromaDBIndex:
    @pytest.mark.asyncio
    async def test_query_on_empty_collection(self, chroma: ChromaDBIndex) -> None:
        assert await chroma.query([1.0, 0.0, 0.0], limit=5) == []

    @pytest.mark.asyncio
    async def test_identical_vector_scores_near_one(self, chroma: ChromaDBIndex) -> None:
        await chroma.upsert("chunk_1_a", [1.0, 0.0, 0.0], {"chunk_id": 1, "document_id": 1})
        await chroma.upsert("chunk_2_b", [0.0, 1.0, 0.0], {"chunk_id": 2, "document_id": 1})

        matches = await chroma.query([1.0, 0.0, 0.0], limit=2)

        assert matches[0].id == "chunk_1_a"
        assert matches[0].score == pytest.approx(1.0, abs=1e-3)
        assert matches[0].metadata["chunk_id"] == 1
        assert all(0.0 <= m.score <= 1.0 for m in matches)

    @pytest.mark.asyncio
    async def test_threshold_filters_matches(self, chroma: ChromaDBIndex) -> None:
        await chroma.upsert("chunk_1_a", [1.0, 0.0, 0.0], {"chunk_id": 1})
        await chroma.upsert("chunk_2_b", [0.0, 1.0, 0.0], {"chunk_id": 2})

        matches = await chroma.query([1.0, 0.0, 0.0], limit=5, threshold=0.9)
        assert [m.id for m in matches] == ["chunk_1_a"]

    @pytest.mark.asyncio
    async def test_none_metadata_dropped(self, chroma: ChromaDBIndex) -> None:
        assert await chroma.upsert("chunk_1_a", [1.0, 0.0, 0.0], {"chunk_id": 1, "page": None})
        matches = await chroma.query([1.0, 0.0, 0.0], limit=1)
        assert "page" not in matches[0].metadata

    @pytest.mark.asyncio
    async def test_delete_and_stats(self, chroma: ChromaDBIndex) -> None:
        await chroma.upsert("chunk_1_a", [1.0, 0.0, 0.0], {"chunk_id": 1})
        await chroma.upsert("chunk_2_b", [0.0, 1.0, 0.0], {"chunk_id": 2})

        assert (await chroma.stats()).total_vectors == 2
        assert await chroma.delete(["chunk_1_a"]) is True
        stats = await chroma.stats()
        assert stats.total_vectors == 1
        assert stats.dimensions == 3

    @pytest.mark.asyncio
    async def test_delete_empty_list_is_noop(self, chroma: ChromaDBIndex) -> None:
        assert await chroma.delete([]) is True

    @pytest.mark.asyncio
    async def test_delete_all_recreates_collection(self, chroma: ChromaDBIndex) -> None:
        await chroma.upsert("chunk_1_a", [1.0, 0.0, 0.0], {"chunk_id": 1})
        assert await chroma.delete_all() is True
        assert (await chroma.stats()).total_vectors == 0
        assert await chroma.upsert("chunk_3_c", [0.0, 0.0, 1.0], {"chunk_id": 3}) is True

    def test_identity(self, chroma: ChromaDBIndex) -> None:
        assert chroma.get_provider_name() == "chromadb"
        assert chroma.is_available() is True


# ======================================================================
# Pinecone (mocked client)
# ======================================================================


def _pinecone(index: MagicMock) -> PineconeIndex:
    client = MagicMock()
    client.Index.return_value = index
    return PineconeIndex(make_settings(pinecone_index="kb", pinecone_namespace="ns"), client=client)


class TestPineconeIndex:
    def test_requires_key_or_client(self) -> None:
        with pytest.raises(ConfigurationMissingError):
            PineconeIndex(make_settings(pinecone_api_key=""))

    @pytest.mark.asyncio
    async def test_upsert_drops_none_metadata(self) -> None:
        index = MagicMock()
        pinecone = _pinecone(index)

        assert await pinecone.upsert("chunk_1_a", [0.1], {"chunk_id": 1, "page": None}) is True
        kwargs = index.upsert.call_args.kwargs
        assert kwargs["namespace"] == "ns"
        assert kwargs["vectors"] == [
            {"id": "chunk_1_a", "values": [0.1], "metadata": {"chunk_id": 1}}
        ]

    @pytest.mark.asyncio
    async def test_upsert_failure_returns_false(self) -> None:
        index = MagicMock()
        index.upsert.side_effect = RuntimeError("network")
        assert await _pinecone(index).upsert("v", [0.1], {}) is False

    @pytest.mark.asyncio
    async def test_query_maps_and_filters_matches(self) -> None:
        index = MagicMock()
        index.query.return_value = MagicMock(
            matches=[
                MagicMock(id="chunk_1_a", score=0.91, metadata={"chunk_id": 1}),
                MagicMock(id="chunk_2_b", score=0.4, metadata=None),
            ]
        )
        matches = await _pinecone(index).query([0.1], limit=5, threshold=0.5)

        assert [(m.id, m.score) for m in matches] == [("chunk_1_a", 0.91)]
        assert matches[0].metadata == {"chunk_id": 1}
        assert index.query.call_args.kwargs["top_k"] == 5

    @pytest.mark.asyncio
    async def test_query_error_raised(self) -> None:
        index = MagicMock()
        index.query.side_effect = RuntimeError("timeout")
        with pytest.raises(VectorDatabaseError):
            await _pinecone(index).query([0.1], limit=5)

    @pytest.mark.asyncio
    async def test_delete_all_scoped_to_namespace(self) -> None:
        index = MagicMock()
        assert await _pinecone(index).delete_all() is True
        index.delete.assert_called_once_with(delete_all=True, namespace="ns")

    @pytest.mark.asyncio
    async def test_stats_for_namespace(self) -> None:
        index = MagicMock()
        index.describe_index_stats.return_value = MagicMock(
            namespaces={"ns": MagicMock(vector_count=42)},
            dimension=1536,
            index_fullness=0.1,
        )
        stats = await _pinecone(index).stats()
        assert stats.total_vectors == 42
        assert stats.dimensions == 1536
