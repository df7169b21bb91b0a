"""Shared pytest fixtures for the ragkb test suite."""

from __future__ import annotations

import hashlib
import math
import re
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from ragkb.config.rag_config import RagConfig
from ragkb.config.settings import Settings
from ragkb.interfaces.ai_answerer import IAiAnswerer
from ragkb.interfaces.document_store import IDocumentStore
from ragkb.interfaces.embedding_provider import IEmbeddingProvider
from ragkb.interfaces.task_queue import ITaskQueue, TaskHandler
from ragkb.interfaces.vector_index import IVectorIndex
from ragkb.models.answers import GenerationResult, TokenUsage
from ragkb.models.documents import Chunk
from ragkb.models.retrieval import ScoredChunk, VectorIndexStats, VectorMatch
from ragkb.providers.store.sqlite_document_store import SQLiteDocumentStore

EMBEDDING_DIMENSIONS = 8


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_settings(**overrides: Any) -> Settings:
    """Settings isolated from any local ``.env`` file."""
    defaults: dict[str, Any] = {
        "openai_api_key": "sk-test",
        "openai_base_url": "",
        "anthropic_api_key": "test-anthropic",
        "pinecone_api_key": "",
        "external_processing_enabled": False,
        "external_processing_api_url": "",
        "external_processing_api_key": "",
        "webhook_secret": "",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


def make_config(**sections: dict[str, Any]) -> RagConfig:
    """A RagConfig with selected sections overridden from plain dicts."""
    return RagConfig.model_validate(sections)


def make_scored(
    chunk_id: int,
    score: float,
    document_id: int = 1,
    title: str = "Doc",
    content: str | None = None,
) -> ScoredChunk:
    return ScoredChunk(
        chunk_id=chunk_id,
        content=content if content is not None else f"content {chunk_id}",
        similarity_score=score,
        document_id=document_id,
        document_title=title,
    )


def make_chunk(chunk_id: int, content: str = "some text", document_id: int = 1) -> Chunk:
    return Chunk(id=chunk_id, document_id=document_id, chunk_index=0, content=content)


class RecordingQueue(ITaskQueue):
    """Task queue that records dispatches instead of running them."""

    def __init__(self) -> None:
        self.handlers: dict[str, TaskHandler] = {}
        self.dispatched: list[tuple[str, dict[str, Any], float]] = []

    def register(self, handler: TaskHandler) -> None:
        self.handlers[handler.name] = handler

    async def dispatch(self, task_name: str, payload: dict[str, Any], delay: float = 0.0) -> str:
        self.dispatched.append((task_name, dict(payload), delay))
        return f"task-{len(self.dispatched)}"

    async def join(self) -> None:
        return None

    async def shutdown(self) -> None:
        return None

    def named(self, task_name: str) -> list[tuple[dict[str, Any], float]]:
        return [(payload, delay) for name, payload, delay in self.dispatched if name == task_name]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def rag_config() -> RagConfig:
    return RagConfig()


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> SQLiteDocumentStore:
    """A fresh SQLite document store in a temporary directory."""
    document_store = SQLiteDocumentStore(db_path=tmp_path / "ragkb.db")
    await document_store.initialize()
    return document_store


@pytest.fixture
def recording_queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
def mock_embedder() -> MagicMock:
    mock = MagicMock(spec=IEmbeddingProvider)
    mock.generate = AsyncMock(return_value=[0.1] * EMBEDDING_DIMENSIONS)
    mock.generate_batch = AsyncMock(
        side_effect=lambda texts: [[0.1] * EMBEDDING_DIMENSIONS for _ in texts]
    )
    mock.get_model_name.return_value = "test-embedding-model"
    mock.get_dimensions.return_value = EMBEDDING_DIMENSIONS
    mock.get_max_input_tokens.return_value = 8191
    mock.get_provider_name.return_value = "mock_embeddings"
    mock.is_available.return_value = True
    return mock


@pytest.fixture
def mock_vector_index() -> MagicMock:
    mock = MagicMock(spec=IVectorIndex)
    mock.upsert = AsyncMock(return_value=True)
    mock.delete = AsyncMock(return_value=True)
    mock.delete_all = AsyncMock(return_value=True)
    mock.query = AsyncMock(return_value=[])
    mock.stats = AsyncMock(return_value=VectorIndexStats())
    mock.get_provider_name.return_value = "mock_vectors"
    mock.is_available.return_value = True
    return mock


@pytest.fixture
def mock_store() -> MagicMock:
    """Fully mocked document store for services that only read through it."""
    mock = MagicMock(spec=IDocumentStore)
    mock.keyword_search = AsyncMock(return_value=[])
    mock.get_chunks_with_titles = AsyncMock(return_value={})
    mock.record_search_query = AsyncMock(return_value=None)
    mock.record_api_usage = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def mock_answerer() -> MagicMock:
    mock = MagicMock(spec=IAiAnswerer)
    mock.generate = AsyncMock(
        return_value=GenerationResult(
            content="Generated answer",
            model="test-model",
            usage=TokenUsage(input_tokens=100, output_tokens=20, total_tokens=120, cost=0.001),
            finish_reason="stop",
        )
    )
    mock.get_provider_name.return_value = "mock_llm"
    mock.get_model.return_value = "test-model"
    mock.is_available.return_value = True
    return mock


# ---------------------------------------------------------------------------
# In-memory provider doubles for end-to-end runs
# ---------------------------------------------------------------------------

_BAG_DIMENSIONS = 32


def _bag_of_words_vector(text: str) -> list[float]:
    """Deterministic unit vector: hashed word counts, so shared words mean similarity."""
    vector = [0.0] * _BAG_DIMENSIONS
    for word in re.findall(r"\w+", text.lower()):
        bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % _BAG_DIMENSIONS
        vector[bucket] += 1.0
    norm = math.sqrt(sum(v * v for v in vector)) or 1.0
    return [v / norm for v in vector]


class BagOfWordsEmbedder(IEmbeddingProvider):
    """Embedding provider that needs no network."""

    def __init__(self) -> None:
        self.calls = 0

    async def generate(self, text: str) -> list[float]:
        self.calls += 1
        return _bag_of_words_vector(text)

    async def generate_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        return [_bag_of_words_vector(t) for t in texts]

    def get_model_name(self) -> str:
        return "bag-of-words"

    def get_dimensions(self) -> int:
        return _BAG_DIMENSIONS

    def get_max_input_tokens(self) -> int:
        return 8191

    def get_provider_name(self) -> str:
        return "mock_embeddings"

    def is_available(self) -> bool:
        return True


class InMemoryVectorIndex(IVectorIndex):
    """Dict-backed vector index scoring by cosine similarity."""

    def __init__(self) -> None:
        self.vectors: dict[str, tuple[list[float], dict[str, Any]]] = {}

    async def upsert(self, vector_id: str, vector: list[float], metadata: dict[str, Any]) -> bool:
        self.vectors[vector_id] = (list(vector), dict(metadata))
        return True

    async def delete(self, vector_ids: list[str]) -> bool:
        for vector_id in vector_ids:
            self.vectors.pop(vector_id, None)
        return True

    async def delete_all(self) -> bool:
        self.vectors.clear()
        return True

    async def query(
        self, vector: list[float], limit: int, threshold: float = 0.0
    ) -> list[VectorMatch]:
        matches = []
        for vector_id, (stored, metadata) in self.vectors.items():
            score = max(0.0, min(1.0, sum(a * b for a, b in zip(vector, stored))))
            if score >= threshold:
                matches.append(VectorMatch(id=vector_id, score=score, metadata=metadata))
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:limit]

    async def stats(self) -> VectorIndexStats:
        return VectorIndexStats(total_vectors=len(self.vectors), dimensions=_BAG_DIMENSIONS)

    def get_provider_name(self) -> str:
        return "memory"

    def is_available(self) -> bool:
        return True
