"""Retrieval models: vector matches, merged search hits and analytics rows."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ragkb.models.documents import utcnow


class SearchMode(str, Enum):  # noqa: UP042
    VECTOR = "vector"
    KEYWORD = "keyword"
    HYBRID = "hybrid"


class VectorMatch(BaseModel):
    """One raw hit returned by a vector index query."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Vector id, ``chunk_{chunk_id}_{hash}``.")
    score: float = Field(description="Backend similarity score, higher is closer.")
    metadata: dict[str, Any] = Field(default_factory=dict)


class VectorIndexStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_vectors: int = Field(default=0, ge=0)
    dimensions: int = Field(default=0, ge=0)
    index_fullness: float = 0.0


class ScoredChunk(BaseModel):
    """A chunk ranked by the retrieval engine.

    ``similarity_score`` is the raw score of whichever method found the
    chunk first (vector similarity, or the keyword relevance for
    keyword-only hits).  ``hybrid_score`` is the weighted combination used
    for ranking when hybrid search is on.
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: int
    content: str
    similarity_score: float = Field(ge=0.0, le=1.0)
    hybrid_score: float | None = None
    document_id: int
    document_title: str
    chunk_index: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def rank_score(self) -> float:
        return self.hybrid_score if self.hybrid_score is not None else self.similarity_score


class SearchQueryRecord(BaseModel):
    """Append-only analytics row written once per search."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    query_text: str
    search_type: SearchMode
    results_count: int = Field(ge=0)
    response_time_ms: int = Field(ge=0)
    similarity_scores: list[float] = Field(default_factory=list)
    user_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def average_similarity(self) -> float:
        if not self.similarity_scores:
            return 0.0
        return sum(self.similarity_scores) / len(self.similarity_scores)

    @property
    def max_similarity(self) -> float:
        return max(self.similarity_scores, default=0.0)

    @property
    def min_similarity(self) -> float:
        return min(self.similarity_scores, default=0.0)
