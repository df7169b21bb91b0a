"""Answer-generation models: provider results, stream events and usage rows."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from ragkb.models.documents import utcnow


class TokenUsage(BaseModel):
    """Token accounting reported by an AI provider for one call."""

    model_config = ConfigDict(frozen=True)

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    cost: float = Field(default=0.0, ge=0.0, description="Estimated cost in USD.")


class GenerationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    model: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    finish_reason: str | None = None


class StreamEventType(str, Enum):  # noqa: UP042
    SOURCES = "sources"
    CONTENT = "content"
    COMPLETE = "complete"


class AnswerSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    document_id: int
    document_title: str
    chunk_id: int
    similarity_score: float


class StreamEvent(BaseModel):
    """One event of a streamed answer.

    A stream is finite: zero or more ``content`` events carrying partial
    text, then exactly one ``complete`` event whose ``usage`` is set.  The
    question-answering layer prepends a ``sources`` event.
    """

    model_config = ConfigDict(frozen=True)

    type: StreamEventType
    content: str = ""
    is_complete: bool = False
    usage: TokenUsage | None = None
    sources: list[AnswerSource] = Field(default_factory=list)
    model: str | None = None


class AnswerResult(BaseModel):
    """Result of ``ask``: the answer text plus provenance and accounting."""

    model_config = ConfigDict(frozen=True)

    answer: str
    sources: list[AnswerSource] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    usage: TokenUsage | None = None


class ApiUsageRecord(BaseModel):
    """Per-call accounting row for external providers."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    api_provider: str
    operation_type: str
    tokens_used: int | None = None
    cost_usd: float | None = None
    document_id: int | None = None
    created_at: datetime = Field(default_factory=utcnow)
