"""Chunk-extraction models shared by the remote extractor and local chunker."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ExtractedChunk(BaseModel):
    """One ordered chunk produced by extraction, before it is persisted."""

    model_config = ConfigDict(frozen=True)

    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    keywords: list[str] = Field(default_factory=list)


class ExtractionOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    chunking_strategy: str = "semantic"
    chunk_size: int = 1000
    chunk_overlap: int = 200
    extract_metadata: bool = True
    webhook_url: str | None = None


class ExtractionSubmission(BaseModel):
    """Identifiers returned when a document is accepted for remote extraction."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    document_id: str | None = None
    cost: float | None = None


class ExtractionStatus(BaseModel):
    """Result of polling a remote extraction job.

    ``status`` is kept as a free string: remote services may introduce new
    values, which the poller logs and treats as "check again later".
    ``error`` as status means the poll request itself failed.
    """

    model_config = ConfigDict(frozen=True)

    status: str = "unknown"
    progress: float = 0.0
    error: str | None = None
    estimated_completion: str | None = None


class ExtractionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    chunks: list[ExtractedChunk]
    metadata: dict[str, Any] = Field(default_factory=dict)
    processing_stats: dict[str, Any] = Field(default_factory=dict)
