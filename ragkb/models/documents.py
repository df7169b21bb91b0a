"""Document and chunk models for the ragkb knowledge base.

A :class:`Document` is the unit of ingestion; it owns an ordered set of
:class:`Chunk` rows, the unit of embedding and retrieval.  Both are frozen
Pydantic v2 models: every state change produces a copy that the
:class:`~ragkb.interfaces.document_store.IDocumentStore` persists.

Lifecycle overview:
    1. INGEST: a Document is created with status ``pending``, keyed by the
       SHA-256 of its raw bytes so identical content is never stored twice.
    2. EXTRACT: the chunk extractor returns ordered chunks which become
       Chunk rows (ordinal ``chunk_index`` assigned once, never reordered).
    3. EMBED + SYNC: each chunk's embedding is upserted into the vector
       index; ``vector_database_synced_at`` records success.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ragkb.utils.hashing import content_hash


def utcnow() -> datetime:
    """Timezone-aware current time used for every persisted timestamp."""
    return datetime.now(timezone.utc)


class SourceKind(str, Enum):  # noqa: UP042
    UPLOAD = "upload"
    URL = "url"
    API = "api"
    TEXT = "text"


class DocumentStatus(str, Enum):  # noqa: UP042
    """Document processing state machine: pending -> processing -> completed | failed."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.COMPLETED, DocumentStatus.FAILED)


# ---------------------------------------------------------------------------
# Document: one ingested source, deduplicated by content hash.
# ---------------------------------------------------------------------------
class Document(BaseModel):
    """An ingested source document and its processing state."""

    model_config = ConfigDict(frozen=True)

    id: int | None = Field(default=None, description="Store-assigned identifier.")
    title: str = Field(min_length=1)
    source_type: SourceKind = SourceKind.TEXT
    source_path: str | None = Field(
        default=None, description="Blob storage handle of the uploaded file, if any."
    )
    file_hash: str = Field(description="SHA-256 of the raw bytes; unique across documents.")
    file_size: int = Field(default=0, ge=0)
    mime_type: str = "text/plain"
    processing_status: DocumentStatus = DocumentStatus.PENDING
    processing_job_id: int | None = Field(
        default=None, description="ProcessingJob that drives remote extraction."
    )
    external_document_id: str | None = None
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    def progress(self, total_chunks: int, synced_chunks: int) -> float:
        """Percentage of chunks synced to the vector index.

        Completed documents always report 100 and failed ones 0, whatever
        their chunk counts.
        """
        if self.processing_status == DocumentStatus.COMPLETED:
            return 100.0
        if self.processing_status == DocumentStatus.FAILED:
            return 0.0
        if total_chunks <= 0:
            return 0.0
        return round(synced_chunks / total_chunks * 100, 2)


# ---------------------------------------------------------------------------
# Chunk: a bounded span of a document's text.
# ---------------------------------------------------------------------------
class Chunk(BaseModel):
    """A retrievable text span owned by a :class:`Document`.

    ``chunk_hash`` is always the SHA-256 of ``content``.  When omitted at
    construction it is computed; a mismatching value is rejected.  Use
    :meth:`with_content` to change text: it recomputes the hash and
    clears ``vector_database_synced_at`` so the chunk is re-synced.
    """

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    document_id: int
    chunk_index: int = Field(ge=0, description="Ordinal position within the document.")
    content: str
    chunk_hash: str = ""
    vector_id: str | None = None
    vector_database_synced_at: datetime | None = None
    embedding_model: str | None = None
    embedding_dimensions: int | None = None
    chunk_metadata: dict[str, Any] = Field(default_factory=dict)
    keywords: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _fill_hash(cls, data: Any) -> Any:
        if isinstance(data, dict) and "content" in data:
            expected = content_hash(data["content"])
            given = data.get("chunk_hash")
            if not given:
                data = {**data, "chunk_hash": expected}
            elif given != expected:
                raise ValueError("chunk_hash does not match content")
        return data

    @property
    def is_synced(self) -> bool:
        return self.vector_database_synced_at is not None

    def with_content(self, content: str) -> Chunk:
        """Return a copy holding *content*, with a fresh hash and no sync stamp."""
        if content == self.content:
            return self
        return self.model_copy(
            update={
                "content": content,
                "chunk_hash": content_hash(content),
                "vector_database_synced_at": None,
            }
        )

    def vector_id_for(self) -> str:
        """Deterministic vector id ``chunk_{id}_{hash}``.

        Unchanged chunks map to the same id (safe overwrite); changed content
        yields a new id.
        """
        if self.id is None:
            raise ValueError("chunk must be persisted before it has a vector id")
        return f"chunk_{self.id}_{self.chunk_hash}"


class StatusSnapshot(BaseModel):
    """Point-in-time view of a document's processing, returned by ``get_status``."""

    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    status: DocumentStatus
    progress: float = Field(ge=0.0, le=100.0)
    total_chunks: int = Field(ge=0)
    synced_chunks: int = Field(ge=0)
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
