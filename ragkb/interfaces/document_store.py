"""Abstract base class for the relational source of truth.

The document store owns Documents, Chunks, ProcessingJobs and the
append-only analytics rows.  Every external side effect in the pipeline
(vector upsert/delete, remote job submission) is followed by a state
update here; all update methods are idempotent so they can be retried
independently of the remote call.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ragkb.models.answers import ApiUsageRecord
from ragkb.models.documents import Chunk, Document, DocumentStatus
from ragkb.models.extraction import ExtractedChunk
from ragkb.models.jobs import JobKind, ProcessingJob
from ragkb.models.retrieval import SearchQueryRecord


# Concrete implementations:
#   SQLiteDocumentStore  -- aiosqlite, file-backed
# Located in: ragkb/providers/store/
class IDocumentStore(ABC):
    """Contract for document, chunk, job and analytics persistence."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""

    # -- Documents ---------------------------------------------------------

    @abstractmethod
    async def create_document(self, document: Document) -> Document:
        """Insert *document* and return it with its assigned id.

        Raises
        ------
        ragkb.utils.errors.InvalidInputError
            If a document with the same ``file_hash`` already exists.
        """

    @abstractmethod
    async def get_document(self, document_id: int) -> Document | None:
        """Return the document or ``None``."""

    @abstractmethod
    async def find_document_by_hash(self, file_hash: str) -> Document | None:
        """Return the document whose content hash is *file_hash*, if any."""

    @abstractmethod
    async def update_document(self, document: Document) -> Document:
        """Persist every mutable field of *document*."""

    @abstractmethod
    async def delete_document(self, document_id: int) -> bool:
        """Delete the document, cascading to its chunks and jobs."""

    @abstractmethod
    async def list_documents(
        self,
        status: DocumentStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Document]:
        """Return documents newest first, optionally filtered by status."""

    # -- Chunks ------------------------------------------------------------

    @abstractmethod
    async def create_chunks(
        self, document_id: int, chunks: list[ExtractedChunk]
    ) -> list[Chunk]:
        """Insert *chunks* in order with contiguous ``chunk_index`` from 0."""

    @abstractmethod
    async def delete_chunks(self, document_id: int) -> int:
        """Delete all chunks of a document; return how many were removed."""

    @abstractmethod
    async def get_chunk(self, chunk_id: int) -> Chunk | None:
        """Return the chunk or ``None``."""

    @abstractmethod
    async def list_chunks(self, document_id: int) -> list[Chunk]:
        """Return a document's chunks ordered by ``chunk_index``."""

    @abstractmethod
    async def list_unsynced_chunks(self, document_id: int) -> list[Chunk]:
        """Return chunks whose ``vector_database_synced_at`` is null."""

    @abstractmethod
    async def update_chunk(self, chunk: Chunk) -> Chunk:
        """Persist every mutable field of *chunk*."""

    @abstractmethod
    async def count_chunks(self, document_id: int) -> tuple[int, int]:
        """Return ``(total_chunks, synced_chunks)`` for a document."""

    @abstractmethod
    async def get_chunks_with_titles(self, chunk_ids: list[int]) -> dict[int, tuple[Chunk, str]]:
        """Return ``{chunk_id: (chunk, document_title)}`` for the ids that exist."""

    @abstractmethod
    async def keyword_search(self, query: str, limit: int) -> list[tuple[Chunk, str]]:
        """Case-insensitive substring match over chunk content.

        Returns ``(chunk, document_title)`` pairs, at most *limit*.
        """

    # -- Processing jobs ---------------------------------------------------

    @abstractmethod
    async def create_job(self, job: ProcessingJob) -> ProcessingJob:
        """Insert *job* and return it with its assigned id."""

    @abstractmethod
    async def get_job(self, job_id: int) -> ProcessingJob | None:
        """Return the job or ``None``."""

    @abstractmethod
    async def update_job(self, job: ProcessingJob) -> ProcessingJob:
        """Persist every mutable field of *job*."""

    @abstractmethod
    async def find_active_job(
        self, document_id: int, kind: JobKind, chunk_id: int | None = None
    ) -> ProcessingJob | None:
        """Return the most recent not-completed job of *kind* for a document.

        With *chunk_id* only jobs recorded against that chunk are considered.
        """

    @abstractmethod
    async def find_job_by_external_id(self, external_job_id: str) -> ProcessingJob | None:
        """Return the job tracking the given remote job id."""

    @abstractmethod
    async def fail_open_jobs(
        self,
        document_id: int,
        kind: JobKind,
        error_message: str,
        chunk_id: int | None = None,
    ) -> int:
        """Mark every unfinished job of *kind* for a document (or one chunk) as failed."""

    # -- Analytics ---------------------------------------------------------

    @abstractmethod
    async def record_search_query(self, record: SearchQueryRecord) -> None:
        """Append a search analytics row."""

    @abstractmethod
    async def record_api_usage(self, record: ApiUsageRecord) -> None:
        """Append an API usage row."""

    @abstractmethod
    async def usage_summary(self) -> dict[str, Any]:
        """Return token and cost totals grouped by provider and operation."""

    # -- Maintenance -------------------------------------------------------

    @abstractmethod
    async def all_source_paths(self) -> list[str]:
        """Return the blob handles of every document that has one."""

    @abstractmethod
    async def clear_all(self) -> None:
        """Delete every document, chunk and job."""
