"""Document ingestion pipeline: upload -> extract -> embed -> vector sync.

The :class:`IngestionPipeline` owns every state transition of a Document
and its Chunks.  Long-running steps are not run inline: they are queued
as independent tasks (see :mod:`ragkb.services.ingestion.tasks`) whose
handlers call back into the step methods here.

    1. ``ingest`` validates and deduplicates the input, stores the raw
       bytes and creates a ``pending`` Document.
    2. Extraction runs remotely (``process_document`` then periodic
       ``sync_processing_status`` polls, or a webhook) or locally with
       :class:`SentenceChunker` when no extraction API is configured.
    3. Each unsynced chunk gets its own ``generate_embeddings`` task,
       dispatched with random jitter.
    4. Each embedding is handed to a ``sync_vector_database`` task which
       upserts it under the chunk's deterministic vector id.

Every external side effect is followed by a state update in the
document store; the store is the single source of truth.
"""

from __future__ import annotations

import asyncio
import mimetypes
import random
import time
from collections import defaultdict
from pathlib import PurePosixPath
from typing import Any

import structlog

from ragkb.config.rag_config import RagConfig
from ragkb.interfaces.blob_storage import IBlobStorage
from ragkb.interfaces.cache_provider import ICacheProvider
from ragkb.interfaces.chunk_extractor import IChunkExtractor
from ragkb.interfaces.document_store import IDocumentStore
from ragkb.interfaces.embedding_provider import IEmbeddingProvider
from ragkb.interfaces.task_queue import ITaskQueue
from ragkb.interfaces.vector_index import IVectorIndex
from ragkb.models.answers import ApiUsageRecord
from ragkb.models.documents import (
    Chunk,
    Document,
    DocumentStatus,
    SourceKind,
    StatusSnapshot,
    utcnow,
)
from ragkb.models.extraction import ExtractedChunk, ExtractionOptions
from ragkb.models.jobs import JobKind, JobStatus, ProcessingJob
from ragkb.providers.storage.local_blob_storage import content_addressed_path
from ragkb.services.ingestion.chunker import SentenceChunker
from ragkb.services.ingestion.text_extractor import extract_text
from ragkb.services.job_tracker import ProcessingJobTracker
from ragkb.services.retrieval_engine import SEARCH_CACHE_PREFIX
from ragkb.utils.errors import (
    DocumentNotFoundError,
    DocumentProcessingFailedError,
    InvalidInputError,
    VectorDatabaseError,
)
from ragkb.utils.hashing import content_hash

logger = structlog.get_logger(logger_name=__name__)

PROCESS_DOCUMENT = "process_document"
SYNC_PROCESSING_STATUS = "sync_processing_status"
GENERATE_EMBEDDINGS = "generate_embeddings"
SYNC_VECTOR_DATABASE = "sync_vector_database"

_RUNNING_STATUSES = ("processing", "in_progress")
_WAITING_STATUSES = ("queued", "pending")
_METADATA_CONTENT_LIMIT = 1000
_DEFAULT_JOB_RETRIES = 3


class IngestionPipeline:
    """Drives documents from raw input to chunked, embedded, vector-synced state.

    Parameters
    ----------
    store:
        Relational source of truth for documents, chunks and jobs.
    embedder:
        Embedding provider, normally an
        :class:`~ragkb.services.embedding_service.EmbeddingService`.
    vector_index:
        Similarity index holding chunk vectors.
    queue:
        Task queue that runs the asynchronous pipeline steps.
    config:
        Resolved pipeline policy.
    blob_storage:
        Where raw document bytes are kept.  Required for remote extraction
        and for :meth:`reprocess`.
    extractor:
        Remote extraction API.  ``None`` selects local sentence chunking.
    cache:
        Shared response cache.  Cached search results are dropped whenever
        chunks are removed; :meth:`clear_all` empties it.
    webhook_url:
        Callback URL passed to the extraction API.
    rng:
        Random source for embedding dispatch jitter.
    """

    def __init__(
        self,
        store: IDocumentStore,
        embedder: IEmbeddingProvider,
        vector_index: IVectorIndex,
        queue: ITaskQueue,
        config: RagConfig,
        *,
        blob_storage: IBlobStorage | None = None,
        extractor: IChunkExtractor | None = None,
        cache: ICacheProvider | None = None,
        webhook_url: str | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._vector_index = vector_index
        self._queue = queue
        self._config = config
        self._blob = blob_storage
        self._extractor = extractor
        self._cache = cache
        self._webhook_url = webhook_url or None
        self._rng = rng or random.Random()
        self._tracker = ProcessingJobTracker(store)
        self._chunker = SentenceChunker(
            chunk_size=config.chunking.chunk_size,
            chunk_overlap=config.chunking.chunk_overlap,
        )
        # Serializes result collection per document within this process.
        self._completion_locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def store(self) -> IDocumentStore:
        return self._store

    @property
    def tracker(self) -> ProcessingJobTracker:
        return self._tracker

    @property
    def external_processing(self) -> bool:
        return self._extractor is not None

    def job_max_retries(self, kind: JobKind) -> int:
        """Retries a job of *kind* gets after its first failed attempt."""
        if kind == JobKind.DOCUMENT_PROCESSING:
            return self._config.external_processing.retry_attempts
        return _DEFAULT_JOB_RETRIES

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def ingest(
        self,
        title: str,
        content: bytes | str,
        *,
        filename: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Document:
        """Create a Document from raw text or uploaded bytes.

        Identical content (same SHA-256) returns the existing Document
        untouched.  With an extraction API configured the document is
        returned ``pending`` and processed in the background; otherwise it
        is chunked inline and returned ``completed``.

        Raises
        ------
        InvalidInputError
            Empty title or content, disallowed file type, or file too large.
        DocumentProcessingFailedError
            Local extraction failed; the Document is left ``failed``.
        """
        title = (title or "").strip()
        if not title:
            raise InvalidInputError(message="Document title must not be empty")

        if isinstance(content, str):
            raw = content.encode("utf-8")
            source_kind = SourceKind.TEXT
            mime_type = "text/plain"
            extension = "txt"
        else:
            raw = bytes(content)
            source_kind = SourceKind.UPLOAD
            extension = self._upload_extension(filename)
            mime_type = mimetypes.guess_type(filename or "")[0] or "application/octet-stream"

        if not raw.strip():
            raise InvalidInputError(message="Document content is empty")
        self._check_size(raw)

        file_hash = content_hash(raw)
        existing = await self._store.find_document_by_hash(file_hash)
        if existing is not None:
            logger.info("document_already_ingested", document_id=existing.id, file_hash=file_hash)
            return existing

        source_path = None
        if self._blob is not None:
            source_path = await self._blob.store(
                raw, content_addressed_path(file_hash, filename or f"document.{extension}")
            )

        try:
            document = await self._store.create_document(
                Document(
                    title=title,
                    source_type=source_kind,
                    source_path=source_path,
                    file_hash=file_hash,
                    file_size=len(raw),
                    mime_type=mime_type,
                    metadata={k: str(v) for k, v in (metadata or {}).items()},
                )
            )
        except InvalidInputError:
            # A concurrent ingest of the same bytes won the insert.
            existing = await self._store.find_document_by_hash(file_hash)
            if existing is None:
                raise
            return existing

        logger.info(
            "document_ingested",
            document_id=document.id,
            title=title,
            source_type=source_kind.value,
            bytes=len(raw),
        )

        if self._extractor is not None:
            await self._queue.dispatch(PROCESS_DOCUMENT, {"document_id": document.id})
            return document
        return await self.process_locally(document, raw, extension)

    async def reprocess(self, document_id: int) -> Document:
        """Purge a document's chunks and vectors and run extraction again.

        Raises
        ------
        DocumentNotFoundError
            Unknown document id.
        InvalidInputError
            The document's source bytes were never stored.
        """
        document = await self._require_document(document_id)
        if not document.source_path or self._blob is None:
            raise InvalidInputError(
                message=f"Document {document_id} has no stored source to reprocess"
            )

        await self._purge_chunks(document_id)
        await self._store.fail_open_jobs(
            document_id, JobKind.DOCUMENT_PROCESSING, "Superseded by reprocess request"
        )
        document = await self._store.update_document(
            document.model_copy(
                update={
                    "processing_status": DocumentStatus.PENDING,
                    "processing_job_id": None,
                    "external_document_id": None,
                    "processing_started_at": None,
                    "processing_completed_at": None,
                }
            )
        )
        logger.info("document_reprocess_requested", document_id=document_id)

        if self._extractor is not None:
            await self._queue.dispatch(PROCESS_DOCUMENT, {"document_id": document_id})
            return document
        raw = await self._blob.read(document.source_path)
        return await self.process_locally(
            document, raw, PurePosixPath(document.source_path).suffix
        )

    async def get_status(self, document_id: int) -> StatusSnapshot:
        document = await self._require_document(document_id)
        total, synced = await self._store.count_chunks(document_id)
        return StatusSnapshot(
            id=document_id,
            title=document.title,
            status=document.processing_status,
            progress=document.progress(total, synced),
            total_chunks=total,
            synced_chunks=synced,
            processing_started_at=document.processing_started_at,
            processing_completed_at=document.processing_completed_at,
        )

    async def list_documents(
        self,
        status: DocumentStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Document]:
        return await self._store.list_documents(status=status, limit=limit, offset=offset)

    async def delete(self, document_id: int) -> bool:
        """Delete a document with its blob, chunk vectors, chunks and jobs.

        Blob and vector deletion failures are logged; the relational rows
        are removed regardless.
        """
        document = await self._require_document(document_id)

        if document.source_path and self._blob is not None:
            try:
                await self._blob.delete(document.source_path)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "blob_delete_failed",
                    document_id=document_id,
                    handle=document.source_path,
                    error=str(exc),
                )

        chunks = await self._store.list_chunks(document_id)
        await self._delete_vectors(document_id, [c.vector_id for c in chunks if c.vector_id])

        deleted = await self._store.delete_document(document_id)
        self._completion_locks.pop(document_id, None)
        await self._invalidate_search_cache()
        logger.info("document_deleted", document_id=document_id, chunks=len(chunks))
        return deleted

    async def clear_all(self) -> bool:
        """Remove every vector, blob, document and cached entry.

        Returns ``False`` when the vector index could not be emptied; the
        relational data is cleared either way.
        """
        vectors_cleared = await self._vector_index.delete_all()
        if not vectors_cleared:
            logger.warning("vector_delete_all_failed")

        if self._blob is not None:
            for handle in await self._store.all_source_paths():
                try:
                    await self._blob.delete(handle)
                except Exception as exc:  # noqa: BLE001
                    logger.warning("blob_delete_failed", handle=handle, error=str(exc))

        await self._store.clear_all()
        if self._cache is not None:
            await self._cache.clear()
        logger.info("knowledge_base_cleared", vectors_cleared=vectors_cleared)
        return vectors_cleared

    # ------------------------------------------------------------------
    # Extraction steps
    # ------------------------------------------------------------------

    async def process_locally(self, document: Document, raw: bytes, extension: str) -> Document:
        """Chunk *raw* inline and mark the document completed."""
        document = await self._store.update_document(
            document.model_copy(
                update={
                    "processing_status": DocumentStatus.PROCESSING,
                    "processing_started_at": utcnow(),
                }
            )
        )
        try:
            pieces = self._chunker.split(extract_text(raw, extension))
            if not pieces:
                raise DocumentProcessingFailedError(message="No text could be extracted")
            await self.materialize_chunks(document.id, pieces)
        except Exception as exc:
            await self._mark_document(document, DocumentStatus.FAILED)
            logger.error("local_processing_failed", document_id=document.id, error=str(exc))
            if isinstance(exc, DocumentProcessingFailedError):
                raise
            raise DocumentProcessingFailedError(message=str(exc)) from exc

        document = await self._mark_document(document, DocumentStatus.COMPLETED)
        logger.info("local_processing_completed", document_id=document.id, chunks=len(pieces))
        await self.dispatch_embeddings(document.id)
        return document

    async def submit_extraction(self, document_id: int) -> None:
        """Send a document's stored bytes to the extraction API.

        On success the document is ``processing`` and the first status poll
        is scheduled.  A submit error is recorded on the job (which moves to
        ``retrying`` while retries remain) and re-raised so the task queue
        runs the next attempt; the document stays ``pending`` until
        :meth:`abandon_extraction` gives up on it.
        """
        document = await self._require_document(document_id)
        if self._extractor is None:
            logger.info("external_processing_disabled", document_id=document_id)
            return
        if document.processing_status == DocumentStatus.COMPLETED:
            logger.info("document_already_processed", document_id=document_id)
            return

        raw = await self._read_source(document)
        if raw is None:
            await self._mark_document(document, DocumentStatus.FAILED)
            return

        job = await self._tracker.begin_attempt(
            document_id,
            JobKind.DOCUMENT_PROCESSING,
            provider=self._extractor.get_provider_name(),
            max_retries=self.job_max_retries(JobKind.DOCUMENT_PROCESSING),
        )
        options = ExtractionOptions(
            chunking_strategy=self._config.chunking.strategy,
            chunk_size=self._config.chunking.chunk_size,
            chunk_overlap=self._config.chunking.chunk_overlap,
            extract_metadata=self._config.external_processing.extract_metadata,
            webhook_url=self._webhook_url,
        )
        filename = PurePosixPath(document.source_path or "document.txt").name

        try:
            submission = await self._extractor.submit(raw, filename, document.mime_type, options)
        except Exception as exc:
            job = await self._tracker.record_failure(job, str(exc))
            logger.error(
                "extraction_submit_failed",
                document_id=document_id,
                job_id=job.id,
                retry_count=job.retry_count,
                error=str(exc),
            )
            if isinstance(exc, DocumentProcessingFailedError):
                raise
            raise DocumentProcessingFailedError(
                message=str(exc), provider_name=self._extractor.get_provider_name()
            ) from exc

        job = await self._tracker.start(job, submission.job_id)
        await self._store.update_document(
            document.model_copy(
                update={
                    "processing_status": DocumentStatus.PROCESSING,
                    "processing_job_id": job.id,
                    "external_document_id": submission.document_id,
                    "processing_started_at": utcnow(),
                    "processing_completed_at": None,
                }
            )
        )
        await self._record_usage(
            self._extractor.get_provider_name(),
            "document_processing",
            cost=submission.cost,
            document_id=document_id,
        )
        logger.info(
            "document_submitted_for_processing",
            document_id=document_id,
            external_job_id=submission.job_id,
        )
        await self._queue.dispatch(
            SYNC_PROCESSING_STATUS,
            {"document_id": document_id, "poll_started_at": time.time()},
            delay=self._config.queue.initial_status_delay,
        )

    async def check_extraction_status(self, document_id: int) -> float | None:
        """Poll the remote job once and apply what it reports.

        Returns the delay before the next poll, or ``None`` when polling
        should stop (finished document or no remote job to watch).
        """
        document = await self._require_document(document_id)
        if document.processing_status.is_terminal:
            logger.info(
                "status_sync_skipped",
                document_id=document_id,
                status=document.processing_status.value,
            )
            return None
        if self._extractor is None:
            return None

        job = await self._store.find_active_job(document_id, JobKind.DOCUMENT_PROCESSING)
        if job is None or not job.external_job_id:
            logger.warning("no_active_processing_job", document_id=document_id)
            return None

        status = await self._extractor.poll(job.external_job_id)
        logger.info(
            "processing_status_retrieved",
            document_id=document_id,
            external_job_id=job.external_job_id,
            status=status.status,
            progress=status.progress,
        )

        queue_config = self._config.queue
        if status.status == "completed":
            await self.complete_extraction(document, job)
            return None
        if status.status == "failed":
            await self.fail_extraction(
                document, job, status.error or "Unknown error from external processing API"
            )
            return None
        if status.status in _RUNNING_STATUSES:
            await self._tracker.progress(job, status.progress)
            return queue_config.status_poll_interval
        if status.status in _WAITING_STATUSES:
            return queue_config.status_poll_interval
        if status.status == "error":
            return queue_config.status_poll_error_interval

        logger.warning("unknown_processing_status", document_id=document_id, status=status.status)
        return queue_config.status_poll_interval

    async def complete_extraction(
        self,
        document: Document,
        job: ProcessingJob,
        extracted: list[ExtractedChunk] | None = None,
    ) -> Document:
        """Store a finished job's chunks, mark the document completed and queue embedding.

        Chunks are fetched from the extraction API unless *extracted*
        already carries them (webhook payloads may).  Calls for one document
        run one at a time, and each re-reads the document and job first: a
        document already ``completed`` or a job already finished is returned
        unchanged, so a webhook and a poll reporting the same completion
        store the chunks once.
        """
        async with self._completion_locks[document.id]:
            current = await self._store.get_document(document.id) or document
            if current.processing_status == DocumentStatus.COMPLETED:
                return current
            if job.id is not None:
                job = await self._store.get_job(job.id) or job
            if job.status == JobStatus.COMPLETED:
                logger.info("job_already_completed", document_id=document.id, job_id=job.id)
                return current
            return await self._collect_extraction(current, job, extracted)

    async def _collect_extraction(
        self,
        document: Document,
        job: ProcessingJob,
        extracted: list[ExtractedChunk] | None,
    ) -> Document:
        if extracted is None:
            if self._extractor is None or not job.external_job_id:
                raise DocumentProcessingFailedError(
                    message="No remote job to collect results from"
                )
            extracted = (await self._extractor.fetch_result(job.external_job_id)).chunks
        if not extracted:
            await self.fail_extraction(document, job, "Processing returned no chunks")
            raise DocumentProcessingFailedError(message="Processing returned no chunks")

        chunks = await self.materialize_chunks(document.id, extracted)
        await self._tracker.complete(job)
        document = await self._mark_document(document, DocumentStatus.COMPLETED)
        logger.info(
            "document_processing_completed",
            document_id=document.id,
            external_job_id=job.external_job_id,
            chunks_created=len(chunks),
        )
        await self.dispatch_embeddings(document.id)
        return document

    async def fail_extraction(
        self, document: Document, job: ProcessingJob, error_message: str
    ) -> Document:
        await self._tracker.fail(job, error_message)
        document = await self._mark_document(document, DocumentStatus.FAILED)
        logger.error(
            "document_processing_failed",
            document_id=document.id,
            external_job_id=job.external_job_id,
            error=error_message,
        )
        return document

    async def abandon_extraction(self, document_id: int, error_message: str) -> None:
        """Give up on a document after its processing task ran out of retries."""
        document = await self._store.get_document(document_id)
        if document is not None:
            await self._mark_document(document, DocumentStatus.FAILED)
        closed = await self._store.fail_open_jobs(
            document_id, JobKind.DOCUMENT_PROCESSING, error_message
        )
        logger.error(
            "document_processing_abandoned",
            document_id=document_id,
            jobs_failed=closed,
            error=error_message,
        )

    async def materialize_chunks(
        self, document_id: int, extracted: list[ExtractedChunk]
    ) -> list[Chunk]:
        """Replace a document's chunks with *extracted*, indexed from 0."""
        await self._purge_chunks(document_id)
        return await self._store.create_chunks(document_id, extracted)

    # ------------------------------------------------------------------
    # Embedding and vector sync steps
    # ------------------------------------------------------------------

    async def dispatch_embeddings(self, document_id: int) -> int:
        """Queue one embedding task per unsynced chunk, with random jitter."""
        chunks = await self._store.list_unsynced_chunks(document_id)
        queue_config = self._config.queue
        for chunk in chunks:
            await self._queue.dispatch(
                GENERATE_EMBEDDINGS,
                {"chunk_id": chunk.id},
                delay=self._rng.uniform(
                    queue_config.embedding_jitter_min, queue_config.embedding_jitter_max
                ),
            )
        logger.info("embedding_generation_dispatched", document_id=document_id, chunks=len(chunks))
        return len(chunks)

    async def generate_embedding(self, chunk_id: int) -> list[float]:
        """Embed one chunk, record the model on it and queue its vector sync."""
        chunk = await self._require_chunk(chunk_id)
        job = await self._tracker.begin_attempt(
            chunk.document_id,
            JobKind.EMBEDDING_GENERATION,
            chunk_id=chunk_id,
            provider=self._embedder.get_provider_name(),
            max_retries=self.job_max_retries(JobKind.EMBEDDING_GENERATION),
        )
        try:
            vector = await self._embedder.generate(chunk.content)
        except Exception as exc:
            await self._tracker.record_failure(job, str(exc))
            raise

        await self._store.update_chunk(
            chunk.model_copy(
                update={
                    "embedding_model": self._embedder.get_model_name(),
                    "embedding_dimensions": len(vector),
                }
            )
        )
        await self._tracker.complete(job)
        logger.info(
            "embedding_generated",
            chunk_id=chunk_id,
            dimensions=len(vector),
            model=self._embedder.get_model_name(),
        )
        await self._queue.dispatch(
            SYNC_VECTOR_DATABASE,
            {"chunk_id": chunk_id, "embedding": vector},
            delay=self._config.queue.vector_sync_delay,
        )
        return vector

    async def sync_chunk(self, chunk_id: int, embedding: list[float] | None = None) -> Chunk:
        """Upsert a chunk's vector and stamp it as synced.

        The embedding is generated when not supplied.  If the chunk was
        synced earlier under a different id (its content changed), the old
        vector is deleted first.
        """
        chunk = await self._require_chunk(chunk_id)
        document = await self._store.get_document(chunk.document_id)
        job = await self._tracker.begin_attempt(
            chunk.document_id,
            JobKind.VECTOR_SYNC,
            chunk_id=chunk_id,
            provider=self._vector_index.get_provider_name(),
            max_retries=self.job_max_retries(JobKind.VECTOR_SYNC),
        )
        try:
            if embedding is None:
                embedding = await self._embedder.generate(chunk.content)
            vector_id = chunk.vector_id_for()
            if chunk.vector_id and chunk.vector_id != vector_id:
                if await self._vector_index.delete([chunk.vector_id]):
                    logger.info("stale_vector_removed", chunk_id=chunk_id, vector_id=chunk.vector_id)
                else:
                    logger.warning(
                        "stale_vector_delete_failed", chunk_id=chunk_id, vector_id=chunk.vector_id
                    )
            metadata = {
                "chunk_id": chunk_id,
                "document_id": chunk.document_id,
                "content": chunk.content[:_METADATA_CONTENT_LIMIT],
                "document_title": document.title if document else "",
                "chunk_index": chunk.chunk_index,
            }
            if not await self._vector_index.upsert(vector_id, embedding, metadata):
                raise VectorDatabaseError(
                    message="Failed to sync chunk with vector database",
                    provider_name=self._vector_index.get_provider_name(),
                )
        except Exception as exc:
            await self._tracker.record_failure(job, str(exc))
            raise

        synced = await self._store.update_chunk(
            chunk.model_copy(
                update={
                    "vector_id": vector_id,
                    "vector_database_synced_at": utcnow(),
                    "embedding_model": chunk.embedding_model or self._embedder.get_model_name(),
                    "embedding_dimensions": len(embedding),
                }
            )
        )
        await self._tracker.complete(job)
        logger.info("chunk_vector_synced", chunk_id=chunk_id, vector_id=vector_id)
        return synced

    async def abandon_jobs(self, chunk_id: int, kind: JobKind, error_message: str) -> None:
        """Fail the open jobs of *kind* recorded against *chunk_id*."""
        chunk = await self._store.get_chunk(chunk_id)
        if chunk is None:
            return
        closed = await self._store.fail_open_jobs(
            chunk.document_id, kind, error_message, chunk_id=chunk_id
        )
        logger.error(
            "chunk_jobs_abandoned",
            chunk_id=chunk_id,
            kind=kind.value,
            jobs_failed=closed,
            error=error_message,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _upload_extension(self, filename: str | None) -> str:
        if not filename:
            raise InvalidInputError(message="Uploaded files need a filename")
        extension = PurePosixPath(filename).suffix.lower().lstrip(".")
        if extension not in self._config.file_upload.allowed_types:
            raise InvalidInputError(message=f"Invalid file type: {extension or 'none'}")
        return extension

    def _check_size(self, raw: bytes) -> None:
        max_kb = self._config.file_upload.max_size_kb
        if len(raw) > max_kb * 1024:
            raise InvalidInputError(
                message=f"File too large: {len(raw) / 1024:.1f}KB exceeds {max_kb}KB"
            )

    async def _require_document(self, document_id: int) -> Document:
        document = await self._store.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(message=f"Document {document_id} not found")
        return document

    async def _require_chunk(self, chunk_id: int) -> Chunk:
        chunk = await self._store.get_chunk(chunk_id)
        if chunk is None:
            raise DocumentNotFoundError(message=f"Chunk {chunk_id} not found")
        return chunk

    async def _read_source(self, document: Document) -> bytes | None:
        if not document.source_path or self._blob is None:
            logger.error("document_has_no_source", document_id=document.id)
            return None
        try:
            return await self._blob.read(document.source_path)
        except FileNotFoundError:
            logger.error(
                "document_source_missing", document_id=document.id, handle=document.source_path
            )
            return None

    async def _mark_document(self, document: Document, status: DocumentStatus) -> Document:
        # Start from the stored row, not the caller's possibly stale copy.
        current = await self._store.get_document(document.id) or document
        return await self._store.update_document(
            current.model_copy(
                update={"processing_status": status, "processing_completed_at": utcnow()}
            )
        )

    async def _purge_chunks(self, document_id: int) -> None:
        chunks = await self._store.list_chunks(document_id)
        await self._delete_vectors(document_id, [c.vector_id for c in chunks if c.vector_id])
        if chunks:
            await self._store.delete_chunks(document_id)
            await self._invalidate_search_cache()

    async def _invalidate_search_cache(self) -> None:
        if self._cache is None:
            return
        dropped = await self._cache.delete_prefix(SEARCH_CACHE_PREFIX)
        if dropped:
            logger.debug("search_cache_invalidated", entries=dropped)

    async def _delete_vectors(self, document_id: int, vector_ids: list[str]) -> None:
        if vector_ids and not await self._vector_index.delete(vector_ids):
            logger.warning(
                "vector_delete_failed", document_id=document_id, count=len(vector_ids)
            )

    async def _record_usage(
        self,
        provider: str,
        operation: str,
        *,
        tokens: int | None = None,
        cost: float | None = None,
        document_id: int | None = None,
    ) -> None:
        if not self._config.analytics.track_usage:
            return
        try:
            await self._store.record_api_usage(
                ApiUsageRecord(
                    api_provider=provider,
                    operation_type=operation,
                    tokens_used=tokens,
                    cost_usd=cost,
                    document_id=document_id,
                )
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("usage_record_failed", operation=operation, error=str(exc))
