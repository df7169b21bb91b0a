"""Task handlers for the asynchronous pipeline steps.

Each handler is a thin adapter: it unpacks the payload, calls the
matching :class:`IngestionPipeline` step and declares its retry policy.
Handlers whose step records a processing job run ``max_retries + 1``
attempts, one per job attempt, so the queue gives up exactly when the
job's retries are exhausted.  The table shows the default of 3 retries.

=========================  =================  ========  ======
Task                       Backoff (s)        Attempts  Window
=========================  =================  ========  ======
process_document           30 / 120 / 300     4         2 h
sync_processing_status     60 / 300 / 600     10        6 h
generate_embeddings        30 / 120 / 300     4         1 h
sync_vector_database       30 / 120 / 300     4         1 h
=========================  =================  ========  ======
"""

from __future__ import annotations

import dataclasses
import time
from typing import Any

import structlog

from ragkb.interfaces.task_queue import ITaskQueue, RetryPolicy, TaskHandler
from ragkb.models.jobs import JobKind
from ragkb.services.ingestion.pipeline import (
    GENERATE_EMBEDDINGS,
    PROCESS_DOCUMENT,
    SYNC_PROCESSING_STATUS,
    SYNC_VECTOR_DATABASE,
    IngestionPipeline,
)

logger = structlog.get_logger(logger_name=__name__)

_HOUR = 3600.0


def _job_policy(policy: RetryPolicy, pipeline: IngestionPipeline, kind: JobKind) -> RetryPolicy:
    return dataclasses.replace(policy, max_attempts=pipeline.job_max_retries(kind) + 1)


class ProcessDocumentTask(TaskHandler):
    """Submit a stored document to the extraction API."""

    name = PROCESS_DOCUMENT
    policy = RetryPolicy(max_attempts=4, backoff=(30.0, 120.0, 300.0), retry_window=2 * _HOUR)

    def __init__(self, pipeline: IngestionPipeline) -> None:
        self._pipeline = pipeline
        self.policy = _job_policy(self.policy, pipeline, JobKind.DOCUMENT_PROCESSING)

    async def handle(self, payload: dict[str, Any]) -> None:
        await self._pipeline.submit_extraction(int(payload["document_id"]))

    async def on_failure(self, payload: dict[str, Any], exc: BaseException) -> None:
        await self._pipeline.abandon_extraction(int(payload["document_id"]), str(exc))


class SyncProcessingStatusTask(TaskHandler):
    """Poll a remote extraction job and reschedule itself until it finishes.

    Each poll is a fresh task, so the poll loop as a whole is bounded by
    ``poll_started_at`` in the payload rather than by the per-task retry
    window.  Past the window polling stops and the document keeps its last
    known state.
    """

    name = SYNC_PROCESSING_STATUS
    policy = RetryPolicy(max_attempts=10, backoff=(60.0, 300.0, 600.0), retry_window=6 * _HOUR)

    def __init__(self, pipeline: IngestionPipeline, queue: ITaskQueue) -> None:
        self._pipeline = pipeline
        self._queue = queue

    async def handle(self, payload: dict[str, Any]) -> None:
        document_id = int(payload["document_id"])
        started = float(payload.get("poll_started_at") or time.time())

        delay = await self._pipeline.check_extraction_status(document_id)
        if delay is None:
            return

        if time.time() - started + delay > self.policy.retry_window:
            logger.error(
                "status_poll_window_exhausted",
                document_id=document_id,
                window_hours=self.policy.retry_window / _HOUR,
            )
            return

        await self._queue.dispatch(
            self.name, {"document_id": document_id, "poll_started_at": started}, delay=delay
        )
        logger.debug("status_check_scheduled", document_id=document_id, delay=delay)

    async def on_failure(self, payload: dict[str, Any], exc: BaseException) -> None:
        # Document status is left as is.
        document_id = int(payload["document_id"])
        closed = await self._pipeline.store.fail_open_jobs(
            document_id, JobKind.DOCUMENT_PROCESSING, f"Status sync job failed: {exc}"
        )
        logger.error("status_sync_abandoned", document_id=document_id, jobs_failed=closed)


class GenerateEmbeddingsTask(TaskHandler):
    """Embed one chunk and queue its vector sync."""

    name = GENERATE_EMBEDDINGS
    policy = RetryPolicy(max_attempts=4, backoff=(30.0, 120.0, 300.0), retry_window=_HOUR)

    def __init__(self, pipeline: IngestionPipeline) -> None:
        self._pipeline = pipeline
        self.policy = _job_policy(self.policy, pipeline, JobKind.EMBEDDING_GENERATION)

    async def handle(self, payload: dict[str, Any]) -> None:
        await self._pipeline.generate_embedding(int(payload["chunk_id"]))

    async def on_failure(self, payload: dict[str, Any], exc: BaseException) -> None:
        await self._pipeline.abandon_jobs(
            int(payload["chunk_id"]), JobKind.EMBEDDING_GENERATION, str(exc)
        )


class SyncVectorDatabaseTask(TaskHandler):
    """Upsert one chunk's embedding into the vector index."""

    name = SYNC_VECTOR_DATABASE
    policy = RetryPolicy(max_attempts=4, backoff=(30.0, 120.0, 300.0), retry_window=_HOUR)

    def __init__(self, pipeline: IngestionPipeline) -> None:
        self._pipeline = pipeline
        self.policy = _job_policy(self.policy, pipeline, JobKind.VECTOR_SYNC)

    async def handle(self, payload: dict[str, Any]) -> None:
        await self._pipeline.sync_chunk(int(payload["chunk_id"]), payload.get("embedding"))

    async def on_failure(self, payload: dict[str, Any], exc: BaseException) -> None:
        await self._pipeline.abandon_jobs(int(payload["chunk_id"]), JobKind.VECTOR_SYNC, str(exc))


def register_pipeline_tasks(queue: ITaskQueue, pipeline: IngestionPipeline) -> None:
    """Register every pipeline task handler on *queue*."""
    queue.register(ProcessDocumentTask(pipeline))
    queue.register(SyncProcessingStatusTask(pipeline, queue))
    queue.register(GenerateEmbeddingsTask(pipeline))
    queue.register(SyncVectorDatabaseTask(pipeline))
