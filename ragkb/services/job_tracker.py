"""Persisted lifecycle helpers for :class:`ProcessingJob` rows.

Callers pass the job they hold.  The tracker applies one transition,
persists the copy and returns the stored version.
"""

from __future__ import annotations

import structlog

from ragkb.interfaces.document_store import IDocumentStore
from ragkb.models.jobs import JobKind, JobStatus, ProcessingJob

logger = structlog.get_logger(logger_name=__name__)


class ProcessingJobTracker:
    """Creates and advances processing jobs in the document store."""

    def __init__(self, store: IDocumentStore) -> None:
        self._store = store

    async def create(
        self,
        document_id: int | None,
        kind: JobKind,
        *,
        chunk_id: int | None = None,
        provider: str | None = None,
        max_retries: int = 3,
        status: JobStatus = JobStatus.QUEUED,
    ) -> ProcessingJob:
        job = ProcessingJob(
            document_id=document_id,
            chunk_id=chunk_id,
            job_type=kind,
            status=status,
            api_provider=provider,
            max_retries=max_retries,
        )
        if status == JobStatus.PROCESSING:
            job = job.mark_started()
        stored = await self._store.create_job(job)
        logger.debug(
            "job_created",
            job_id=stored.id,
            kind=kind.value,
            document_id=document_id,
            chunk_id=chunk_id,
        )
        return stored

    async def begin_attempt(
        self,
        document_id: int,
        kind: JobKind,
        *,
        chunk_id: int | None = None,
        provider: str | None = None,
        max_retries: int = 3,
    ) -> ProcessingJob:
        """Return the ``processing`` job the next attempt of *kind* runs under.

        A job left ``retrying`` by :meth:`record_failure` is picked up again
        (``retrying -> processing``) so every attempt of one unit of work
        lands on a single row.  Otherwise a new job is created.
        """
        job = await self._store.find_active_job(document_id, kind, chunk_id=chunk_id)
        if job is not None and job.status == JobStatus.RETRYING:
            logger.info(
                "job_retry_started",
                job_id=job.id,
                kind=kind.value,
                retry_count=job.retry_count,
            )
            return await self.start(job)
        return await self.create(
            document_id,
            kind,
            chunk_id=chunk_id,
            provider=provider,
            max_retries=max_retries,
            status=JobStatus.PROCESSING,
        )

    async def start(
        self, job: ProcessingJob, external_job_id: str | None = None
    ) -> ProcessingJob:
        return await self._store.update_job(job.mark_started(external_job_id))

    async def progress(self, job: ProcessingJob, percentage: float) -> ProcessingJob:
        return await self._store.update_job(job.with_progress(percentage))

    async def complete(self, job: ProcessingJob) -> ProcessingJob:
        stored = await self._store.update_job(job.mark_completed())
        logger.info(
            "job_completed",
            job_id=stored.id,
            kind=stored.job_type.value,
            duration_seconds=stored.duration_seconds,
        )
        return stored

    async def fail(self, job: ProcessingJob, error_message: str) -> ProcessingJob:
        stored = await self._store.update_job(job.mark_failed(error_message))
        logger.error(
            "job_failed", job_id=stored.id, kind=stored.job_type.value, error=error_message
        )
        return stored

    async def retry(self, job: ProcessingJob) -> ProcessingJob:
        """Move a failed job to ``retrying``; raises ``ValueError`` past the ceiling."""
        return await self._store.update_job(job.mark_retrying())

    async def record_failure(self, job: ProcessingJob, error_message: str) -> ProcessingJob:
        """Record one failed attempt and return the job's resulting state.

        The job becomes ``retrying`` while retries remain.  Once
        ``retry_count`` has reached ``max_retries`` (``max_retries + 1``
        failures in total) it stays ``failed`` for good.
        """
        failed = await self.fail(job, error_message)
        if not failed.can_retry:
            logger.warning(
                "job_retries_exhausted",
                job_id=failed.id,
                retries=failed.retry_count,
                max_retries=failed.max_retries,
            )
            return failed
        return await self.retry(failed)
