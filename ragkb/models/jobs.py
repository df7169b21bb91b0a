"""Processing-job model tracking each asynchronous unit of pipeline work.

State machine::

    queued -> processing -> completed
                        \\-> failed -> retrying -> processing ...

``failed -> retrying`` is allowed only while ``retry_count < max_retries``;
after that ``failed`` is permanent.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ragkb.models.documents import utcnow


class JobKind(str, Enum):  # noqa: UP042
    DOCUMENT_PROCESSING = "document_processing"
    EMBEDDING_GENERATION = "embedding_generation"
    VECTOR_SYNC = "vector_sync"


class JobStatus(str, Enum):  # noqa: UP042
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


class ProcessingJob(BaseModel):
    """Lifecycle record for one extraction, embedding or vector-sync job.

    Transition helpers return updated copies; persisting them is the
    caller's job (see :class:`~ragkb.services.job_tracker.ProcessingJobTracker`).
    """

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    document_id: int | None = None
    chunk_id: int | None = None
    job_type: JobKind
    status: JobStatus = JobStatus.QUEUED
    external_job_id: str | None = None
    api_provider: str | None = None
    progress_percentage: float = Field(default=0.0, ge=0.0, le=100.0)
    error_message: str | None = None
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=0)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @field_validator("progress_percentage", mode="before")
    @classmethod
    def _clamp_progress(cls, value: float) -> float:
        return max(0.0, min(100.0, float(value)))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    @property
    def can_retry(self) -> bool:
        return self.status == JobStatus.FAILED and self.retry_count < self.max_retries

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def mark_started(self, external_job_id: str | None = None) -> ProcessingJob:
        update: dict = {"status": JobStatus.PROCESSING, "started_at": utcnow()}
        if external_job_id is not None:
            update["external_job_id"] = external_job_id
        return self.model_copy(update=update)

    def mark_completed(self) -> ProcessingJob:
        return self.model_copy(
            update={
                "status": JobStatus.COMPLETED,
                "progress_percentage": 100.0,
                "completed_at": utcnow(),
            }
        )

    def mark_failed(self, error_message: str) -> ProcessingJob:
        return self.model_copy(
            update={
                "status": JobStatus.FAILED,
                "error_message": error_message,
                "completed_at": utcnow(),
            }
        )

    def mark_retrying(self) -> ProcessingJob:
        if not self.can_retry:
            raise ValueError(
                f"job {self.id} cannot retry (status={self.status.value}, "
                f"retries={self.retry_count}/{self.max_retries})"
            )
        return self.model_copy(
            update={
                "status": JobStatus.RETRYING,
                "retry_count": self.retry_count + 1,
                "progress_percentage": 0.0,
                "completed_at": None,
            }
        )

    def with_progress(self, percentage: float) -> ProcessingJob:
        """Return a copy with progress clamped to [0, 100].

        Progress never moves backwards within one attempt; a late or
        out-of-order report lower than the current value is ignored.
        """
        clamped = max(0.0, min(100.0, float(percentage)))
        return self.model_copy(
            update={"progress_percentage": max(self.progress_percentage, clamped)}
        )
