"""Abstract base class for remote chunk-extraction services.

An extractor accepts raw document bytes, runs as an asynchronous remote
job, and eventually yields an ordered list of chunks.  The ingestion
pipeline submits, then polls (or receives a webhook) until the job
finishes.  When no remote service is configured the pipeline uses
:class:`~ragkb.services.ingestion.chunker.SentenceChunker` instead.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ragkb.models.extraction import (
    ExtractionOptions,
    ExtractionResult,
    ExtractionStatus,
    ExtractionSubmission,
)


class IChunkExtractor(ABC):
    """Contract for the external extraction API."""

    @abstractmethod
    async def submit(
        self,
        document_bytes: bytes,
        filename: str,
        mime_type: str,
        options: ExtractionOptions,
    ) -> ExtractionSubmission:
        """Submit a document and return the remote job id.

        Raises
        ------
        ragkb.utils.errors.DocumentProcessingFailedError
            If the service rejects the document or returns no job id.
        """

    @abstractmethod
    async def poll(self, job_id: str) -> ExtractionStatus:
        """Return the job's status; never raises (``status="error"`` on failure)."""

    @abstractmethod
    async def fetch_result(self, job_id: str) -> ExtractionResult:
        """Return the ordered chunks of a completed job.

        Raises
        ------
        ragkb.utils.errors.DocumentProcessingFailedError
            If the result cannot be fetched or has no chunk list.
        """

    @abstractmethod
    async def retry(self, job_id: str) -> bool:
        """Ask the service to re-run a failed job."""

    @abstractmethod
    async def cancel(self, job_id: str) -> bool:
        """Cancel a running job."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"external_processing_api"``."""
