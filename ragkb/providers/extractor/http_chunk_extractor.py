"""Remote chunk-extraction API client.

Talks to an external document-processing service over HTTP: documents
are uploaded as multipart form data together with a JSON ``options``
part, processed asynchronously, and their chunks collected once the
remote job reports ``completed``.

Uses an injected ``httpx.AsyncClient`` for connection pooling and
testability; when none is given one is created with the service's base
URL, bearer auth and timeout.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from ragkb.config.rag_config import ExternalProcessingConfig
from ragkb.config.settings import Settings
from ragkb.interfaces.chunk_extractor import IChunkExtractor
from ragkb.models.extraction import (
    ExtractedChunk,
    ExtractionOptions,
    ExtractionResult,
    ExtractionStatus,
    ExtractionSubmission,
)
from ragkb.utils.errors import ConfigurationMissingError, DocumentProcessingFailedError

logger = structlog.get_logger(logger_name=__name__)

_PROVIDER_NAME = "external_processing_api"


class HttpChunkExtractor(IChunkExtractor):
    """Client for the external processing API.

    Parameters
    ----------
    settings:
        Supplies the API URL, API key and webhook secret.
    config:
        Supplies the request timeout.
    http_client:
        Optional pre-configured client.  Its base URL must point at the
        processing API.
    """

    def __init__(
        self,
        settings: Settings,
        config: ExternalProcessingConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not settings.external_processing_api_url or not settings.external_processing_api_key:
            raise ConfigurationMissingError(
                message="external processing API credentials are not configured",
                provider_name=_PROVIDER_NAME,
            )
        self._webhook_secret = settings.webhook_secret
        self._http = http_client or httpx.AsyncClient(
            base_url=settings.external_processing_api_url,
            timeout=config.timeout,
            headers={
                "Authorization": f"Bearer {settings.external_processing_api_key}",
                "Accept": "application/json",
            },
        )

    # ------------------------------------------------------------------
    # IChunkExtractor implementation
    # ------------------------------------------------------------------

    async def submit(
        self,
        document_bytes: bytes,
        filename: str,
        mime_type: str,
        options: ExtractionOptions,
    ) -> ExtractionSubmission:
        payload = options.model_dump()
        if self._webhook_secret:
            payload["webhook_secret"] = self._webhook_secret
        try:
            response = await self._http.post(
                "/documents/process",
                files={"file": (filename, document_bytes, mime_type)},
                data={"options": json.dumps(payload)},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("extraction_submit_failed", filename=filename, error=str(exc))
            raise DocumentProcessingFailedError(
                message=f"Processing API request failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

        job_id = data.get("job_id")
        if not job_id:
            raise DocumentProcessingFailedError(
                message="No job ID returned from processing API",
                provider_name=_PROVIDER_NAME,
            )
        logger.info("extraction_submitted", filename=filename, job_id=job_id)
        return ExtractionSubmission(
            job_id=str(job_id),
            document_id=data.get("document_id"),
            cost=data.get("cost"),
        )

    async def poll(self, job_id: str) -> ExtractionStatus:
        try:
            response = await self._http.get(f"/jobs/{job_id}/status")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("extraction_poll_failed", job_id=job_id, error=str(exc))
            return ExtractionStatus(status="error", progress=0.0, error=str(exc))

        return ExtractionStatus(
            status=str(data.get("status") or "unknown"),
            progress=float(data.get("progress") or 0.0),
            error=data.get("error"),
            estimated_completion=data.get("estimated_completion"),
        )

    async def fetch_result(self, job_id: str) -> ExtractionResult:
        try:
            response = await self._http.get(f"/jobs/{job_id}/result")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("extraction_result_failed", job_id=job_id, error=str(exc))
            raise DocumentProcessingFailedError(
                message=f"Failed to fetch processing result: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

        raw_chunks = data.get("chunks")
        if not isinstance(raw_chunks, list):
            raise DocumentProcessingFailedError(
                message="Invalid response format: missing chunks array",
                provider_name=_PROVIDER_NAME,
            )
        return ExtractionResult(
            chunks=[self._parse_chunk(item) for item in raw_chunks],
            metadata=data.get("metadata") or {},
            processing_stats=data.get("processing_stats") or {},
        )

    async def retry(self, job_id: str) -> bool:
        try:
            response = await self._http.post(f"/jobs/{job_id}/retry")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("extraction_retry_failed", job_id=job_id, error=str(exc))
            return False
        logger.info("extraction_retry_requested", job_id=job_id)
        return True

    async def cancel(self, job_id: str) -> bool:
        try:
            response = await self._http.delete(f"/jobs/{job_id}")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("extraction_cancel_failed", job_id=job_id, error=str(exc))
            return False
        logger.info("extraction_cancelled", job_id=job_id)
        return True

    def get_provider_name(self) -> str:
        return _PROVIDER_NAME

    # ------------------------------------------------------------------
    # Service introspection
    # ------------------------------------------------------------------

    async def api_status(self) -> dict[str, Any]:
        """Return ``{"status": "online", ...}`` or ``{"status": "offline", "error": ...}``."""
        try:
            response = await self._http.get("/status")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            return {"status": "offline", "error": str(exc)}
        return {
            "status": "online",
            "version": data.get("version", "unknown"),
            "queue_size": data.get("queue_size", 0),
            "processing_capacity": data.get("processing_capacity", 0),
        }

    async def supported_formats(self, fallback: list[str] | None = None) -> list[str]:
        """File extensions the service accepts; *fallback* if it can't be asked."""
        try:
            response = await self._http.get("/supported-formats")
            response.raise_for_status()
            return list(response.json().get("supported_formats", []))
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("extraction_formats_failed", error=str(exc))
            return list(fallback or [])

    async def close(self) -> None:
        await self._http.aclose()

    @staticmethod
    def _parse_chunk(item: Any) -> ExtractedChunk:
        if not isinstance(item, dict) or not isinstance(item.get("content"), str):
            raise DocumentProcessingFailedError(
                message="Invalid chunk in processing result: missing content",
                provider_name=_PROVIDER_NAME,
            )
        return ExtractedChunk(
            content=item["content"],
            metadata=item.get("metadata") or {},
            keywords=item.get("keywords") or [],
        )
