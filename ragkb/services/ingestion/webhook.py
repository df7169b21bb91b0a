"""Push-notification receiver for the extraction API.

The processing service calls back with a JSON body and an
``X-Webhook-Signature`` header of the form ``sha256=<hex>``: an HMAC-SHA256
of the raw body under the shared webhook secret.  The web layer hands both
to :meth:`WebhookReceiver.handle` untouched.
"""

from __future__ import annotations

import json

import structlog

from ragkb.models.extraction import ExtractedChunk
from ragkb.services.ingestion.pipeline import IngestionPipeline
from ragkb.utils.hashing import verify_signature

logger = structlog.get_logger(logger_name=__name__)


class WebhookReceiver:
    """Verifies and applies extraction job callbacks.

    Payload shape: ``{"job_id", "status", "progress" | "chunks" | "error"}``
    with status one of ``completed``, ``failed`` or ``progress``.
    """

    def __init__(self, pipeline: IngestionPipeline, secret: str) -> None:
        self._pipeline = pipeline
        self._secret = secret

    async def handle(self, raw_payload: bytes, signature: str | None) -> bool:
        """Apply one callback.  Returns ``False`` for anything rejected.

        Nothing is processed unless the signature matches.
        """
        if not verify_signature(raw_payload, signature, self._secret):
            logger.warning("webhook_signature_invalid")
            return False

        try:
            payload = json.loads(raw_payload)
        except ValueError:
            logger.warning("webhook_payload_unparseable")
            return False

        if not isinstance(payload, dict) or not payload.get("job_id") or not payload.get("status"):
            logger.warning("webhook_payload_invalid")
            return False

        external_job_id = str(payload["job_id"])
        status = str(payload["status"])
        store = self._pipeline.store

        job = await store.find_job_by_external_id(external_job_id)
        if job is None or job.document_id is None:
            logger.warning("webhook_job_not_found", external_job_id=external_job_id)
            return False
        document = await store.get_document(job.document_id)
        if document is None:
            logger.warning("webhook_document_not_found", document_id=job.document_id)
            return False

        if status == "completed":
            try:
                extracted = None
                if isinstance(payload.get("chunks"), list):
                    extracted = [ExtractedChunk.model_validate(c) for c in payload["chunks"]]
                await self._pipeline.complete_extraction(document, job, extracted)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "webhook_completion_failed", document_id=document.id, error=str(exc)
                )
                current = await store.get_document(document.id) or document
                if not current.processing_status.is_terminal:
                    await self._pipeline.fail_extraction(current, job, str(exc))
                return False
            return True

        if status == "failed":
            await self._pipeline.fail_extraction(
                document, job, str(payload.get("error") or "Unknown error")
            )
            return True

        if status == "progress":
            progress = float(payload.get("progress") or 0.0)
            await self._pipeline.tracker.progress(job, progress)
            logger.debug("webhook_progress", job_id=job.id, progress=progress)
            return True

        logger.warning("webhook_status_unknown", status=status, external_job_id=external_job_id)
        return False
