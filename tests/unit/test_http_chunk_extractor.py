"""Unit tests for HttpChunkExtractor against an httpx mock transport."""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from ragkb.config.rag_config import ExternalProcessingConfig
from ragkb.models.extraction import ExtractionOptions
from ragkb.providers.extractor.http_chunk_extractor import HttpChunkExtractor
from ragkb.utils.errors import ConfigurationMissingError, DocumentProcessingFailedError
from tests.conftest import make_settings

_SETTINGS = make_settings(
    external_processing_api_url="http://proc",
    external_processing_api_key="key",
    webhook_secret="hook-secret",
)


def _extractor(handler: Callable[[httpx.Request], httpx.Response]) -> HttpChunkExtractor:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://proc")
    return HttpChunkExtractor(_SETTINGS, ExternalProcessingConfig(), http_client=client)


class TestConstruction:
    def test_requires_credentials(self) -> None:
        with pytest.raises(ConfigurationMissingError):
            HttpChunkExtractor(make_settings(), ExternalProcessingConfig())

    @pytest.mark.asyncio
    async def test_builds_authenticated_client(self) -> None:
        extractor = HttpChunkExtractor(_SETTINGS, ExternalProcessingConfig(timeout=12.0))
        assert extractor._http.headers["Authorization"] == "Bearer key"
        assert extractor.get_provider_name() == "external_processing_api"
        await extractor.close()


class TestSubmit:
    @pytest.mark.asyncio
    async def test_submit_sends_file_and_options(self) -> None:
        seen: dict[str, bytes] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path.encode()
            seen["body"] = request.read()
            return httpx.Response(200, json={"job_id": "job-1", "cost": 0.02})

        extractor = _extractor(handler)
        submission = await extractor.submit(
            b"%PDF-data",
            "report.pdf",
            "application/pdf",
            ExtractionOptions(webhook_url="http://app/hook"),
        )

        assert submission.job_id == "job-1"
        assert submission.cost == 0.02
        assert seen["path"] == b"/documents/process"
        assert b"report.pdf" in seen["body"]
        assert b"hook-secret" in seen["body"]
        assert b"http://app/hook" in seen["body"]

    @pytest.mark.asyncio
    async def test_missing_job_id_rejected(self) -> None:
        extractor = _extractor(lambda request: httpx.Response(200, json={"status": "queued"}))
        with pytest.raises(DocumentProcessingFailedError):
            await extractor.submit(b"x", "a.pdf", "application/pdf", ExtractionOptions())

    @pytest.mark.asyncio
    async def test_http_error_rejected(self) -> None:
        extractor = _extractor(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(DocumentProcessingFailedError):
            await extractor.submit(b"x", "a.pdf", "application/pdf", ExtractionOptions())


class TestPollAndResult:
    @pytest.mark.asyncio
    async def test_poll_parses_status(self) -> None:
        extractor = _extractor(
            lambda request: httpx.Response(200, json={"status": "processing", "progress": 40})
        )
        status = await extractor.poll("job-1")
        assert status.status == "processing"
        assert status.progress == 40.0

    @pytest.mark.asyncio
    async def test_poll_failure_reported_as_error_status(self) -> None:
        extractor = _extractor(lambda request: httpx.Response(503))
        status = await extractor.poll("job-1")
        assert status.status == "error"
        assert status.error

    @pytest.mark.asyncio
    async def test_fetch_result_parses_chunks(self) -> None:
        body = {
            "chunks": [
                {"content": "First chunk.", "metadata": {"page": 1}, "keywords": ["first"]},
                {"content": "Second chunk."},
            ],
            "metadata": {"pages": 2},
        }
        extractor = _extractor(lambda request: httpx.Response(200, json=body))
        result = await extractor.fetch_result("job-1")

        assert [c.content for c in result.chunks] == ["First chunk.", "Second chunk."]
        assert result.chunks[0].keywords == ["first"]
        assert result.chunks[1].metadata == {}
        assert result.metadata == {"pages": 2}

    @pytest.mark.asyncio
    async def test_fetch_result_without_chunks_rejected(self) -> None:
        extractor = _extractor(lambda request: httpx.Response(200, json={"metadata": {}}))
        with pytest.raises(DocumentProcessingFailedError):
            await extractor.fetch_result("job-1")

    @pytest.mark.asyncio
    async def test_fetch_result_with_bad_chunk_rejected(self) -> None:
        extractor = _extractor(lambda request: httpx.Response(200, json={"chunks": [{"x": 1}]}))
        with pytest.raises(DocumentProcessingFailedError):
            await extractor.fetch_result("job-1")


class TestJobControl:
    @pytest.mark.asyncio
    async def test_retry_and_cancel(self) -> None:
        calls: list[tuple[str, str]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.method, request.url.path))
            return httpx.Response(200, json={})

        extractor = _extractor(handler)
        assert await extractor.retry("job-1") is True
        assert await extractor.cancel("job-1") is True
        assert calls == [("POST", "/jobs/job-1/retry"), ("DELETE", "/jobs/job-1")]

    @pytest.mark.asyncio
    async def test_retry_failure_returns_false(self) -> None:
        extractor = _extractor(lambda request: httpx.Response(404))
        assert await extractor.retry("job-1") is False
        assert await extractor.cancel("job-1") is False


class TestIntrospection:
    @pytest.mark.asyncio
    async def test_api_status_online(self) -> None:
        extractor = _extractor(
            lambda request: httpx.Response(200, json={"version": "2.1", "queue_size": 3})
        )
        status = await extractor.api_status()
        assert status["status"] == "online"
        assert status["version"] == "2.1"
        assert status["queue_size"] == 3

    @pytest.mark.asyncio
    async def test_api_status_offline(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        status = await _extractor(handler).api_status()
        assert status["status"] == "offline"
        assert "refused" in status["error"]

    @pytest.mark.asyncio
    async def test_supported_formats_with_fallback(self) -> None:
        ok = _extractor(
            lambda request: httpx.Response(200, json={"supported_formats": ["pdf", "docx"]})
        )
        assert await ok.supported_formats() == ["pdf", "docx"]

        down = _extractor(lambda request: httpx.Response(500))
        assert await down.supported_formats(fallback=["txt"]) == ["txt"]

    @pytest.mark.asyncio
    async def test_options_serialized_as_json(self) -> None:
        captured: dict[str, bytes] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = request.read()
            return httpx.Response(200, json={"job_id": "j"})

        await _extractor(handler).submit(
            b"x", "a.docx", "application/octet-stream", ExtractionOptions(chunk_size=500)
        )
        assert json.dumps(500).encode() in captured["body"]
        assert b'"chunk_size": 500' in captured["body"]
