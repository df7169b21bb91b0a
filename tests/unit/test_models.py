"""Unit tests for the ragkb Pydantic models and their state transitions."""

from __future__ import annotations

import hashlib

import pytest
from pydantic import ValidationError

from ragkb.models.documents import Chunk, Document, DocumentStatus, StatusSnapshot, utcnow
from ragkb.models.jobs import JobKind, JobStatus, ProcessingJob
from ragkb.models.retrieval import ScoredChunk, SearchMode, SearchQueryRecord


def _sha(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


# ======================================================================
# Chunk
# ======================================================================


class TestChunk:
    def test_hash_filled_from_content(self) -> None:
        chunk = Chunk(document_id=1, chunk_index=0, content="Hello world.")
        assert chunk.chunk_hash == _sha("Hello world.")

    def test_mismatched_hash_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Chunk(document_id=1, chunk_index=0, content="abc", chunk_hash="0" * 64)

    def test_matching_hash_accepted(self) -> None:
        chunk = Chunk(document_id=1, chunk_index=0, content="abc", chunk_hash=_sha("abc"))
        assert chunk.chunk_hash == _sha("abc")

    def test_negative_index_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Chunk(document_id=1, chunk_index=-1, content="abc")

    def test_with_content_resets_sync_and_rehashes(self) -> None:
        chunk = Chunk(
            id=5,
            document_id=1,
            chunk_index=0,
            content="old",
            vector_database_synced_at=utcnow(),
        )
        changed = chunk.with_content("new")

        assert changed.content == "new"
        assert changed.chunk_hash == _sha("new")
        assert changed.vector_database_synced_at is None
        assert chunk.is_synced is True
        assert changed.is_synced is False

    def test_with_same_content_is_noop(self) -> None:
        chunk = Chunk(document_id=1, chunk_index=0, content="same", vector_database_synced_at=utcnow())
        assert chunk.with_content("same") is chunk

    def test_vector_id_is_deterministic(self) -> None:
        chunk = Chunk(id=7, document_id=1, chunk_index=0, content="text")
        assert chunk.vector_id_for() == f"chunk_7_{_sha('text')}"
        assert chunk.vector_id_for() == chunk.vector_id_for()

    def test_vector_id_changes_with_content(self) -> None:
        chunk = Chunk(id=7, document_id=1, chunk_index=0, content="text")
        assert chunk.with_content("other").vector_id_for() != chunk.vector_id_for()

    def test_vector_id_requires_persisted_chunk(self) -> None:
        with pytest.raises(ValueError):
            Chunk(document_id=1, chunk_index=0, content="text").vector_id_for()

    def test_frozen(self) -> None:
        chunk = Chunk(document_id=1, chunk_index=0, content="text")
        with pytest.raises(ValidationError):
            chunk.content = "mutated"  # type: ignore[misc]


# ======================================================================
# Document
# ======================================================================


class TestDocument:
    def _doc(self, status: DocumentStatus) -> Document:
        return Document(title="T", file_hash="h", processing_status=status)

    def test_empty_title_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Document(title="", file_hash="h")

    def test_defaults_to_pending(self) -> None:
        assert Document(title="T", file_hash="h").processing_status == DocumentStatus.PENDING

    def test_progress_completed_is_full(self) -> None:
        assert self._doc(DocumentStatus.COMPLETED).progress(10, 0) == 100.0

    def test_progress_failed_is_zero(self) -> None:
        assert self._doc(DocumentStatus.FAILED).progress(10, 10) == 0.0

    def test_progress_processing_is_synced_ratio(self) -> None:
        assert self._doc(DocumentStatus.PROCESSING).progress(3, 1) == 33.33

    def test_progress_without_chunks_is_zero(self) -> None:
        assert self._doc(DocumentStatus.PROCESSING).progress(0, 0) == 0.0

    def test_terminal_statuses(self) -> None:
        assert DocumentStatus.COMPLETED.is_terminal
        assert DocumentStatus.FAILED.is_terminal
        assert not DocumentStatus.PENDING.is_terminal
        assert not DocumentStatus.PROCESSING.is_terminal

    def test_status_snapshot_bounds_progress(self) -> None:
        with pytest.raises(ValidationError):
            StatusSnapshot(
                id=1,
                title="T",
                status=DocumentStatus.PROCESSING,
                progress=120.0,
                total_chunks=1,
                synced_chunks=1,
            )


# ======================================================================
# ProcessingJob
# ======================================================================


class TestProcessingJob:
    def _job(self, **kwargs) -> ProcessingJob:
        return ProcessingJob(id=1, document_id=1, job_type=JobKind.DOCUMENT_PROCESSING, **kwargs)

    def test_started_sets_external_id(self) -> None:
        job = self._job().mark_started("ext-1")
        assert job.status == JobStatus.PROCESSING
        assert job.external_job_id == "ext-1"
        assert job.started_at is not None

    def test_completed_sets_full_progress(self) -> None:
        job = self._job().mark_started().mark_completed()
        assert job.status == JobStatus.COMPLETED
        assert job.progress_percentage == 100.0
        assert job.duration_seconds is not None

    def test_failed_records_error(self) -> None:
        job = self._job().mark_failed("boom")
        assert job.status == JobStatus.FAILED
        assert job.error_message == "boom"
        assert job.is_finished

    def test_retry_increments_count(self) -> None:
        job = self._job(max_retries=2).mark_failed("x").mark_retrying()
        assert job.status == JobStatus.RETRYING
        assert job.retry_count == 1

    def test_retry_ceiling(self) -> None:
        job = self._job(max_retries=2)
        for _ in range(2):
            job = job.mark_failed("x").mark_retrying()
        failed = job.mark_failed("final")

        assert failed.retry_count == 2
        assert failed.can_retry is False
        with pytest.raises(ValueError):
            failed.mark_retrying()

    def test_retry_requires_failed_status(self) -> None:
        with pytest.raises(ValueError):
            self._job().mark_retrying()

    def test_progress_clamped(self) -> None:
        assert self._job().with_progress(150).progress_percentage == 100.0
        assert self._job().with_progress(-5).progress_percentage == 0.0

    def test_progress_never_moves_backwards(self) -> None:
        job = self._job().with_progress(60).with_progress(40)
        assert job.progress_percentage == 60.0


# ======================================================================
# Retrieval models
# ======================================================================


class TestRetrievalModels:
    def test_rank_score_prefers_hybrid(self) -> None:
        hit = ScoredChunk(
            chunk_id=1,
            content="c",
            similarity_score=0.9,
            hybrid_score=0.82,
            document_id=1,
            document_title="T",
        )
        assert hit.rank_score == 0.82

    def test_rank_score_falls_back_to_similarity(self) -> None:
        hit = ScoredChunk(
            chunk_id=1, content="c", similarity_score=0.9, document_id=1, document_title="T"
        )
        assert hit.rank_score == 0.9

    def test_similarity_bounded(self) -> None:
        with pytest.raises(ValidationError):
            ScoredChunk(
                chunk_id=1, content="c", similarity_score=1.2, document_id=1, document_title="T"
            )

    def test_search_record_aggregates(self) -> None:
        record = SearchQueryRecord(
            query_text="q",
            search_type=SearchMode.HYBRID,
            results_count=3,
            response_time_ms=12,
            similarity_scores=[0.2, 0.5, 0.8],
        )
        assert record.average_similarity == pytest.approx(0.5)
        assert record.max_similarity == 0.8
        assert record.min_similarity == 0.2

    def test_search_record_empty_aggregates(self) -> None:
        record = SearchQueryRecord(
            query_text="q", search_type=SearchMode.VECTOR, results_count=0, response_time_ms=0
        )
        assert record.average_similarity == 0.0
        assert record.max_similarity == 0.0
