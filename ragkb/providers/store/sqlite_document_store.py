"""SQLite-backed document store.

# ─── ARCHITECTURE ROLE ───────────────────────────────────────────────
#
# Layer: Providers (concrete adapter implementing IDocumentStore).
# Database: ``data/ragkb.db``, the relational source of truth for
#           documents, chunks, processing jobs and analytics rows.
#
# Consistency rules enforced at the schema level:
#   - documents.file_hash is UNIQUE (content-addressed dedup).
#   - chunks and processing_jobs reference documents ON DELETE CASCADE,
#     so a chunk can never outlive its document.
#   - (document_id, chunk_index) is UNIQUE, keeping ordinals contiguous.
#
# Uses ``aiosqlite`` for async I/O, one short-lived connection per call,
# with ``PRAGMA foreign_keys = ON`` so cascades fire.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from ragkb.interfaces.document_store import IDocumentStore
from ragkb.models.answers import ApiUsageRecord
from ragkb.models.documents import Chunk, Document, DocumentStatus, utcnow
from ragkb.models.extraction import ExtractedChunk
from ragkb.models.jobs import JobKind, JobStatus, ProcessingJob
from ragkb.models.retrieval import SearchQueryRecord
from ragkb.utils.errors import InvalidInputError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/ragkb.db")

# ── Schema DDL ────────────────────────────────────────────────────────

_CREATE_DOCUMENTS_TABLE = """\
CREATE TABLE IF NOT EXISTS documents (
    id                      INTEGER PRIMARY KEY AUTOINCREMENT,
    title                   TEXT    NOT NULL,
    source_type             TEXT    NOT NULL DEFAULT 'text',
    source_path             TEXT,
    file_hash               TEXT    NOT NULL UNIQUE,
    file_size               INTEGER NOT NULL DEFAULT 0,
    mime_type               TEXT    NOT NULL DEFAULT 'text/plain',
    processing_status       TEXT    NOT NULL DEFAULT 'pending',
    processing_job_id       INTEGER,
    external_document_id    TEXT,
    processing_started_at   TEXT,
    processing_completed_at TEXT,
    metadata                TEXT    NOT NULL DEFAULT '{}',
    created_at              TEXT    NOT NULL
);
"""

_CREATE_CHUNKS_TABLE = """\
CREATE TABLE IF NOT EXISTS chunks (
    id                        INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id               INTEGER NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    chunk_index               INTEGER NOT NULL,
    content                   TEXT    NOT NULL,
    chunk_hash                TEXT    NOT NULL,
    vector_id                 TEXT,
    vector_database_synced_at TEXT,
    embedding_model           TEXT,
    embedding_dimensions      INTEGER,
    chunk_metadata            TEXT    NOT NULL DEFAULT '{}',
    keywords                  TEXT    NOT NULL DEFAULT '[]',
    UNIQUE(document_id, chunk_index)
);
"""

_CREATE_JOBS_TABLE = """\
CREATE TABLE IF NOT EXISTS processing_jobs (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id         INTEGER REFERENCES documents(id) ON DELETE CASCADE,
    chunk_id            INTEGER,
    job_type            TEXT    NOT NULL,
    status              TEXT    NOT NULL DEFAULT 'queued',
    external_job_id     TEXT,
    api_provider        TEXT,
    progress_percentage REAL    NOT NULL DEFAULT 0,
    error_message       TEXT,
    retry_count         INTEGER NOT NULL DEFAULT 0,
    max_retries         INTEGER NOT NULL DEFAULT 3,
    started_at          TEXT,
    completed_at        TEXT
);
"""

_CREATE_SEARCH_QUERIES_TABLE = """\
CREATE TABLE IF NOT EXISTS search_queries (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    query_text        TEXT    NOT NULL,
    search_type       TEXT    NOT NULL,
    results_count     INTEGER NOT NULL DEFAULT 0,
    response_time_ms  INTEGER NOT NULL DEFAULT 0,
    similarity_scores TEXT    NOT NULL DEFAULT '[]',
    user_id           TEXT,
    created_at        TEXT    NOT NULL
);
"""

_CREATE_API_USAGE_TABLE = """\
CREATE TABLE IF NOT EXISTS api_usage (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    api_provider   TEXT    NOT NULL,
    operation_type TEXT    NOT NULL,
    tokens_used    INTEGER,
    cost_usd       REAL,
    document_id    INTEGER REFERENCES documents(id) ON DELETE SET NULL,
    created_at     TEXT    NOT NULL
);
"""

_CREATE_INDICES = [
    "CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(processing_status);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id, chunk_index);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_synced ON chunks(document_id, vector_database_synced_at);",
    "CREATE INDEX IF NOT EXISTS idx_jobs_document ON processing_jobs(document_id, job_type, status);",
    "CREATE INDEX IF NOT EXISTS idx_jobs_external ON processing_jobs(external_job_id);",
    "CREATE INDEX IF NOT EXISTS idx_jobs_chunk ON processing_jobs(chunk_id, job_type);",
    "CREATE INDEX IF NOT EXISTS idx_usage_provider ON api_usage(api_provider, operation_type);",
]

# ── DML ───────────────────────────────────────────────────────────────

_INSERT_DOCUMENT = """\
INSERT INTO documents (title, source_type, source_path, file_hash, file_size, mime_type,
                       processing_status, processing_job_id, external_document_id,
                       processing_started_at, processing_completed_at, metadata, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_UPDATE_DOCUMENT = """\
UPDATE documents
SET title = ?, source_path = ?, processing_status = ?, processing_job_id = ?,
    external_document_id = ?, processing_started_at = ?, processing_completed_at = ?,
    metadata = ?
WHERE id = ?;
"""

_SELECT_DOCUMENT_COLUMNS = """\
SELECT id, title, source_type, source_path, file_hash, file_size, mime_type,
       processing_status, processing_job_id, external_document_id,
       processing_started_at, processing_completed_at, metadata, created_at
FROM documents
"""

_INSERT_CHUNK = """\
INSERT INTO chunks (document_id, chunk_index, content, chunk_hash, chunk_metadata, keywords)
VALUES (?, ?, ?, ?, ?, ?);
"""

_UPDATE_CHUNK = """\
UPDATE chunks
SET content = ?, chunk_hash = ?, vector_id = ?, vector_database_synced_at = ?,
    embedding_model = ?, embedding_dimensions = ?, chunk_metadata = ?, keywords = ?
WHERE id = ?;
"""

_SELECT_CHUNK_COLUMNS = """\
SELECT c.id, c.document_id, c.chunk_index, c.content, c.chunk_hash, c.vector_id,
       c.vector_database_synced_at, c.embedding_model, c.embedding_dimensions,
       c.chunk_metadata, c.keywords, d.title AS document_title
FROM chunks c
JOIN documents d ON d.id = c.document_id
"""

_COUNT_CHUNKS = """\
SELECT COUNT(*) AS total,
       SUM(CASE WHEN vector_database_synced_at IS NOT NULL THEN 1 ELSE 0 END) AS synced
FROM chunks WHERE document_id = ?;
"""

_INSERT_JOB = """\
INSERT INTO processing_jobs (document_id, chunk_id, job_type, status, external_job_id,
                             api_provider, progress_percentage, error_message, retry_count,
                             max_retries, started_at, completed_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_UPDATE_JOB = """\
UPDATE processing_jobs
SET status = ?, external_job_id = ?, api_provider = ?, progress_percentage = ?,
    error_message = ?, retry_count = ?, max_retries = ?, started_at = ?, completed_at = ?
WHERE id = ?;
"""

_SELECT_JOB_COLUMNS = """\
SELECT id, document_id, chunk_id, job_type, status, external_job_id, api_provider,
       progress_percentage, error_message, retry_count, max_retries, started_at, completed_at
FROM processing_jobs
"""

_FAIL_OPEN_JOBS = """\
UPDATE processing_jobs
SET status = 'failed', error_message = ?, completed_at = ?
WHERE document_id = ? AND job_type = ? AND status NOT IN ('completed', 'failed')
"""

_INSERT_SEARCH_QUERY = """\
INSERT INTO search_queries (query_text, search_type, results_count, response_time_ms,
                            similarity_scores, user_id, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?);
"""

_INSERT_API_USAGE = """\
INSERT INTO api_usage (api_provider, operation_type, tokens_used, cost_usd, document_id, created_at)
VALUES (?, ?, ?, ?, ?, ?);
"""

_USAGE_SUMMARY = """\
SELECT api_provider, operation_type, COUNT(*) AS calls,
       COALESCE(SUM(tokens_used), 0) AS tokens, COALESCE(SUM(cost_usd), 0) AS cost
FROM api_usage
GROUP BY api_provider, operation_type;
"""


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteDocumentStore(IDocumentStore):
    """aiosqlite implementation of :class:`IDocumentStore`."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON;")
            yield db

    async def initialize(self) -> None:
        """Create all tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute(_CREATE_DOCUMENTS_TABLE)
            await db.execute(_CREATE_CHUNKS_TABLE)
            await db.execute(_CREATE_JOBS_TABLE)
            await db.execute(_CREATE_SEARCH_QUERIES_TABLE)
            await db.execute(_CREATE_API_USAGE_TABLE)
            for idx_sql in _CREATE_INDICES:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("document_store_initialized", path=str(self._db_path))

    def get_provider_name(self) -> str:
        return "sqlite_document_store"

    # ── Documents ──────────────────────────────────────────────────────

    async def create_document(self, document: Document) -> Document:
        async with self._connect() as db:
            try:
                cursor = await db.execute(
                    _INSERT_DOCUMENT,
                    (
                        document.title,
                        document.source_type.value,
                        document.source_path,
                        document.file_hash,
                        document.file_size,
                        document.mime_type,
                        document.processing_status.value,
                        document.processing_job_id,
                        document.external_document_id,
                        _ts(document.processing_started_at),
                        _ts(document.processing_completed_at),
                        json.dumps(document.metadata),
                        _ts(document.created_at),
                    ),
                )
            except aiosqlite.IntegrityError as exc:
                raise InvalidInputError(
                    message=f"Document with hash {document.file_hash} already exists"
                ) from exc
            await db.commit()
            document_id = cursor.lastrowid

        logger.info("document_created", document_id=document_id, title=document.title)
        return document.model_copy(update={"id": document_id})

    async def get_document(self, document_id: int) -> Document | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_DOCUMENT_COLUMNS + "WHERE id = ?;", (document_id,))
            row = await cursor.fetchone()
        return self._row_to_document(row) if row is not None else None

    async def find_document_by_hash(self, file_hash: str) -> Document | None:
        async with self._connect() as db:
            cursor = await db.execute(
                _SELECT_DOCUMENT_COLUMNS + "WHERE file_hash = ?;", (file_hash,)
            )
            row = await cursor.fetchone()
        return self._row_to_document(row) if row is not None else None

    async def update_document(self, document: Document) -> Document:
        async with self._connect() as db:
            await db.execute(
                _UPDATE_DOCUMENT,
                (
                    document.title,
                    document.source_path,
                    document.processing_status.value,
                    document.processing_job_id,
                    document.external_document_id,
                    _ts(document.processing_started_at),
                    _ts(document.processing_completed_at),
                    json.dumps(document.metadata),
                    document.id,
                ),
            )
            await db.commit()
        return document

    async def delete_document(self, document_id: int) -> bool:
        async with self._connect() as db:
            cursor = await db.execute("DELETE FROM documents WHERE id = ?;", (document_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        logger.info("document_deleted", document_id=document_id, deleted=deleted)
        return deleted

    async def list_documents(
        self,
        status: DocumentStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Document]:
        params: list[Any] = []
        where = ""
        if status is not None:
            where = "WHERE processing_status = ? "
            params.append(status.value)
        params.extend([limit, offset])
        async with self._connect() as db:
            cursor = await db.execute(
                _SELECT_DOCUMENT_COLUMNS + where + "ORDER BY id DESC LIMIT ? OFFSET ?;",
                params,
            )
            rows = await cursor.fetchall()
        return [self._row_to_document(r) for r in rows]

    # ── Chunks ─────────────────────────────────────────────────────────

    async def create_chunks(
        self, document_id: int, chunks: list[ExtractedChunk]
    ) -> list[Chunk]:
        created: list[Chunk] = []
        async with self._connect() as db:
            for index, extracted in enumerate(chunks):
                chunk = Chunk(
                    document_id=document_id,
                    chunk_index=index,
                    content=extracted.content,
                    chunk_metadata=extracted.metadata,
                    keywords=extracted.keywords,
                )
                cursor = await db.execute(
                    _INSERT_CHUNK,
                    (
                        document_id,
                        index,
                        chunk.content,
                        chunk.chunk_hash,
                        json.dumps(chunk.chunk_metadata),
                        json.dumps(chunk.keywords),
                    ),
                )
                created.append(chunk.model_copy(update={"id": cursor.lastrowid}))
            await db.commit()
        logger.info("chunks_created", document_id=document_id, count=len(created))
        return created

    async def delete_chunks(self, document_id: int) -> int:
        async with self._connect() as db:
            cursor = await db.execute("DELETE FROM chunks WHERE document_id = ?;", (document_id,))
            await db.commit()
            return cursor.rowcount

    async def get_chunk(self, chunk_id: int) -> Chunk | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_CHUNK_COLUMNS + "WHERE c.id = ?;", (chunk_id,))
            row = await cursor.fetchone()
        return self._row_to_chunk(row) if row is not None else None

    async def list_chunks(self, document_id: int) -> list[Chunk]:
        async with self._connect() as db:
            cursor = await db.execute(
                _SELECT_CHUNK_COLUMNS + "WHERE c.document_id = ? ORDER BY c.chunk_index;",
                (document_id,),
            )
            rows = await cursor.fetchall()
        return [self._row_to_chunk(r) for r in rows]

    async def list_unsynced_chunks(self, document_id: int) -> list[Chunk]:
        async with self._connect() as db:
            cursor = await db.execute(
                _SELECT_CHUNK_COLUMNS
                + "WHERE c.document_id = ? AND c.vector_database_synced_at IS NULL "
                "ORDER BY c.chunk_index;",
                (document_id,),
            )
            rows = await cursor.fetchall()
        return [self._row_to_chunk(r) for r in rows]

    async def update_chunk(self, chunk: Chunk) -> Chunk:
        async with self._connect() as db:
            await db.execute(
                _UPDATE_CHUNK,
                (
                    chunk.content,
                    chunk.chunk_hash,
                    chunk.vector_id,
                    _ts(chunk.vector_database_synced_at),
                    chunk.embedding_model,
                    chunk.embedding_dimensions,
                    json.dumps(chunk.chunk_metadata),
                    json.dumps(chunk.keywords),
                    chunk.id,
                ),
            )
            await db.commit()
        return chunk

    async def count_chunks(self, document_id: int) -> tuple[int, int]:
        async with self._connect() as db:
            cursor = await db.execute(_COUNT_CHUNKS, (document_id,))
            row = await cursor.fetchone()
        return int(row["total"] or 0), int(row["synced"] or 0)

    async def get_chunks_with_titles(self, chunk_ids: list[int]) -> dict[int, tuple[Chunk, str]]:
        if not chunk_ids:
            return {}
        placeholders = ",".join("?" for _ in chunk_ids)
        async with self._connect() as db:
            cursor = await db.execute(
                _SELECT_CHUNK_COLUMNS + f"WHERE c.id IN ({placeholders});", list(chunk_ids)
            )
            rows = await cursor.fetchall()
        return {r["id"]: (self._row_to_chunk(r), r["document_title"]) for r in rows}

    async def keyword_search(self, query: str, limit: int) -> list[tuple[Chunk, str]]:
        pattern = f"%{_escape_like(query)}%"
        async with self._connect() as db:
            cursor = await db.execute(
                _SELECT_CHUNK_COLUMNS
                + "WHERE c.content LIKE ? ESCAPE '\\' "
                "ORDER BY c.document_id, c.chunk_index LIMIT ?;",
                (pattern, limit),
            )
            rows = await cursor.fetchall()
        return [(self._row_to_chunk(r), r["document_title"]) for r in rows]

    # ── Processing jobs ────────────────────────────────────────────────

    async def create_job(self, job: ProcessingJob) -> ProcessingJob:
        async with self._connect() as db:
            cursor = await db.execute(
                _INSERT_JOB,
                (
                    job.document_id,
                    job.chunk_id,
                    job.job_type.value,
                    job.status.value,
                    job.external_job_id,
                    job.api_provider,
                    job.progress_percentage,
                    job.error_message,
                    job.retry_count,
                    job.max_retries,
                    _ts(job.started_at),
                    _ts(job.completed_at),
                ),
            )
            await db.commit()
            job_id = cursor.lastrowid
        return job.model_copy(update={"id": job_id})

    async def get_job(self, job_id: int) -> ProcessingJob | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_JOB_COLUMNS + "WHERE id = ?;", (job_id,))
            row = await cursor.fetchone()
        return self._row_to_job(row) if row is not None else None

    async def update_job(self, job: ProcessingJob) -> ProcessingJob:
        async with self._connect() as db:
            await db.execute(
                _UPDATE_JOB,
                (
                    job.status.value,
                    job.external_job_id,
                    job.api_provider,
                    job.progress_percentage,
                    job.error_message,
                    job.retry_count,
                    job.max_retries,
                    _ts(job.started_at),
                    _ts(job.completed_at),
                    job.id,
                ),
            )
            await db.commit()
        return job

    async def find_active_job(
        self, document_id: int, kind: JobKind, chunk_id: int | None = None
    ) -> ProcessingJob | None:
        sql = _SELECT_JOB_COLUMNS + "WHERE document_id = ? AND job_type = ? AND status != ? "
        params: list[Any] = [document_id, kind.value, JobStatus.COMPLETED.value]
        if chunk_id is not None:
            sql += "AND chunk_id = ? "
            params.append(chunk_id)
        async with self._connect() as db:
            cursor = await db.execute(sql + "ORDER BY id DESC LIMIT 1;", params)
            row = await cursor.fetchone()
        return self._row_to_job(row) if row is not None else None

    async def find_job_by_external_id(self, external_job_id: str) -> ProcessingJob | None:
        async with self._connect() as db:
            cursor = await db.execute(
                _SELECT_JOB_COLUMNS + "WHERE external_job_id = ? ORDER BY id DESC LIMIT 1;",
                (external_job_id,),
            )
            row = await cursor.fetchone()
        return self._row_to_job(row) if row is not None else None

    async def fail_open_jobs(
        self,
        document_id: int,
        kind: JobKind,
        error_message: str,
        chunk_id: int | None = None,
    ) -> int:
        sql = _FAIL_OPEN_JOBS
        params: list[Any] = [error_message, _ts(utcnow()), document_id, kind.value]
        if chunk_id is not None:
            sql += "AND chunk_id = ?"
            params.append(chunk_id)
        async with self._connect() as db:
            cursor = await db.execute(sql + ";", params)
            await db.commit()
            return cursor.rowcount

    # ── Analytics ──────────────────────────────────────────────────────

    async def record_search_query(self, record: SearchQueryRecord) -> None:
        async with self._connect() as db:
            await db.execute(
                _INSERT_SEARCH_QUERY,
                (
                    record.query_text,
                    record.search_type.value,
                    record.results_count,
                    record.response_time_ms,
                    json.dumps(record.similarity_scores),
                    record.user_id,
                    _ts(record.created_at),
                ),
            )
            await db.commit()

    async def record_api_usage(self, record: ApiUsageRecord) -> None:
        async with self._connect() as db:
            await db.execute(
                _INSERT_API_USAGE,
                (
                    record.api_provider,
                    record.operation_type,
                    record.tokens_used,
                    record.cost_usd,
                    record.document_id,
                    _ts(record.created_at),
                ),
            )
            await db.commit()

    async def usage_summary(self) -> dict[str, Any]:
        async with self._connect() as db:
            cursor = await db.execute(_USAGE_SUMMARY)
            rows = await cursor.fetchall()

        by_provider: dict[str, dict[str, dict[str, float]]] = {}
        total_tokens = 0
        total_cost = 0.0
        for row in rows:
            r = dict(row)
            by_provider.setdefault(r["api_provider"], {})[r["operation_type"]] = {
                "calls": r["calls"],
                "tokens": r["tokens"],
                "cost": round(r["cost"], 6),
            }
            total_tokens += r["tokens"]
            total_cost += r["cost"]
        return {
            "total_tokens": total_tokens,
            "total_cost": round(total_cost, 6),
            "by_provider": by_provider,
        }

    async def search_summary(self) -> dict[str, Any]:
        """Return query counts and latency grouped by search mode."""
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT search_type, COUNT(*) AS queries, AVG(response_time_ms) AS avg_ms, "
                "AVG(results_count) AS avg_results FROM search_queries GROUP BY search_type;"
            )
            rows = await cursor.fetchall()
        return {
            r["search_type"]: {
                "queries": r["queries"],
                "avg_response_time_ms": round(r["avg_ms"] or 0.0, 2),
                "avg_results": round(r["avg_results"] or 0.0, 2),
            }
            for r in rows
        }

    # ── Maintenance ────────────────────────────────────────────────────

    async def all_source_paths(self) -> list[str]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT source_path FROM documents WHERE source_path IS NOT NULL;"
            )
            rows = await cursor.fetchall()
        return [r["source_path"] for r in rows]

    async def clear_all(self) -> None:
        async with self._connect() as db:
            await db.execute("DELETE FROM chunks;")
            await db.execute("DELETE FROM processing_jobs;")
            await db.execute("DELETE FROM documents;")
            await db.commit()
        logger.info("document_store_cleared")

    # ── Row mapping ────────────────────────────────────────────────────

    @staticmethod
    def _row_to_document(row: aiosqlite.Row) -> Document:
        data = dict(row)
        data["metadata"] = json.loads(data["metadata"] or "{}")
        return Document.model_validate(data)

    @staticmethod
    def _row_to_chunk(row: aiosqlite.Row) -> Chunk:
        data = dict(row)
        data.pop("document_title", None)
        data["chunk_metadata"] = json.loads(data["chunk_metadata"] or "{}")
        data["keywords"] = json.loads(data["keywords"] or "[]")
        return Chunk.model_validate(data)

    @staticmethod
    def _row_to_job(row: aiosqlite.Row) -> ProcessingJob:
        return ProcessingJob.model_validate(dict(row))
