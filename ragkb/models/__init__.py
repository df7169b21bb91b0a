"""Pydantic v2 data models for ragkb.

All models are frozen; state transitions return copies.

- **documents** -- Document, Chunk, StatusSnapshot and their enums.
- **jobs** -- ProcessingJob and its state machine.
- **extraction** -- chunk-extractor request/response shapes.
- **retrieval** -- vector matches, ranked chunks, search analytics.
- **answers** -- provider results, stream events, API usage rows.
"""

from ragkb.models.answers import (
    AnswerResult,
    AnswerSource,
    ApiUsageRecord,
    GenerationResult,
    StreamEvent,
    StreamEventType,
    TokenUsage,
)
from ragkb.models.documents import (
    Chunk,
    Document,
    DocumentStatus,
    SourceKind,
    StatusSnapshot,
    utcnow,
)
from ragkb.models.extraction import (
    ExtractedChunk,
    ExtractionOptions,
    ExtractionResult,
    ExtractionStatus,
    ExtractionSubmission,
)
from ragkb.models.jobs import JobKind, JobStatus, ProcessingJob
from ragkb.models.retrieval import (
    ScoredChunk,
    SearchMode,
    SearchQueryRecord,
    VectorIndexStats,
    VectorMatch,
)

__all__ = [
    "AnswerResult",
    "AnswerSource",
    "ApiUsageRecord",
    "Chunk",
    "Document",
    "DocumentStatus",
    "ExtractedChunk",
    "ExtractionOptions",
    "ExtractionResult",
    "ExtractionStatus",
    "ExtractionSubmission",
    "GenerationResult",
    "JobKind",
    "JobStatus",
    "ProcessingJob",
    "ScoredChunk",
    "SearchMode",
    "SearchQueryRecord",
    "SourceKind",
    "StatusSnapshot",
    "StreamEvent",
    "StreamEventType",
    "TokenUsage",
    "VectorIndexStats",
    "VectorMatch",
    "utcnow",
]
