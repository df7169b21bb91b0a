"""Typed pipeline policy loaded from ``config/config.yaml``.

Each section is a frozen Pydantic model so a fully-resolved configuration
can be built once at startup and injected into every component without
risk of mutation.  Defaults match the shipped YAML, which means an empty
or missing YAML file still yields a working configuration.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ChunkingConfig(BaseModel):
    """Chunk sizing sent to the extractor and used by the local chunker."""

    model_config = ConfigDict(frozen=True)

    strategy: str = "semantic"
    chunk_size: int = Field(default=1000, gt=0, description="Max characters per chunk.")
    chunk_overlap: int = Field(
        default=200, ge=0, description="Characters carried over from the previous chunk."
    )


class HybridSearchConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    vector_weight: float = Field(default=0.8, ge=0.0, le=1.0)
    keyword_weight: float = Field(default=0.2, ge=0.0, le=1.0)
    keyword_scoring: str = Field(
        default="fixed",
        description="'fixed' (constant default_keyword_score) or 'term_overlap'.",
    )
    default_keyword_score: float = Field(default=0.5, ge=0.0, le=1.0)


class SearchConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    default_limit: int = Field(default=3, gt=0)
    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    fallback_to_sql: bool = True
    hybrid: HybridSearchConfig = Field(default_factory=HybridSearchConfig)


class EmbeddingModelConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str
    dimensions: int = Field(gt=0)
    max_tokens: int = Field(gt=0)


def _default_embedding_models() -> dict[str, EmbeddingModelConfig]:
    return {
        "openai": EmbeddingModelConfig(
            model="text-embedding-ada-002", dimensions=1536, max_tokens=8191
        ),
        "nomic": EmbeddingModelConfig(model="nomic-embed-text", dimensions=768, max_tokens=2048),
    }


class EmbeddingsConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    models: dict[str, EmbeddingModelConfig] = Field(default_factory=_default_embedding_models)


class CacheConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    ttl: int = Field(default=3600, gt=0)
    embeddings_ttl: int = Field(default=86400, gt=0)
    max_size: int = Field(default=10000, gt=0)


class FileUploadConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_size_kb: int = Field(default=10240, gt=0)
    allowed_types: list[str] = Field(
        default_factory=lambda: ["txt", "pdf", "docx", "html", "md"]
    )


class ExternalProcessingConfig(BaseModel):
    """Remote extraction API policy; credentials live in Settings."""

    model_config = ConfigDict(frozen=True)

    timeout: float = Field(default=300.0, gt=0)
    retry_attempts: int = Field(default=3, ge=0)
    extract_metadata: bool = True


class AnalyticsConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    track_searches: bool = True
    track_usage: bool = True


class QueueConfig(BaseModel):
    """Task timing.  Backoff schedules are in seconds."""

    model_config = ConfigDict(frozen=True)

    processing_timeout: float = Field(default=600.0, gt=0)
    max_concurrency: int = Field(default=8, gt=0)
    status_poll_interval: float = 120.0
    status_poll_error_interval: float = 300.0
    initial_status_delay: float = 60.0
    embedding_jitter_min: float = 1.0
    embedding_jitter_max: float = 30.0
    vector_sync_delay: float = 5.0


class RagConfig(BaseModel):
    """Root of the resolved pipeline configuration."""

    model_config = ConfigDict(frozen=True)

    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    embeddings: EmbeddingsConfig = Field(default_factory=EmbeddingsConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    file_upload: FileUploadConfig = Field(default_factory=FileUploadConfig)
    external_processing: ExternalProcessingConfig = Field(
        default_factory=ExternalProcessingConfig
    )
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
