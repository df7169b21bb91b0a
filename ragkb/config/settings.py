"""Application settings loaded from environment variables via pydantic-settings.

Values come from two sources, in priority order:

  1. Environment variables, e.g. ``OPENAI_API_KEY=sk-...``
  2. A ``.env`` file in the working directory (local development)

Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``.  Defaults
apply when neither source sets a value.  Secrets and deploy-time values
live here; tunable pipeline policy lives in ``config/config.yaml``
(see :mod:`ragkb.config.rag_config`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """ragkb deploy-time settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Provider selection ===
    ai_provider: str = "openai"  # openai | anthropic
    embedding_provider: str = "openai"  # openai | nomic
    vector_provider: str = "chromadb"  # chromadb | pinecone

    # === AI / embedding credentials ===
    # Empty string = "not configured"; build_services() refuses to wire a
    # selected provider whose key is empty.
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_chat_model: str = "gpt-4o-mini"
    openai_embedding_model: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    ollama_base_url: str = "http://localhost:11434"

    # === Vector database ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "ragkb_chunks"
    pinecone_api_key: str = ""
    pinecone_index: str = "ragkb"
    pinecone_namespace: str = "ragkb-docs"

    # === Relational store / blobs ===
    database_path: str = "data/ragkb.db"
    storage_root: str = "data/storage"

    # === External chunk extraction API ===
    external_processing_enabled: bool = False
    external_processing_api_url: str = ""
    external_processing_api_key: str = ""
    external_processing_webhook_url: str = ""
    webhook_secret: str = ""

    # === Pipeline policy overrides (None keeps the config.yaml value) ===
    rag_chunk_size: int | None = None
    rag_chunk_overlap: int | None = None
    rag_similarity_threshold: float | None = None
    rag_hybrid_enabled: bool | None = None

    # === App config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_ai_providers(self) -> list[str]:
        """Return AI provider names that have non-empty API keys configured."""
        providers: list[str] = []
        if self.openai_api_key:
            providers.append("openai")
        if self.anthropic_api_key:
            providers.append("anthropic")
        return providers
