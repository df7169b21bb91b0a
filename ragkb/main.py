"""ragkb composition root.

Wires together all providers and services via constructor injection.
Provider variants are chosen from :class:`Settings` by name
(``AI_PROVIDER``, ``EMBEDDING_PROVIDER``, ``VECTOR_PROVIDER``); pipeline
policy comes from ``config/config.yaml`` through :func:`load_config`.

The web layer (not part of this package) is expected to call
:func:`build_services` once at startup, ``await services.initialize()``,
and ``await services.aclose()`` on shutdown.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from ragkb.config.loader import load_config
from ragkb.config.rag_config import RagConfig
from ragkb.config.settings import Settings
from ragkb.interfaces.ai_answerer import IAiAnswerer
from ragkb.interfaces.embedding_provider import IEmbeddingProvider
from ragkb.interfaces.vector_index import IVectorIndex
from ragkb.providers.cache.memory_cache import MemoryCacheProvider
from ragkb.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from ragkb.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from ragkb.providers.extractor.http_chunk_extractor import HttpChunkExtractor
from ragkb.providers.llm.anthropic_answerer import AnthropicAnswerer
from ragkb.providers.llm.openai_answerer import OpenAIAnswerer
from ragkb.providers.queue.asyncio_task_queue import AsyncioTaskQueue
from ragkb.providers.storage.local_blob_storage import LocalBlobStorage
from ragkb.providers.store.sqlite_document_store import SQLiteDocumentStore
from ragkb.providers.vector_store.chromadb_index import ChromaDBIndex
from ragkb.providers.vector_store.pinecone_index import PineconeIndex
from ragkb.services.embedding_service import EmbeddingService
from ragkb.services.ingestion.pipeline import IngestionPipeline
from ragkb.services.ingestion.tasks import register_pipeline_tasks
from ragkb.services.ingestion.webhook import WebhookReceiver
from ragkb.services.qa_service import QuestionAnsweringService
from ragkb.services.retrieval_engine import RetrievalEngine
from ragkb.utils.errors import ConfigurationMissingError
from ragkb.utils.logging import configure_logging, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


@dataclass
class RagServices:
    """Every long-lived component, as handed to the web layer."""

    settings: Settings
    config: RagConfig
    store: SQLiteDocumentStore
    cache: MemoryCacheProvider
    embedder: EmbeddingService
    vector_index: IVectorIndex
    answerer: IAiAnswerer
    queue: AsyncioTaskQueue
    pipeline: IngestionPipeline
    retrieval: RetrievalEngine
    qa: QuestionAnsweringService
    extractor: HttpChunkExtractor | None = None
    webhook: WebhookReceiver | None = None

    async def initialize(self) -> None:
        await self.store.initialize()

    async def aclose(self) -> None:
        """Stop background tasks and release HTTP clients."""
        await self.queue.shutdown()
        if self.extractor is not None:
            await self.extractor.close()
        _logger.info("services_closed")


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_embedding_backend(settings: Settings, config: RagConfig) -> IEmbeddingProvider:
    name = settings.embedding_provider.lower()
    model_config = config.embeddings.models.get(name)
    if model_config is None:
        raise ConfigurationMissingError(
            message=f"No embedding model configured for provider '{name}'",
            provider_name=name,
        )
    if name == "openai":
        return OpenAIEmbeddingProvider(settings=settings, model_config=model_config)
    if name == "nomic":
        return NomicEmbeddingProvider(settings=settings, model_config=model_config)
    raise ConfigurationMissingError(
        message=f"Unknown embedding provider '{name}'", provider_name=name
    )


def _build_vector_index(settings: Settings, dimensions: int) -> IVectorIndex:
    name = settings.vector_provider.lower()
    if name == "chromadb":
        return ChromaDBIndex(
            persist_directory=settings.chromadb_persist_dir,
            collection_name=settings.chromadb_collection,
            dimensions=dimensions,
        )
    if name == "pinecone":
        return PineconeIndex(settings=settings)
    raise ConfigurationMissingError(message=f"Unknown vector provider '{name}'", provider_name=name)


def _build_ai_answerer(settings: Settings) -> IAiAnswerer:
    name = settings.ai_provider.lower()
    if name == "openai":
        return OpenAIAnswerer(settings=settings)
    if name == "anthropic":
        return AnthropicAnswerer(settings=settings)
    raise ConfigurationMissingError(message=f"Unknown AI provider '{name}'", provider_name=name)


def _build_extractor(settings: Settings, config: RagConfig) -> HttpChunkExtractor | None:
    if not settings.external_processing_enabled:
        return None
    return HttpChunkExtractor(settings=settings, config=config.external_processing)


# ---------------------------------------------------------------------------
# Full assembly
# ---------------------------------------------------------------------------


def build_services(
    settings: Settings | None = None, config: RagConfig | None = None
) -> RagServices:
    """Construct every provider and service.

    Raises
    ------
    ConfigurationMissingError
        A selected provider is unknown or lacks its credentials.
    """
    settings = settings or Settings()
    config = config or load_config(settings=settings)

    store = SQLiteDocumentStore(db_path=settings.database_path)
    cache = MemoryCacheProvider(max_size=config.cache.max_size, ttl=config.cache.ttl)

    backend = _build_embedding_backend(settings, config)
    embedder = EmbeddingService(
        backend,
        cache=cache if config.cache.enabled else None,
        cache_ttl=config.cache.embeddings_ttl,
        store=store if config.analytics.track_usage else None,
    )
    vector_index = _build_vector_index(settings, embedder.get_dimensions())
    answerer = _build_ai_answerer(settings)
    extractor = _build_extractor(settings, config)

    queue = AsyncioTaskQueue(
        max_concurrency=config.queue.max_concurrency,
        processing_timeout=config.queue.processing_timeout,
    )
    pipeline = IngestionPipeline(
        store,
        embedder,
        vector_index,
        queue,
        config,
        blob_storage=LocalBlobStorage(root=settings.storage_root),
        extractor=extractor,
        cache=cache,
        webhook_url=settings.external_processing_webhook_url,
    )
    register_pipeline_tasks(queue, pipeline)

    retrieval = RetrievalEngine(store, embedder, vector_index, config, cache=cache)
    qa = QuestionAnsweringService(retrieval, answerer, store, config)

    webhook = None
    if extractor is not None and settings.webhook_secret:
        webhook = WebhookReceiver(pipeline, settings.webhook_secret)

    _logger.info(
        "services_built",
        ai_provider=answerer.get_provider_name(),
        embedding_provider=embedder.get_provider_name(),
        embedding_model=embedder.get_model_name(),
        vector_provider=vector_index.get_provider_name(),
        external_processing=extractor is not None,
        hybrid_search=config.search.hybrid.enabled,
    )
    return RagServices(
        settings=settings,
        config=config,
        store=store,
        cache=cache,
        embedder=embedder,
        vector_index=vector_index,
        answerer=answerer,
        queue=queue,
        pipeline=pipeline,
        retrieval=retrieval,
        qa=qa,
        extractor=extractor,
        webhook=webhook,
    )


def create_services() -> RagServices:
    """Configure logging from the environment and build the services."""
    settings = Settings()
    configure_logging(
        log_level=settings.log_level,
        json_output=(settings.app_env == "production"),
    )
    return build_services(settings)
