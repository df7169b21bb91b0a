"""Public interface definitions for every external collaborator.

Business logic in :mod:`ragkb.services` talks to external systems only
through these abstract base classes.  Concrete adapters live in
:mod:`ragkb.providers` and are selected from configuration in
:mod:`ragkb.main`, so swapping OpenAI for Anthropic or ChromaDB for
Pinecone never touches the pipeline, and tests inject mocks.

CONCRETE PROVIDER MAP:
    Interface            ->  Concrete implementations
    -------------------------------------------------------------
    IEmbeddingProvider   ->  OpenAIEmbeddingProvider, NomicEmbeddingProvider,
                             EmbeddingService (cache decorator)
    IVectorIndex         ->  ChromaDBIndex, PineconeIndex
    IAiAnswerer          ->  OpenAIAnswerer, AnthropicAnswerer
    IChunkExtractor      ->  HttpChunkExtractor
    IBlobStorage         ->  LocalBlobStorage
    ICacheProvider       ->  MemoryCacheProvider
    IDocumentStore       ->  SQLiteDocumentStore
    ITaskQueue           ->  AsyncioTaskQueue
"""

from ragkb.interfaces.ai_answerer import IAiAnswerer
from ragkb.interfaces.blob_storage import IBlobStorage
from ragkb.interfaces.cache_provider import ICacheProvider
from ragkb.interfaces.chunk_extractor import IChunkExtractor
from ragkb.interfaces.document_store import IDocumentStore
from ragkb.interfaces.embedding_provider import IEmbeddingProvider
from ragkb.interfaces.task_queue import ITaskQueue, RetryPolicy, TaskHandler
from ragkb.interfaces.vector_index import IVectorIndex

__all__ = [
    "IAiAnswerer",
    "IBlobStorage",
    "ICacheProvider",
    "IChunkExtractor",
    "IDocumentStore",
    "IEmbeddingProvider",
    "ITaskQueue",
    "IVectorIndex",
    "RetryPolicy",
    "TaskHandler",
]
