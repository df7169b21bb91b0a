"""Cache providers.

In-memory TTL cache shared by the embedding service (query and chunk
embeddings) and the retrieval engine (vector search results).  Not shared
across processes; a Redis adapter implementing ICacheProvider can replace
it without touching business logic.
"""

from ragkb.providers.cache.memory_cache import MemoryCacheProvider

__all__ = ["MemoryCacheProvider"]
