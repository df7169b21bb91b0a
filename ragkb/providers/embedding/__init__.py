"""Embedding provider implementations.

Two backends of IEmbeddingProvider, selected by ``EMBEDDING_PROVIDER``:
    - OpenAIEmbeddingProvider -- text-embedding-ada-002 (1536 dims) or any
      OpenAI-compatible endpoint.
    - NomicEmbeddingProvider  -- nomic-embed-text via Ollama (768 dims).

Both are wrapped in :class:`ragkb.services.embedding_service.EmbeddingService`
for caching and truncation.
"""

from ragkb.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from ragkb.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["NomicEmbeddingProvider", "OpenAIEmbeddingProvider"]
