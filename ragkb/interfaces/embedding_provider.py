"""Abstract base class for text-embedding service providers.

Defines the contract for turning text into fixed-length vectors.
Implementations wrap OpenAI embeddings, Nomic ``nomic-embed-text`` served
by Ollama, or any other backend; the caching/truncating
:class:`~ragkb.services.embedding_service.EmbeddingService` also implements
this contract so it can be dropped in front of any backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider  -- text-embedding-ada-002 (requires API key)
#   NomicEmbeddingProvider   -- nomic-embed-text via Ollama (local)
#   EmbeddingService         -- cache + validation decorator over either
# Located in: ragkb/providers/embedding/ and ragkb/services/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the ingestion and retrieval paths."""

    @abstractmethod
    async def generate(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text.

        Parameters
        ----------
        text:
            The text to embed.

        Returns
        -------
        list[float]
            Vector with length :meth:`get_dimensions`.

        Raises
        ------
        ragkb.utils.errors.EmbeddingFailedError
            If the text is empty or the backend call fails.
        """

    @abstractmethod
    async def generate_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for several texts.

        Returns
        -------
        list[list[float]]
            Vectors corresponding positionally to *texts*.
        """

    @abstractmethod
    def get_model_name(self) -> str:
        """Return the backend model id, e.g. ``"text-embedding-ada-002"``."""

    @abstractmethod
    def get_dimensions(self) -> int:
        """Return the vector length; constant for the instance's lifetime."""

    @abstractmethod
    def get_max_input_tokens(self) -> int:
        """Return the backend's input token budget per text."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short provider identifier, e.g. ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""
