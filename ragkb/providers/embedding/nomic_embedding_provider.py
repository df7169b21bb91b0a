"""Nomic embedding provider adapter (local/free via Ollama).

Talks to the OpenAI-compatible ``/v1`` endpoint that Ollama exposes, using
``nomic-embed-text`` (768 dimensions).  No API key required.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from ragkb.config.rag_config import EmbeddingModelConfig
from ragkb.config.settings import Settings
from ragkb.interfaces.embedding_provider import IEmbeddingProvider
from ragkb.providers.sdk_errors import from_openai_error
from ragkb.utils.errors import ConfigurationMissingError, EmbeddingFailedError

logger = structlog.get_logger(logger_name=__name__)

_OLLAMA_BATCH_LIMIT = 512


class NomicEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by ``nomic-embed-text`` served via Ollama."""

    def __init__(self, settings: Settings, model_config: EmbeddingModelConfig) -> None:
        if not settings.ollama_base_url:
            raise ConfigurationMissingError(
                message="OLLAMA_BASE_URL is required for the nomic embedding provider",
                provider_name="nomic",
            )
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url}/v1",
            api_key="ollama",  # Ollama ignores the key but the client requires one
        )
        self._model = model_config.model
        self._dimensions = model_config.dimensions
        self._max_tokens = model_config.max_tokens

    async def generate(self, text: str) -> list[float]:
        result = await self.generate_batch([text])
        return result[0]

    async def generate_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in batches of 512 for the Ollama backend."""
        if not texts:
            return []

        try:
            all_embeddings: list[list[float]] = []
            for start in range(0, len(texts), _OLLAMA_BATCH_LIMIT):
                batch = texts[start : start + _OLLAMA_BATCH_LIMIT]
                response = await self._client.embeddings.create(input=batch, model=self._model)
                all_embeddings.extend(item.embedding for item in response.data)
                logger.info("nomic_embedding_batch", model=self._model, batch_size=len(batch))
            return all_embeddings
        except openai.APIError as exc:
            raise from_openai_error(exc, self.get_provider_name(), EmbeddingFailedError) from exc

    def get_model_name(self) -> str:
        return self._model

    def get_dimensions(self) -> int:
        return self._dimensions

    def get_max_input_tokens(self) -> int:
        return self._max_tokens

    def get_provider_name(self) -> str:
        return "nomic"

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama server answers its tags endpoint."""
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
            return response.status_code == 200
        except (httpx.ConnectError, httpx.TimeoutException):
            return False
