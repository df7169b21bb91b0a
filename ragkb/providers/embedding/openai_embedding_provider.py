"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Supports real OpenAI and OpenAI-compatible hosts via ``openai_base_url``.
Validation, truncation and caching are layered on top by
:class:`~ragkb.services.embedding_service.EmbeddingService`.
"""

from __future__ import annotations

import openai
import structlog

from ragkb.config.rag_config import EmbeddingModelConfig
from ragkb.config.settings import Settings
from ragkb.interfaces.embedding_provider import IEmbeddingProvider
from ragkb.providers.sdk_errors import from_openai_error
from ragkb.utils.errors import ConfigurationMissingError, EmbeddingFailedError

logger = structlog.get_logger(logger_name=__name__)

_OPENAI_BATCH_LIMIT = 2048

# Known embedding model dimensions, used when the override model is not
# described in config.yaml.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``text-embedding-ada-002`` (1536 dims, 8191 tokens) unless the
    ``OPENAI_EMBEDDING_MODEL`` setting overrides it.  Inputs larger than the
    per-call limit are split into several requests.
    """

    def __init__(self, settings: Settings, model_config: EmbeddingModelConfig) -> None:
        if not settings.openai_api_key:
            raise ConfigurationMissingError(
                message="OPENAI_API_KEY is required for the openai embedding provider",
                provider_name="openai",
            )
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {"api_key": self._api_key}
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url
        self._client = openai.AsyncOpenAI(**client_kwargs)

        self._model = settings.openai_embedding_model or model_config.model
        if self._model == model_config.model:
            self._dimensions = model_config.dimensions
        else:
            self._dimensions = _MODEL_DIMENSIONS.get(self._model, model_config.dimensions)
        self._max_tokens = model_config.max_tokens

    async def generate(self, text: str) -> list[float]:
        result = await self.generate_batch([text])
        return result[0]

    async def generate_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts*, splitting into requests of at most 2048 inputs."""
        if not texts:
            return []

        try:
            all_embeddings: list[list[float]] = []
            for start in range(0, len(texts), _OPENAI_BATCH_LIMIT):
                batch = texts[start : start + _OPENAI_BATCH_LIMIT]
                response = await self._client.embeddings.create(input=batch, model=self._model)
                all_embeddings.extend(item.embedding for item in response.data)
                logger.info(
                    "openai_embedding_batch",
                    model=self._model,
                    batch_size=len(batch),
                    tokens=response.usage.total_tokens if response.usage else None,
                )
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
        return "openai"

    def is_available(self) -> bool:
        return bool(self._api_key)
