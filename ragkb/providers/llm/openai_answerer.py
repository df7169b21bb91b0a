"""OpenAI answer provider adapter.

Wraps the ``openai`` async client to implement :class:`IAiAnswerer` using
chat completions, in one shot or streamed.  Works with any
OpenAI-compatible host through ``openai_base_url``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import openai
import structlog

from ragkb.config.settings import Settings
from ragkb.interfaces.ai_answerer import IAiAnswerer
from ragkb.models.answers import GenerationResult, StreamEvent, StreamEventType, TokenUsage
from ragkb.providers.sdk_errors import from_openai_error
from ragkb.utils.errors import ConfigurationMissingError, ProviderRequestFailedError

logger = structlog.get_logger(logger_name=__name__)

_SYSTEM_PROMPT = (
    "You are a helpful assistant that answers questions using only the "
    "context provided by the user."
)

# USD per 1K tokens: (input, output).
_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4o": (0.0025, 0.01),
    "gpt-4o-mini": (0.00015, 0.0006),
    "gpt-4-turbo": (0.01, 0.03),
    "gpt-4": (0.03, 0.06),
    "gpt-3.5-turbo": (0.0005, 0.0015),
}

_CONTEXT_WINDOWS: dict[str, int] = {
    "gpt-4o": 128000,
    "gpt-4o-mini": 128000,
    "gpt-4-turbo": 128000,
    "gpt-4": 8192,
    "gpt-3.5-turbo": 16385,
}


class OpenAIAnswerer(IAiAnswerer):
    """Answer provider backed by OpenAI chat completions (``gpt-4o-mini`` default)."""

    def __init__(self, settings: Settings) -> None:
        if not settings.openai_api_key:
            raise ConfigurationMissingError(
                message="OPENAI_API_KEY is required for the openai AI provider",
                provider_name="openai",
            )
        self._api_key = settings.openai_api_key
        client_kwargs: dict = {"api_key": self._api_key}
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url
        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_chat_model

    # ------------------------------------------------------------------
    # IAiAnswerer implementation
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> GenerationResult:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=self._messages(prompt),
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APIError as exc:
            raise from_openai_error(exc, self.get_provider_name()) from exc

        choice = response.choices[0]
        if choice.message.content is None:
            raise ProviderRequestFailedError(
                message="OpenAI returned empty response", provider_name=self.get_provider_name()
            )
        usage = self._usage(
            response.usage.prompt_tokens if response.usage else 0,
            response.usage.completion_tokens if response.usage else 0,
        )
        logger.info(
            "openai_completion",
            model=response.model,
            tokens=usage.total_tokens,
            cost=usage.cost,
        )
        return GenerationResult(
            content=choice.message.content,
            model=response.model,
            usage=usage,
            finish_reason=choice.finish_reason,
        )

    async def stream(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> AsyncIterator[StreamEvent]:
        try:
            upstream = await self._client.chat.completions.create(
                model=self._model,
                messages=self._messages(prompt),
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
                stream_options={"include_usage": True},
            )
        except openai.APIError as exc:
            raise from_openai_error(exc, self.get_provider_name()) from exc

        input_tokens = output_tokens = 0
        model = self._model
        try:
            async for chunk in upstream:
                model = chunk.model or model
                if chunk.usage is not None:
                    input_tokens = chunk.usage.prompt_tokens
                    output_tokens = chunk.usage.completion_tokens
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield StreamEvent(type=StreamEventType.CONTENT, content=delta, model=model)
        except openai.APIError as exc:
            raise from_openai_error(exc, self.get_provider_name()) from exc
        finally:
            # Runs on normal exhaustion and when the consumer closes us early.
            await upstream.close()

        usage = self._usage(input_tokens, output_tokens)
        logger.info("openai_stream_complete", model=model, tokens=usage.total_tokens)
        yield StreamEvent(
            type=StreamEventType.COMPLETE, is_complete=True, usage=usage, model=model
        )

    def get_model(self) -> str:
        return self._model

    def get_max_tokens(self) -> int:
        return _CONTEXT_WINDOWS.get(self._model, 8192)

    def calculate_cost(self, input_tokens: int, output_tokens: int) -> float:
        input_price, output_price = _PRICING.get(self._model, (0.0, 0.0))
        return round(input_tokens / 1000 * input_price + output_tokens / 1000 * output_price, 6)

    async def validate_credentials(self) -> bool:
        """List models to confirm the key is accepted without inference cost."""
        if not self.is_available():
            return False
        try:
            await self._client.models.list()
            return True
        except openai.APIError:
            return False

    def get_provider_name(self) -> str:
        return "openai"

    def is_available(self) -> bool:
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _messages(prompt: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    def _usage(self, input_tokens: int, output_tokens: int) -> TokenUsage:
        return TokenUsage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            cost=self.calculate_cost(input_tokens, output_tokens),
        )
