"""Anthropic answer provider adapter.

Wraps the ``anthropic`` async client to implement :class:`IAiAnswerer`.

Key differences from the OpenAI adapter:
    - Uses the Messages API; the system prompt is a separate parameter
    - Response content is a list of blocks, filtered to text and joined
    - Streaming goes through ``messages.stream``, whose context manager
      closes the HTTP stream when the consumer stops early
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import anthropic
import structlog

from ragkb.config.settings import Settings
from ragkb.interfaces.ai_answerer import IAiAnswerer
from ragkb.models.answers import GenerationResult, StreamEvent, StreamEventType, TokenUsage
from ragkb.providers.sdk_errors import from_anthropic_error
from ragkb.utils.errors import ConfigurationMissingError, ProviderRequestFailedError

logger = structlog.get_logger(logger_name=__name__)

_SYSTEM_PROMPT = (
    "You are a helpful assistant that answers questions using only the "
    "context provided by the user."
)

# USD per 1K tokens: (input, output).
_PRICING: dict[str, tuple[float, float]] = {
    "claude-sonnet-4-20250514": (0.003, 0.015),
    "claude-opus-4-20250514": (0.015, 0.075),
    "claude-3-5-haiku-20241022": (0.0008, 0.004),
    "claude-3-5-sonnet-20241022": (0.003, 0.015),
}


class AnthropicAnswerer(IAiAnswerer):
    """Answer provider backed by the Anthropic Messages API."""

    def __init__(self, settings: Settings) -> None:
        if not settings.anthropic_api_key:
            raise ConfigurationMissingError(
                message="ANTHROPIC_API_KEY is required for the anthropic AI provider",
                provider_name="anthropic",
            )
        self._api_key = settings.anthropic_api_key
        self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        self._model = settings.anthropic_model

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
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=max_tokens,
                system=_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
            )
        except anthropic.APIError as exc:
            raise from_anthropic_error(exc, self.get_provider_name()) from exc

        text_blocks = [block.text for block in response.content if block.type == "text"]
        if not text_blocks:
            raise ProviderRequestFailedError(
                message="Anthropic returned no text content",
                provider_name=self.get_provider_name(),
            )
        usage = self._usage(response.usage.input_tokens, response.usage.output_tokens)
        logger.info(
            "anthropic_completion",
            model=response.model,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
        )
        return GenerationResult(
            content="\n".join(text_blocks),
            model=response.model,
            usage=usage,
            finish_reason=response.stop_reason,
        )

    async def stream(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> AsyncIterator[StreamEvent]:
        try:
            async with self._client.messages.stream(
                model=self._model,
                max_tokens=max_tokens,
                system=_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
            ) as upstream:
                async for text in upstream.text_stream:
                    if text:
                        yield StreamEvent(
                            type=StreamEventType.CONTENT, content=text, model=self._model
                        )
                final = await upstream.get_final_message()
        except anthropic.APIError as exc:
            raise from_anthropic_error(exc, self.get_provider_name()) from exc

        usage = self._usage(final.usage.input_tokens, final.usage.output_tokens)
        logger.info("anthropic_stream_complete", model=final.model, tokens=usage.total_tokens)
        yield StreamEvent(
            type=StreamEventType.COMPLETE, is_complete=True, usage=usage, model=final.model
        )

    def get_model(self) -> str:
        return self._model

    def get_max_tokens(self) -> int:
        return 200000

    def calculate_cost(self, input_tokens: int, output_tokens: int) -> float:
        input_price, output_price = _PRICING.get(self._model, (0.0, 0.0))
        return round(input_tokens / 1000 * input_price + output_tokens / 1000 * output_price, 6)

    async def validate_credentials(self) -> bool:
        """Try a minimal completion to verify the API key works."""
        if not self.is_available():
            return False
        try:
            await self._client.messages.create(
                model=self._model,
                max_tokens=10,
                messages=[{"role": "user", "content": "hi"}],
            )
            return True
        except anthropic.APIError:
            return False

    def get_provider_name(self) -> str:
        return "anthropic"

    def is_available(self) -> bool:
        return bool(self._api_key)

    def _usage(self, input_tokens: int, output_tokens: int) -> TokenUsage:
        return TokenUsage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            cost=self.calculate_cost(input_tokens, output_tokens),
        )
