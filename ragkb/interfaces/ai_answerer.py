"""Abstract base class for LLM answer providers.

Defines the contract for turning a fully-built prompt into an answer,
either in one call or as a stream of events.  Implementations wrap the
OpenAI chat-completions API or Anthropic's Messages API; swapping one for
the other is a configuration change in :mod:`ragkb.main`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from ragkb.models.answers import GenerationResult, StreamEvent


# Concrete implementations:
#   OpenAIAnswerer     -- chat.completions (gpt-4o-mini default)
#   AnthropicAnswerer  -- messages API (Claude Sonnet default)
# Located in: ragkb/providers/llm/
class IAiAnswerer(ABC):
    """Contract for LLM providers used by the question-answering service."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> GenerationResult:
        """Generate a complete answer for *prompt*.

        Returns
        -------
        GenerationResult
            Content, model, token usage with estimated cost, finish reason.

        Raises
        ------
        ragkb.utils.errors.ProviderRequestFailedError
            Or one of its subclasses, when the provider call fails.
        """

    @abstractmethod
    def stream(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> AsyncIterator[StreamEvent]:
        """Stream an answer as partial ``content`` events then one ``complete`` event.

        The iterator is finite and cannot be restarted.  Closing it early
        (``aclose()`` or cancelling the consumer) closes the upstream HTTP
        stream.
        """

    @abstractmethod
    def get_model(self) -> str:
        """Return the model id used for generation."""

    @abstractmethod
    def get_max_tokens(self) -> int:
        """Return the model's context window in tokens."""

    @abstractmethod
    def calculate_cost(self, input_tokens: int, output_tokens: int) -> float:
        """Return the estimated USD cost of a call with the given token counts."""

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Return ``True`` if the configured key is accepted by the provider."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"anthropic"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured (doesn't verify it works)."""
