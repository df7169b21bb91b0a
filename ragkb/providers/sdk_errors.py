"""Translate vendor SDK exceptions into the ragkb error taxonomy.

Adapters call these from their ``except`` blocks so that callers never
import ``openai`` or ``anthropic`` to catch errors, and so authentication
and rate-limit failures stay distinguishable from generic ones.
"""

from __future__ import annotations

import anthropic
import openai

from ragkb.utils.errors import (
    ProviderAuthFailedError,
    ProviderRequestFailedError,
    RagKnowledgeError,
    RateLimitExceededError,
)


def from_openai_error(
    exc: openai.APIError,
    provider_name: str,
    fallback: type[RagKnowledgeError] = ProviderRequestFailedError,
) -> RagKnowledgeError:
    """Map an ``openai`` exception to a ragkb error instance."""
    if isinstance(exc, openai.AuthenticationError | openai.PermissionDeniedError):
        return ProviderAuthFailedError(message=f"OpenAI rejected credentials: {exc}", provider_name=provider_name)
    if isinstance(exc, openai.RateLimitError):
        return RateLimitExceededError(message=f"OpenAI rate limit: {exc}", provider_name=provider_name)
    if isinstance(exc, openai.APITimeoutError | openai.APIConnectionError):
        return ProviderRequestFailedError(message=f"OpenAI unreachable: {exc}", provider_name=provider_name)
    return fallback(message=f"OpenAI API error: {exc}", provider_name=provider_name)


def from_anthropic_error(
    exc: anthropic.APIError,
    provider_name: str,
    fallback: type[RagKnowledgeError] = ProviderRequestFailedError,
) -> RagKnowledgeError:
    """Map an ``anthropic`` exception to a ragkb error instance."""
    if isinstance(exc, anthropic.AuthenticationError | anthropic.PermissionDeniedError):
        return ProviderAuthFailedError(message=f"Anthropic rejected credentials: {exc}", provider_name=provider_name)
    if isinstance(exc, anthropic.RateLimitError):
        return RateLimitExceededError(message=f"Anthropic rate limit: {exc}", provider_name=provider_name)
    if isinstance(exc, anthropic.APITimeoutError | anthropic.APIConnectionError):
        return ProviderRequestFailedError(message=f"Anthropic unreachable: {exc}", provider_name=provider_name)
    return fallback(message=f"Anthropic API error: {exc}", provider_name=provider_name)
