"""Custom exception hierarchy for the ragkb knowledge-base pipeline.

All application exceptions inherit from :class:`RagKnowledgeError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "pinecone", "external_processing_api")
caused the failure.

The hierarchy is organized by pipeline concern:

    RagKnowledgeError  (base -- catch-all for any ragkb error)
    +-- InvalidInputError              (bad title / file / empty query)
    +-- ConfigurationMissingError      (selected provider lacks a setting)
    +-- ProviderRequestFailedError     (transient remote failure)
    |   +-- ProviderAuthFailedError    (credentials rejected)
    |   +-- RateLimitExceededError     (provider throttled us)
    +-- SearchFailedError              (retrieval failed, no fallback)
    +-- DocumentProcessingFailedError  (extraction step)
    +-- EmbeddingFailedError           (embedding step)
    +-- VectorDatabaseError            (vector index step)
    +-- DocumentNotFoundError          (status / delete of unknown id)

Transient errors are retried by the task queue; ``InvalidInputError`` and
``ConfigurationMissingError`` are never retried.
"""


class RagKnowledgeError(Exception):
    """Base exception for all ragkb errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name``.  ``__str__`` prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Caller errors (never retried)
# ---------------------------------------------------------------------------

class InvalidInputError(RagKnowledgeError):
    """Raised for a bad title, a disallowed file type/size, or an empty query."""

    def __init__(
        self,
        message: str = "Invalid input",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationMissingError(RagKnowledgeError):
    """Raised at construction time when a selected provider lacks configuration."""

    def __init__(
        self,
        message: str = "Required configuration is missing",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentNotFoundError(RagKnowledgeError):
    """Raised when a status query or delete targets an unknown document."""

    def __init__(
        self,
        message: str = "Document not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External service / provider errors
# ---------------------------------------------------------------------------

class ProviderRequestFailedError(RagKnowledgeError):
    """Raised on a transient remote failure (network, 5xx, timeout)."""

    def __init__(
        self,
        message: str = "Provider request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderAuthFailedError(ProviderRequestFailedError):
    """Raised when a provider rejects the configured credentials."""

    def __init__(
        self,
        message: str = "Provider authentication failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitExceededError(ProviderRequestFailedError):
    """Raised when a provider rate limit is exceeded.

    The task queue backs off longer on this error than on a generic
    request failure.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Pipeline step errors
# ---------------------------------------------------------------------------

class SearchFailedError(RagKnowledgeError):
    """Raised when retrieval fails and keyword fallback is disabled or also fails."""

    def __init__(
        self,
        message: str = "Search failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentProcessingFailedError(RagKnowledgeError):
    """Raised when chunk extraction for a document fails."""

    def __init__(
        self,
        message: str = "Document processing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingFailedError(RagKnowledgeError):
    """Raised when an embedding cannot be generated."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class VectorDatabaseError(RagKnowledgeError):
    """Raised when the vector index cannot be queried or written."""

    def __init__(
        self,
        message: str = "Vector database operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
