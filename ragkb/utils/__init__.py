"""Utility modules for ragkb.

- **errors** -- Exception hierarchy rooted at RagKnowledgeError; each
  pipeline step raises its own subclass so callers can handle failures
  without broad ``except Exception`` blocks.
- **hashing** -- SHA-256 content hashes, MD5 cache fingerprints and the
  HMAC webhook signature helpers.
- **logging** -- structlog setup: coloured console output in development,
  structured JSON in production.
"""

from ragkb.utils.errors import (
    ConfigurationMissingError,
    DocumentNotFoundError,
    DocumentProcessingFailedError,
    EmbeddingFailedError,
    InvalidInputError,
    ProviderAuthFailedError,
    ProviderRequestFailedError,
    RagKnowledgeError,
    RateLimitExceededError,
    SearchFailedError,
    VectorDatabaseError,
)
from ragkb.utils.hashing import cache_fingerprint, content_hash, sign_payload, verify_signature
from ragkb.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationMissingError",
    "DocumentNotFoundError",
    "DocumentProcessingFailedError",
    "EmbeddingFailedError",
    "InvalidInputError",
    "ProviderAuthFailedError",
    "ProviderRequestFailedError",
    "RagKnowledgeError",
    "RateLimitExceededError",
    "SearchFailedError",
    "VectorDatabaseError",
    "cache_fingerprint",
    "configure_logging",
    "content_hash",
    "get_logger",
    "sign_payload",
    "verify_signature",
]
