"""Content fingerprints used for dedup, change detection and cache keys."""

from __future__ import annotations

import hashlib
import hmac
import json


def content_hash(data: bytes | str) -> str:
    """Return the hex SHA-256 digest of *data* (text is UTF-8 encoded)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def cache_fingerprint(*parts: str | int | float) -> str:
    """Return an MD5 hex digest over the JSON encoding of *parts*.

    Encoding the parts as a JSON array keeps their boundaries, so
    ``("foo", 13)`` and ``("foo1", 3)`` get different keys.  Used only as
    a cache key, never for integrity.
    """
    encoded = json.dumps(list(parts), ensure_ascii=False, separators=(",", ":"))
    return hashlib.md5(encoded.encode("utf-8")).hexdigest()


def sign_payload(payload: bytes, secret: str) -> str:
    """Return the ``sha256=<hex>`` HMAC signature of a webhook payload."""
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(payload: bytes, signature: str | None, secret: str) -> bool:
    """Constant-time comparison of *signature* against the expected HMAC."""
    if not signature or not secret:
        return False
    return hmac.compare_digest(sign_payload(payload, secret), signature)
