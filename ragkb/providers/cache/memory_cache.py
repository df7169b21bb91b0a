"""In-memory cache provider using cachetools.TTLCache.

Fast cache for single-process deployments; swap for Redis through
:class:`ICacheProvider` when several workers must share embeddings.
"""

from __future__ import annotations

from typing import Any

import structlog
from cachetools import TTLCache

from ragkb.interfaces.cache_provider import ICacheProvider

logger = structlog.get_logger(logger_name=__name__)


class MemoryCacheProvider(ICacheProvider):
    """In-memory TTL cache backed by ``cachetools.TTLCache``.

    Parameters
    ----------
    max_size:
        Maximum number of entries before the least-recently-used entry
        is evicted.
    ttl:
        Time-to-live in seconds applied to every entry.
    """

    def __init__(self, max_size: int = 10000, ttl: int = 86400) -> None:
        self._default_ttl = ttl
        self._cache: TTLCache[str, Any] = TTLCache(maxsize=max_size, ttl=ttl)

    async def get(self, key: str) -> Any | None:
        value = self._cache.get(key)
        logger.debug("cache_hit" if value is not None else "cache_miss", key=key)
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store *value* under *key*.

        ``TTLCache`` applies one TTL to all entries, so a per-item *ttl*
        different from the constructor's is ignored.
        """
        self._cache[key] = value

    async def delete(self, key: str) -> None:
        self._cache.pop(key, None)

    async def exists(self, key: str) -> bool:
        return key in self._cache

    async def clear(self) -> None:
        count = len(self._cache)
        self._cache.clear()
        logger.info("cache_cleared", entries=count)

    async def delete_prefix(self, prefix: str) -> int:
        keys = [key for key in list(self._cache) if key.startswith(prefix)]
        for key in keys:
            self._cache.pop(key, None)
        logger.debug("cache_prefix_deleted", prefix=prefix, entries=len(keys))
        return len(keys)
