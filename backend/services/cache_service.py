"""
Read cache + invalidation contract.

Read paths (product and order listings) go through `ReadCache.get_or_load`,
which stores serialized snapshots for CACHE_TTL_SECONDS. Every mutation of
inventory or order data must call the matching `CacheInvalidator` method
*after* its transaction commits; invalidating before commit lets a concurrent
reader repopulate the cache with pre-mutation data.

The cache is in-memory and per-process. For multi-worker deployments swap the
backend for a shared store exposing the same get/set/delete methods.
"""
import logging
import time
from typing import Any, Awaitable, Callable

from config import settings
from domain.constants import (
    CACHE_KEY_ORDER_PREFIX,
    CACHE_KEY_ORDERS_ALL,
    CACHE_KEY_PRODUCT_PREFIX,
    CACHE_KEY_PRODUCTS_ALL,
)

logger = logging.getLogger(__name__)


def product_key(product_id: int) -> str:
    return f"{CACHE_KEY_PRODUCT_PREFIX}{product_id}"


def order_key(order_id: int) -> str:
    return f"{CACHE_KEY_ORDER_PREFIX}{order_id}"


class ReadCache:
    """
    Simple in-memory TTL cache.

    Tracks (expires_at, value) per key; expired entries are dropped lazily on
    read.
    """

    def __init__(self, ttl_seconds: int | None = None):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.cache_ttl_seconds
        # {key: (expires_at, value)}
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= time.monotonic():
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self._entries[key] = (time.monotonic() + ttl, value)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """
        Return the cached value for `key`, or await `loader()` and cache it.

        `None` results are not cached so that missing rows are re-read.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = await loader()
        if value is not None:
            self.set(key, value)
        return value


class CacheInvalidator:
    """
    Maps domain mutations to cache keys.

    Injected into the fulfillment coordinator and order service; call only
    after the mutating transaction has committed. Failures are logged and
    never propagated, the committed data stays authoritative.
    """

    def __init__(self, cache: ReadCache):
        self._cache = cache

    def invalidate(self, key: str) -> bool:
        try:
            self._cache.delete(key)
            return True
        except Exception as e:
            logger.warning(f"Cache invalidation failed for {key}: {e}")
            return False

    def invalidate_product(self, product_id: int) -> bool:
        return self.invalidate(product_key(product_id))

    def invalidate_product_list(self) -> bool:
        return self.invalidate(CACHE_KEY_PRODUCTS_ALL)

    def invalidate_order(self, order_id: int) -> bool:
        return self.invalidate(order_key(order_id))

    def invalidate_order_list(self) -> bool:
        return self.invalidate(CACHE_KEY_ORDERS_ALL)


# Singleton cache instance
_cache: ReadCache | None = None


def get_read_cache() -> ReadCache:
    global _cache
    if _cache is None:
        _cache = ReadCache()
    return _cache
