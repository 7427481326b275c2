"""
Tests for the read cache and the invalidation contract.
"""
import pytest
from unittest.mock import AsyncMock

from services.cache_service import (
    CacheInvalidator,
    ReadCache,
    get_read_cache,
    order_key,
    product_key,
)


class TestReadCache:

    @pytest.mark.unit
    def test_set_get_delete(self):
        cache = ReadCache(ttl_seconds=60)
        cache.set("products:1", {"id": 1})
        assert cache.get("products:1") == {"id": 1}
        assert "products:1" in cache

        cache.delete("products:1")
        assert cache.get("products:1") is None
        cache.delete("products:1")  # deleting a missing key is a no-op

    @pytest.mark.unit
    def test_entries_expire(self):
        cache = ReadCache(ttl_seconds=0)
        cache.set("orders:all", [1, 2])
        assert cache.get("orders:all") is None

    @pytest.mark.unit
    def test_per_entry_ttl_overrides_default(self):
        cache = ReadCache(ttl_seconds=0)
        cache.set("orders:all", [1], ttl_seconds=60)
        assert cache.get("orders:all") == [1]

    @pytest.mark.unit
    def test_clear(self):
        cache = ReadCache(ttl_seconds=60)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear()
        assert cache.get("a") is None and cache.get("b") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_or_load_calls_loader_once(self):
        cache = ReadCache(ttl_seconds=60)
        loader = AsyncMock(return_value=[{"id": 1}])

        assert await cache.get_or_load("products:all", loader) == [{"id": 1}]
        assert await cache.get_or_load("products:all", loader) == [{"id": 1}]
        loader.assert_awaited_once()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_or_load_does_not_cache_none(self):
        cache = ReadCache(ttl_seconds=60)
        loader = AsyncMock(return_value=None)

        await cache.get_or_load("products:7", loader)
        await cache.get_or_load("products:7", loader)
        assert loader.await_count == 2

    @pytest.mark.unit
    def test_singleton(self):
        assert get_read_cache() is get_read_cache()


class TestCacheInvalidator:

    @pytest.mark.unit
    def test_product_keys(self):
        cache = ReadCache(ttl_seconds=60)
        cache.set(product_key(3), {"id": 3})
        cache.set("products:all", [{"id": 3}])
        invalidator = CacheInvalidator(cache)

        assert invalidator.invalidate_product(3) is True
        assert invalidator.invalidate_product_list() is True
        assert cache.get(product_key(3)) is None
        assert cache.get("products:all") is None

    @pytest.mark.unit
    def test_order_keys(self):
        cache = ReadCache(ttl_seconds=60)
        cache.set(order_key(9), {"id": 9})
        cache.set("orders:all", [{"id": 9}])
        invalidator = CacheInvalidator(cache)

        assert invalidator.invalidate_order(9) is True
        invalidator.invalidate_order_list()

        assert cache.get(order_key(9)) is None
        assert cache.get("orders:all") is None

    @pytest.mark.unit
    def test_failures_are_logged_not_raised(self, caplog):
        class BrokenCache(ReadCache):
            def delete(self, key):
                raise ConnectionError("cache backend unreachable")

        invalidator = CacheInvalidator(BrokenCache(ttl_seconds=60))

        assert invalidator.invalidate_product(1) is False
        assert invalidator.invalidate_order(1) is False
        assert "cache backend unreachable" in caplog.text
