"""
Unit tests for the stock view cache.
"""

import fnmatch

from redis.exceptions import ConnectionError

from atelier.services.cache_service import CacheService


class InMemoryRedis:
    """Just the redis calls the cache makes."""

    def __init__(self):
        self.data = {}
        self.down = False

    def ping(self):
        if self.down:
            raise ConnectionError('redis is down')
        return True

    def get(self, key):
        if self.down:
            raise ConnectionError('redis is down')
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value

    def scan_iter(self, match, count=None):
        return [key for key in list(self.data) if fnmatch.fnmatch(key, match)]

    def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)


def cache_with(client):
    cache = CacheService()
    cache.client = client
    return cache


class TestCacheService:
    """Tests for cache-aside and module invalidation."""

    def test_disabled_cache_always_loads(self):
        """Test without Redis every call goes to the loader."""
        cache = CacheService()
        calls = []

        cache.memoize('stock', 'low:all', lambda: calls.append(1) or ['row'], ttl=60)
        cache.memoize('stock', 'low:all', lambda: calls.append(1) or ['row'], ttl=60)

        assert len(calls) == 2
        assert cache.is_available() is False

    def test_memoize_hits_cache_second_time(self):
        """Test the second read comes from Redis."""
        cache = cache_with(InMemoryRedis())
        calls = []

        def load():
            calls.append(1)
            return [{'code': 'VASE-01', 'stock': 1}]

        first = cache.memoize('stock', 'low:all', load, ttl=60)
        second = cache.memoize('stock', 'low:all', load, ttl=60)

        assert first == second == [{'code': 'VASE-01', 'stock': 1}]
        assert len(calls) == 1

    def test_invalidate_module_drops_only_that_module(self):
        client = InMemoryRedis()
        cache = cache_with(client)
        cache.memoize('stock', 'low:all', lambda: [1], ttl=60)
        cache.memoize('stock', 'low:5', lambda: [2], ttl=60)
        cache.memoize('other', 'key', lambda: [3], ttl=60)

        assert cache.invalidate_module('stock') == 2
        assert list(client.data) == ['atelier:other:key']

    def test_redis_failure_falls_back_to_loader(self):
        """Test a Redis outage after startup still returns fresh data."""
        client = InMemoryRedis()
        cache = cache_with(client)
        client.down = True

        assert cache.memoize('stock', 'low:all', lambda: ['fresh'], ttl=60) == ['fresh']
        assert cache.is_available() is False
