"""
Redis cache for read-heavy stock views.

The low-stock list is read on every dashboard refresh and changes only when
stock moves, so it is cached per module and the whole module is dropped
after each stock change. When Redis is unreachable every call falls through
to the database.
"""

import json
import logging
from typing import Any, Callable, Optional

import redis
from redis.exceptions import RedisError
from flask import Flask

logger = logging.getLogger(__name__)


class CacheService:
    """Keys look like {prefix}:{module}:{key}."""

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self._prefix = 'atelier'

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self._prefix = app.config.get('CACHE_KEY_PREFIX', 'atelier')

        if not app.config.get('CACHE_ENABLED', True):
            logger.info("[CACHE] Disabled via config")
            return

        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')
        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                health_check_interval=30
            )
            self.client.ping()
            logger.info(f"[CACHE] Redis connected: {redis_url}")
        except RedisError as e:
            logger.warning(f"[CACHE] Redis unavailable ({e}), stock views read from the database")
            self.client = None

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def is_available(self) -> bool:
        """Ping Redis; used by the health check."""
        if not self.enabled:
            return False
        try:
            return bool(self.client.ping())
        except RedisError:
            return False

    def _key(self, module: str, key: str) -> str:
        return f"{self._prefix}:{module}:{key}"

    def memoize(self, module: str, key: str, loader_fn: Callable[[], Any], ttl: int) -> Any:
        """Return the cached value, or load it and cache it for `ttl` seconds."""
        if not self.enabled:
            return loader_fn()

        full_key = self._key(module, key)
        try:
            cached = self.client.get(full_key)
            if cached is not None:
                return json.loads(cached)
        except (RedisError, ValueError) as e:
            logger.warning(f"[CACHE] Read error on {full_key}: {e}")

        value = loader_fn()
        try:
            self.client.setex(full_key, ttl, json.dumps(value))
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Write error on {full_key}: {e}")
        return value

    def invalidate_module(self, module: str) -> int:
        """Drop every key of a module."""
        if not self.enabled:
            return 0

        pattern = self._key(module, '*')
        try:
            keys = list(self.client.scan_iter(match=pattern, count=100))
            if keys:
                self.client.delete(*keys)
                logger.info(f"[CACHE] INVALIDATE: {pattern} ({len(keys)} keys)")
            return len(keys)
        except RedisError as e:
            logger.warning(f"[CACHE] Invalidate error on {pattern}: {e}")
            return 0


_cache_service: Optional[CacheService] = None


def init_cache(app: Flask) -> None:
    global _cache_service
    _cache_service = CacheService(app)
    app.extensions['cache'] = _cache_service


def get_cache() -> CacheService:
    if _cache_service is None:
        raise RuntimeError("Cache not initialized.")
    return _cache_service
