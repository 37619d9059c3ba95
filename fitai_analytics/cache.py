"""Optional key-value cache for derived analytics.

Caching is never required for correctness: the engine computes the same
results with or without a cache, the cache only saves store round trips.
A Redis backend is used when ``REDIS_URL`` is configured; otherwise the
process-local TTL cache serves single-process use such as the CLI.
"""

import logging
import math
import pickle
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import redis
from cachetools import TLRUCache
from redis.exceptions import RedisError

from .config import config

logger = logging.getLogger(__name__)


class KeyValueCache(ABC):
    """Minimal TTL cache contract."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when absent or expired."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Drop ``key`` if present."""


def _expires_at(key, entry, now):
    ttl_seconds, _ = entry
    return now + ttl_seconds


class InMemoryCache(KeyValueCache):
    """Process-local cache with a TTL per entry."""

    def __init__(self, maxsize: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        self._entries = TLRUCache(maxsize or config.CACHE_MAX_ENTRIES, ttu=_expires_at, timer=clock)

    def get(self, key):
        entry = self._entries.get(key)
        return None if entry is None else entry[1]

    def set(self, key, value, ttl_seconds):
        if ttl_seconds <= 0:
            self._entries.pop(key, None)
            return
        self._entries[key] = (ttl_seconds, value)

    def delete(self, key):
        self._entries.pop(key, None)

    def clear(self):
        self._entries.clear()

    def __len__(self):
        self._entries.expire()
        return len(self._entries)


class RedisCache(KeyValueCache):
    """Redis-backed cache shared between processes.

    Values are pickled. Any Redis error is logged and treated as a miss, so a
    Redis outage only costs recomputation.
    """

    def __init__(self, client: redis.Redis, prefix: str = "fitai:"):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "fitai:") -> "RedisCache":
        client = redis.from_url(url, socket_connect_timeout=2, socket_timeout=2, retry_on_timeout=True)
        return cls(client, prefix)

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key):
        try:
            raw = self.client.get(self._key(key))
        except RedisError as e:
            logger.warning("Cache get error for key %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return pickle.loads(raw)
        except (pickle.UnpicklingError, AttributeError, EOFError, ImportError, ValueError) as e:
            logger.warning("Discarding unreadable cache entry %s: %s", key, e)
            self.delete(key)
            return None

    def set(self, key, value, ttl_seconds):
        if ttl_seconds <= 0:
            self.delete(key)
            return
        try:
            self.client.setex(self._key(key), math.ceil(ttl_seconds), pickle.dumps(value))
        except RedisError as e:
            logger.warning("Cache set error for key %s: %s", key, e)

    def delete(self, key):
        try:
            self.client.delete(self._key(key))
        except RedisError as e:
            logger.warning("Cache delete error for key %s: %s", key, e)


def cache_from_config(redis_url: Optional[str] = None) -> KeyValueCache:
    """Redis cache when a URL is configured, otherwise an in-process cache."""
    url = redis_url if redis_url is not None else config.REDIS_URL
    if url:
        logger.info("Using Redis cache")
        return RedisCache.from_url(url)
    return InMemoryCache()


def snapshot_cache_key(user_id: str, period_type: str, period_start) -> str:
    return f"snapshot:{user_id}:{period_type}:{period_start.isoformat()}"


def predictions_cache_key(user_id: str, day) -> str:
    return f"predictions:{user_id}:{day.isoformat()}"
