# marketplace/services/cache/store.py
"""
Cache stores: key → serialized payload with per-key TTL.

Two backends share one contract:
- RedisCacheStore: SETEX / GET / DEL / SCAN over a redis-py client
- MemoryCacheStore: in-process dict, used without REDIS_URL and in tests

The store is an optimization only. Redis failures surface as
DependencyUnavailable and callers fall back to uncached computation.
"""

import logging
import threading
import time
from typing import Callable

from redis import Redis, RedisError

from ...errors import DependencyUnavailable
from ...redis_client import build_redis

logger = logging.getLogger(__name__)


class CacheStore:
    """Contract shared by every cache backend."""

    def connect(self) -> None:
        pass

    def close(self) -> None:
        pass

    def ping(self) -> bool:
        return True

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def delete_by_prefix(self, prefix: str) -> int:
        raise NotImplementedError


def _escape_glob(prefix: str) -> str:
    """Escape Redis glob metacharacters so the prefix matches literally."""
    return "".join(f"\\{ch}" if ch in "*?[]\\" else ch for ch in prefix)


class RedisCacheStore(CacheStore):
    """Redis-backed store wrapper."""

    SCAN_BATCH = 500

    def __init__(self, url: str, socket_timeout: float = 2.0):
        self.url = url
        self.socket_timeout = socket_timeout
        self.redis: Redis | None = None

    def connect(self) -> None:
        self.redis = build_redis(self.url, self.socket_timeout)
        if self.ping():
            logger.info("Redis cache connected")
        else:
            logger.warning("Redis cache unreachable, reads will bypass the cache")

    def close(self) -> None:
        if self.redis is not None:
            try:
                self.redis.close()
            except RedisError as e:
                logger.warning(f"Redis cache close error: {e}")
            self.redis = None

    def _client(self) -> Redis:
        if self.redis is None:
            raise DependencyUnavailable("Redis cache is not connected")
        return self.redis

    def ping(self) -> bool:
        try:
            return bool(self._client().ping())
        except (RedisError, DependencyUnavailable):
            return False

    # ── Read ─────────────────────────────────────────────────────────────

    def get(self, key: str) -> str | None:
        try:
            return self._client().get(key)
        except RedisError as e:
            raise DependencyUnavailable(f"cache get failed for {key}: {e}") from e

    # ── Write ────────────────────────────────────────────────────────────

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self._client().setex(key, ttl_seconds, value)
        except RedisError as e:
            raise DependencyUnavailable(f"cache set failed for {key}: {e}") from e

    # ── Delete ───────────────────────────────────────────────────────────

    def delete(self, key: str) -> None:
        try:
            self._client().delete(key)
        except RedisError as e:
            raise DependencyUnavailable(f"cache delete failed for {key}: {e}") from e

    def delete_by_prefix(self, prefix: str) -> int:
        """
        Delete every key starting with prefix.

        Uses SCAN (not KEYS) so large keyspaces do not block Redis.

        Returns:
            Number of deleted keys.
        """
        client = self._client()
        pattern = f"{_escape_glob(prefix)}*"
        deleted = 0
        try:
            batch: list[str] = []
            for key in client.scan_iter(match=pattern, count=self.SCAN_BATCH):
                batch.append(key)
                if len(batch) >= self.SCAN_BATCH:
                    deleted += client.delete(*batch)
                    batch = []
            if batch:
                deleted += client.delete(*batch)
        except RedisError as e:
            raise DependencyUnavailable(f"cache prefix delete failed for {prefix}: {e}") from e
        return deleted


class MemoryCacheStore(CacheStore):
    """Thread-safe in-process store with monotonic-clock expiry."""

    # Expired entries are swept every PURGE_EVERY writes and on prefix deletes
    PURGE_EVERY = 256

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        # key → (expires_at, value)
        self._items: dict[str, tuple[float, str]] = {}
        self._lock = threading.Lock()
        self._writes = 0

    def get(self, key: str) -> str | None:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            expires_at, value = item
            if self._clock() >= expires_at:
                del self._items[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        with self._lock:
            now = self._clock()
            self._items[key] = (now + ttl_seconds, value)
            self._writes += 1
            if self._writes % self.PURGE_EVERY == 0:
                self._purge_expired(now)

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def delete_by_prefix(self, prefix: str) -> int:
        with self._lock:
            self._purge_expired(self._clock())
            keys = [k for k in self._items if k.startswith(prefix)]
            for k in keys:
                del self._items[k]
        return len(keys)

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, (expires_at, _) in self._items.items() if expires_at <= now]
        for k in expired:
            del self._items[k]

    def keys(self) -> list[str]:
        """Live keys (debug / tests)."""
        now = self._clock()
        with self._lock:
            return sorted(k for k, (expires_at, _) in self._items.items() if expires_at > now)
