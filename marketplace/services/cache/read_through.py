# marketplace/services/cache/read_through.py
"""
Read-through cache wrapper used by listing endpoints.

hit  → cached JSON payload
miss → compute, store with TTL, return
store down → compute, skip caching (never an error for the caller)
"""

import json
import logging
from typing import Any, Callable

from ...errors import DependencyUnavailable
from .store import CacheStore

logger = logging.getLogger(__name__)


class ReadThroughCache:
    def __init__(self, store: CacheStore, default_ttl: int = 300):
        self.store = store
        self.default_ttl = default_ttl

    def with_cache(
        self,
        key: str,
        ttl: int | None,
        compute_fn: Callable[[], Any],
    ) -> Any:
        """
        Return the payload for key, computing and caching it on a miss.

        compute_fn must return JSON-compatible data (dicts/lists/str/numbers),
        so a hit and a miss hand back the same shape.
        """
        try:
            raw = self.store.get(key)
        except DependencyUnavailable as e:
            logger.warning(f"Cache unavailable, computing uncached: {e}")
            return compute_fn()

        if raw is not None:
            try:
                payload = json.loads(raw)
            except ValueError:
                logger.warning(f"Discarding undecodable cache entry {key}")
            else:
                logger.debug(f"Cache HIT: {key}")
                return payload

        logger.debug(f"Cache MISS: {key}")
        payload = compute_fn()

        try:
            self.store.set(key, json.dumps(payload), ttl or self.default_ttl)
        except DependencyUnavailable as e:
            logger.warning(f"Cache unavailable, result not stored: {e}")
        except (TypeError, ValueError):
            logger.exception(f"Payload for {key} is not JSON-serializable, not cached")

        return payload
