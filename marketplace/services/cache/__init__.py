# marketplace/services/cache/__init__.py
"""
Read-through caching layer.

store       - CacheStore contract, Redis and in-process backends
keys        - deterministic key derivation
read_through - with_cache(key, ttl, compute_fn)
invalidator - coarse invalidation on writes
"""

from .invalidator import CacheInvalidator
from .keys import build_cache_key, prefix_for
from .read_through import ReadThroughCache
from .store import CacheStore, MemoryCacheStore, RedisCacheStore

__all__ = [
    "CacheInvalidator",
    "build_cache_key",
    "prefix_for",
    "ReadThroughCache",
    "CacheStore",
    "MemoryCacheStore",
    "RedisCacheStore",
]
