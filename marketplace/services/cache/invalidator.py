# marketplace/services/cache/invalidator.py
"""
Cache invalidation on writes.

Coarse policy: a write drops every listing variant of its topic (all
filter/page combinations) plus the individual detail key by id. Working out
which filtered views a write touches is not attempted.

Triggers:
✓ Service created/updated/deleted, service rating changed → services:*
✓ Category created/updated/deleted → categories:*
✓ Conversation created, message sent → conversations of each participant

Does NOT trigger:
✗ Mark-as-read (cached conversation summaries carry no unread counts)
✗ Availability edits (availability is not cached)

Called synchronously before the write's response is sent. An unreachable
store is logged and skipped: entries there are unreadable anyway and expire
by TTL.
"""

import logging
from typing import Iterable

from ...errors import DependencyUnavailable
from .keys import (
    CATEGORIES_DETAIL,
    CATEGORIES_LIST,
    CONVERSATIONS_LIST,
    SERVICES_DETAIL,
    SERVICES_LIST,
    build_cache_key,
    prefix_for,
)
from .store import CacheStore

logger = logging.getLogger(__name__)


def service_detail_key(service_id: int) -> str:
    return build_cache_key(SERVICES_DETAIL, {"id": service_id})


def category_detail_key(category_id: int) -> str:
    return build_cache_key(CATEGORIES_DETAIL, {"id": category_id})


class CacheInvalidator:
    def __init__(self, store: CacheStore):
        self.store = store

    def services_changed(self, service_id: int | None = None) -> int:
        deleted = self._drop_prefix(prefix_for(SERVICES_LIST))
        if service_id is not None:
            deleted += self._drop_key(service_detail_key(service_id))
        return deleted

    def categories_changed(self, category_id: int | None = None) -> int:
        deleted = self._drop_prefix(prefix_for(CATEGORIES_LIST))
        if category_id is not None:
            deleted += self._drop_key(category_detail_key(category_id))
        return deleted

    def conversations_changed(self, user_ids: Iterable[int]) -> int:
        deleted = 0
        for user_id in set(user_ids):
            deleted += self._drop_prefix(prefix_for(CONVERSATIONS_LIST, user_id))
        return deleted

    # ── Helpers ──────────────────────────────────────────────────────────

    def _drop_prefix(self, prefix: str) -> int:
        try:
            deleted = self.store.delete_by_prefix(prefix)
        except DependencyUnavailable as e:
            logger.warning(f"Cache invalidation skipped for {prefix}*: {e}")
            return 0
        logger.debug(f"Cache invalidated {prefix}* ({deleted} keys)")
        return deleted

    def _drop_key(self, key: str) -> int:
        try:
            self.store.delete(key)
        except DependencyUnavailable as e:
            logger.warning(f"Cache invalidation skipped for {key}: {e}")
            return 0
        return 1
