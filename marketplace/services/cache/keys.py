# marketplace/services/cache/keys.py
"""
Deterministic cache keys.

Key format: {topic}[:user:{user_id}]:{query}

query is the URL-encoded list of (name, value) pairs sorted by name, with
values reduced to a canonical string form. Parameter order never changes
the key; different values never collide (URL escaping keeps "&" and "="
inside values distinct from separators).
"""

import math
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from urllib.parse import urlencode

SERVICES_LIST = "services:list"
SERVICES_DETAIL = "services:detail"
CATEGORIES_LIST = "categories:list"
CATEGORIES_DETAIL = "categories:detail"
CONVERSATIONS_LIST = "conversations:list"


def normalize_value(value: Any) -> str:
    """Canonical string form of a single query value."""
    if isinstance(value, Enum):
        value = value.value
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, Decimal):
        if value.is_finite() and value == value.to_integral_value():
            return str(int(value))
        return format(value.normalize(), "f")
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _pairs(params: Mapping[str, Any]) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for name in sorted(params):
        value = params[name]
        if value is None:
            continue
        if isinstance(value, (set, frozenset)):
            pairs.extend((name, v) for v in sorted(normalize_value(item) for item in value))
        elif isinstance(value, (list, tuple)):
            pairs.extend((name, normalize_value(item)) for item in value)
        else:
            pairs.append((name, normalize_value(value)))
    return pairs


def scope(topic: str, user_id: int | None = None) -> str:
    """Topic, optionally narrowed to one user."""
    if user_id is None:
        return topic
    return f"{topic}:user:{user_id}"


def build_cache_key(
    topic: str,
    params: Mapping[str, Any] | None = None,
    user_id: int | None = None,
) -> str:
    """
    Derive the cache key for one logical request.

    Args:
        topic: Endpoint family, e.g. SERVICES_LIST
        params: Effective query parameters (None values are ignored)
        user_id: Set when the response is user-scoped

    Returns:
        Key string, identical byte-for-byte for the same logical request.
    """
    query = urlencode(_pairs(params or {}))
    return f"{scope(topic, user_id)}:{query}"


def prefix_for(topic: str, user_id: int | None = None) -> str:
    """Prefix matching every key of a topic (or of one user within it)."""
    return f"{scope(topic, user_id)}:"
