"""Tests for cache key derivation."""

from datetime import date
from decimal import Decimal

from marketplace.services.cache import build_cache_key, prefix_for
from marketplace.services.cache.keys import CONVERSATIONS_LIST, SERVICES_LIST, normalize_value


class TestDeterminism:
    def test_parameter_order_does_not_matter(self):
        a = build_cache_key(SERVICES_LIST, {"category": "Cleaning", "page": 1, "min_price": 100})
        b = build_cache_key(SERVICES_LIST, {"min_price": 100, "page": 1, "category": "Cleaning"})
        assert a == b

    def test_exact_format(self):
        key = build_cache_key(SERVICES_LIST, {"page": 1, "category": "Plumbing"})
        assert key == "services:list:category=Plumbing&page=1"

    def test_none_values_are_dropped(self):
        assert build_cache_key(SERVICES_LIST, {"page": 1, "search": None}) == build_cache_key(
            SERVICES_LIST, {"page": 1}
        )

    def test_no_params(self):
        assert build_cache_key(SERVICES_LIST) == "services:list:"


class TestNormalization:
    def test_integral_float_equals_int(self):
        assert build_cache_key(SERVICES_LIST, {"min_price": 5000.0}) == build_cache_key(
            SERVICES_LIST, {"min_price": 5000}
        )

    def test_bool(self):
        assert normalize_value(True) == "true"
        assert normalize_value(False) == "false"

    def test_decimal_and_date(self):
        assert normalize_value(Decimal("12.50")) == "12.5"
        assert normalize_value(Decimal("7.00")) == "7"
        assert normalize_value(date(2024, 6, 10)) == "2024-06-10"

    def test_fractional_float(self):
        assert normalize_value(4.5) == "4.5"

    def test_set_values_sorted(self):
        assert build_cache_key(SERVICES_LIST, {"ids": {3, 1, 2}}) == build_cache_key(
            SERVICES_LIST, {"ids": {2, 3, 1}}
        )


class TestNoAliasing:
    def test_different_values_differ(self):
        assert build_cache_key(SERVICES_LIST, {"page": 1}) != build_cache_key(SERVICES_LIST, {"page": 2})

    def test_separators_inside_values_are_escaped(self):
        tricky = build_cache_key(SERVICES_LIST, {"search": "a&b=c"})
        split = build_cache_key(SERVICES_LIST, {"search": "a", "b": "c"})
        assert tricky != split

    def test_string_true_vs_bool(self):
        # Same canonical form on purpose: query strings carry no types
        assert build_cache_key(SERVICES_LIST, {"x": True}) == build_cache_key(SERVICES_LIST, {"x": "true"})


class TestUserScope:
    def test_user_scoped_key(self):
        key = build_cache_key(CONVERSATIONS_LIST, {"page": 1}, user_id=7)
        assert key == "conversations:list:user:7:page=1"

    def test_users_do_not_share_keys(self):
        assert build_cache_key(CONVERSATIONS_LIST, {"page": 1}, user_id=7) != build_cache_key(
            CONVERSATIONS_LIST, {"page": 1}, user_id=8
        )

    def test_prefixes(self):
        key = build_cache_key(CONVERSATIONS_LIST, {"page": 1}, user_id=7)
        assert key.startswith(prefix_for(CONVERSATIONS_LIST, 7))
        assert key.startswith(prefix_for(CONVERSATIONS_LIST))
        assert not key.startswith(prefix_for(CONVERSATIONS_LIST, 70))
