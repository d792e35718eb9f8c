"""Tests for cache invalidation on writes."""

from unittest.mock import MagicMock

from marketplace.errors import DependencyUnavailable
from marketplace.schemas.services import ServiceCreate
from marketplace.services.cache import CacheInvalidator, build_cache_key
from marketplace.services.cache.invalidator import service_detail_key
from marketplace.services.cache.keys import CATEGORIES_LIST, CONVERSATIONS_LIST, SERVICES_LIST


class TestCacheInvalidator:
    def test_services_changed_drops_every_listing_and_the_detail(self, cache_store, invalidator):
        cache_store.set(build_cache_key(SERVICES_LIST, {"page": 1}), "a", 900)
        cache_store.set(build_cache_key(SERVICES_LIST, {"page": 2, "category": "x"}), "b", 900)
        cache_store.set(service_detail_key(5), "detail", 1800)
        cache_store.set(service_detail_key(6), "other", 1800)
        cache_store.set(build_cache_key(CATEGORIES_LIST), "c", 3600)

        invalidator.services_changed(5)

        assert cache_store.keys() == sorted([service_detail_key(6), build_cache_key(CATEGORIES_LIST)])

    def test_categories_changed(self, cache_store, invalidator):
        cache_store.set(build_cache_key(CATEGORIES_LIST, {"is_active": True}), "c", 3600)
        cache_store.set(build_cache_key(SERVICES_LIST), "s", 900)

        invalidator.categories_changed()

        assert cache_store.keys() == [build_cache_key(SERVICES_LIST)]

    def test_conversations_changed_only_for_given_users(self, cache_store, invalidator):
        for user_id in (1, 2, 3):
            cache_store.set(build_cache_key(CONVERSATIONS_LIST, {"page": 1}, user_id), "x", 300)

        invalidator.conversations_changed([1, 2])

        assert cache_store.keys() == [build_cache_key(CONVERSATIONS_LIST, {"page": 1}, 3)]

    def test_store_failure_is_not_raised(self):
        store = MagicMock()
        store.delete_by_prefix.side_effect = DependencyUnavailable("down")
        store.delete.side_effect = DependencyUnavailable("down")

        assert CacheInvalidator(store).services_changed(1) == 0


class TestWritesInvalidateReads:
    def test_new_service_visible_after_create(self, catalog, provider, service):
        first = catalog.list_services()
        assert first["pagination"]["total"] == 1

        catalog.create_service(
            provider,
            ServiceCreate(name="Window Washing", category="Cleaning", description="Windows", price=2000),
        )

        second = catalog.list_services()
        assert second["pagination"]["total"] == 2
        assert {s["name"] for s in second["services"]} == {"Deep Cleaning", "Window Washing"}

    def test_listing_is_served_from_cache_between_writes(self, catalog, db, service):
        catalog.list_services()

        # Direct DB write, bypassing the invalidating service layer
        service.name = "Renamed"
        db.commit()

        assert catalog.list_services()["services"][0]["name"] == "Deep Cleaning"

    def test_detail_invalidated_on_update(self, catalog, provider, service):
        assert catalog.get_service(service.id)["price"] == 5000

        catalog.update_service(provider, service.id, {"price": 6500})

        assert catalog.get_service(service.id)["price"] == 6500
