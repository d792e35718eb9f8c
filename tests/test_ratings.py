"""Tests for booking ratings."""

import pytest

from conftest import BOOKING_DAY
from marketplace.errors import Conflict, Forbidden, InvalidState, NotFound, ValidationFailed
from marketplace.models.entities import Services, Users
from marketplace.services.cache import build_cache_key
from marketplace.services.cache.keys import SERVICES_LIST
from marketplace.services.ratings import add_rating


@pytest.fixture
def completed(guard, customer, provider, service):
    booking = guard.create_booking(customer.id, service.id, BOOKING_DAY, "10:00")
    guard.transition(booking.id, "confirmed", provider.id)
    return guard.transition(booking.id, "completed", provider.id)


def test_rating_recorded_and_averages_updated(db, invalidator, completed, customer, provider, service):
    rated = add_rating(db, invalidator, completed.id, customer.id, 4, "Great job")

    assert rated.rating_value == 4
    assert rated.rating_comment == "Great job"
    assert rated.rated_at is not None

    db.expire_all()
    assert db.get(Users, provider.id).rating_average == 4.0
    assert db.get(Users, provider.id).rating_count == 1
    assert db.get(Services, service.id).rating_average == 4.0


def test_average_is_mean_over_all_rated_bookings(db, guard, invalidator, completed, customer, other_customer, provider, service):
    add_rating(db, invalidator, completed.id, customer.id, 5)

    second = guard.create_booking(other_customer.id, service.id, BOOKING_DAY, "11:00")
    guard.transition(second.id, "confirmed", provider.id)
    guard.transition(second.id, "completed", provider.id)
    add_rating(db, invalidator, second.id, other_customer.id, 2)

    db.expire_all()
    assert db.get(Services, service.id).rating_average == 3.5
    assert db.get(Services, service.id).rating_count == 2


def test_second_rating_conflicts(db, invalidator, completed, customer):
    add_rating(db, invalidator, completed.id, customer.id, 5)
    with pytest.raises(Conflict):
        add_rating(db, invalidator, completed.id, customer.id, 1)


def test_only_completed_bookings(db, guard, invalidator, customer, service):
    booking = guard.create_booking(customer.id, service.id, BOOKING_DAY, "12:00")
    with pytest.raises(InvalidState):
        add_rating(db, invalidator, booking.id, customer.id, 5)


def test_only_the_customer(db, invalidator, completed, provider):
    with pytest.raises(Forbidden):
        add_rating(db, invalidator, completed.id, provider.id, 5)


def test_value_range(db, invalidator, completed, customer):
    with pytest.raises(ValidationFailed):
        add_rating(db, invalidator, completed.id, customer.id, 6)


def test_missing_booking(db, invalidator, customer):
    with pytest.raises(NotFound):
        add_rating(db, invalidator, 404, customer.id, 5)


def test_rating_invalidates_service_listings(db, cache_store, invalidator, completed, customer):
    key = build_cache_key(SERVICES_LIST, {"page": 1})
    cache_store.set(key, "[]", 900)

    add_rating(db, invalidator, completed.id, customer.id, 5)

    assert cache_store.get(key) is None
