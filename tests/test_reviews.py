"""Tests for listing reviews (rated bookings)."""

import pytest

from conftest import BOOKING_DAY, make_service
from marketplace.errors import NotFound
from marketplace.services.ratings import add_rating, get_review, list_reviews, review_to_dict


def complete(guard, customer, provider, service, time):
    booking = guard.create_booking(customer.id, service.id, BOOKING_DAY, time)
    guard.transition(booking.id, "confirmed", provider.id)
    return guard.transition(booking.id, "completed", provider.id)


@pytest.fixture
def rated(db, guard, invalidator, customer, other_customer, provider, service):
    first = complete(guard, customer, provider, service, "10:00")
    add_rating(db, invalidator, first.id, customer.id, 5, "Spotless")

    laundry = make_service(db, provider, name="Laundry", price=1500)
    second = complete(guard, other_customer, provider, laundry, "11:00")
    add_rating(db, invalidator, second.id, other_customer.id, 2, "Late")

    complete(guard, customer, provider, service, "12:00")  # completed, never rated
    return first, second, laundry


def test_service_reviews(db, rated, service):
    first, _, _ = rated
    items, total, average = list_reviews(db, service_id=service.id)

    assert [b.id for b in items] == [first.id]
    assert total == 1
    assert average == 5.0


def test_provider_reviews_newest_first(db, rated, provider):
    first, second, _ = rated
    items, total, average = list_reviews(db, provider_id=provider.id)

    assert [b.id for b in items] == [second.id, first.id]
    assert total == 2
    assert average == 3.5


def test_average_covers_every_page(db, rated, provider):
    items, total, average = list_reviews(db, provider_id=provider.id, page=2, limit=1)

    assert len(items) == 1
    assert total == 2
    assert average == 3.5


def test_author_reviews(db, rated, customer):
    first, _, _ = rated
    items, total, _ = list_reviews(db, customer_id=customer.id)
    assert [b.id for b in items] == [first.id]


def test_review_payload(db, rated, customer, provider):
    first, _, _ = rated
    review = review_to_dict(get_review(db, first.id))

    assert review["rating"] == 5
    assert review["comment"] == "Spotless"
    assert review["customer_name"] == customer.name
    assert review["provider_name"] == provider.name
    assert review["service_name"] == "Deep Cleaning"


def test_unrated_booking_is_not_a_review(db, guard, customer, provider, service):
    booking = complete(guard, customer, provider, service, "15:00")
    with pytest.raises(NotFound):
        get_review(db, booking.id)
    with pytest.raises(NotFound):
        get_review(db, 9999)
