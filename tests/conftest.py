"""Shared test fixtures and helpers."""

from datetime import date

import pytest
from fastapi.testclient import TestClient

from marketplace.config import Settings
from marketplace.database import Database
from marketplace.main import create_app
from marketplace.models.entities import Bookings, Services, Users
from marketplace.services.availability import AvailabilityLedger
from marketplace.services.bookings import BookingGuard
from marketplace.services.cache import CacheInvalidator, MemoryCacheStore, ReadThroughCache
from marketplace.services.catalog import CatalogService
from marketplace.services.events import NotificationDispatcher, RealtimeEmitter
from marketplace.services.messaging import ConversationService

BOOKING_DAY = date(2024, 6, 10)


class RecordingNotifier(NotificationDispatcher):
    """Keeps every notification instead of queueing it."""

    def __init__(self):
        super().__init__("")
        self.sent: list[dict] = []

    def notify(self, user_id, title, message, channels=("in_app", "push"), data=None):
        event = super().notify(user_id, title, message, channels, data)
        self.sent.append(event)
        return event

    def titles_for(self, user_id: int) -> list[str]:
        return [e["title"] for e in self.sent if e["user_id"] == user_id]


class RecordingEmitter(RealtimeEmitter):
    def __init__(self):
        super().__init__("")
        self.events: list[tuple[str, str, dict]] = []

    def emit(self, room, event, payload):
        self.events.append((room, event, payload))

    def events_for(self, room: str) -> list[str]:
        return [event for r, event, _ in self.events if r == room]


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_user(db, name: str, role: str = "customer", email: str | None = None) -> Users:
    user = Users(name=name, role=role, email=email or f"{name.lower().replace(' ', '.')}@example.com")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_service(db, provider: Users, name: str = "Deep Cleaning", price: float = 5000.0, **kwargs) -> Services:
    fields = {
        "category": "Cleaning",
        "description": "Full apartment cleaning",
        "duration_min": 60,
        "price_type": "fixed",
        "services_offered": '["kitchen", "bathroom"]',
    }
    fields.update(kwargs)
    service = Services(provider_id=provider.id, name=name, price=price, is_active=True, **fields)
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


def make_booking(
    db,
    customer: Users,
    service: Services,
    day: date = BOOKING_DAY,
    time: str = "10:00",
    status: str = "pending",
) -> Bookings:
    """Bare booking row, no slot reservation and no active_slot_key."""
    booking = Bookings(
        customer_id=customer.id,
        provider_id=service.provider_id,
        service_id=service.id,
        date=day.isoformat(),
        time=time,
        duration_minutes=service.duration_min,
        status=status,
        total_amount=service.price,
        currency="NGN",
        payment_status="pending",
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


# ──────────────────────────────────────────────────────────────────────────────
# Infrastructure
# ──────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        redis_url="",
        maintenance_enabled=False,
    )


@pytest.fixture
def database(settings):
    database = Database(settings.resolved_database_url)
    database.connect()
    database.create_all()
    yield database
    database.close()


@pytest.fixture
def db(database):
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache_store(clock):
    return MemoryCacheStore(clock=clock)


@pytest.fixture
def cache(cache_store):
    return ReadThroughCache(cache_store, default_ttl=300)


@pytest.fixture
def invalidator(cache_store):
    return CacheInvalidator(cache_store)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def emitter():
    return RecordingEmitter()


# ──────────────────────────────────────────────────────────────────────────────
# Domain
# ──────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def customer(db):
    return make_user(db, "Chidi Okafor")


@pytest.fixture
def other_customer(db):
    return make_user(db, "Dami Adeyemi")


@pytest.fixture
def provider(db):
    return make_user(db, "Pat Provider", role="provider")


@pytest.fixture
def admin(db):
    return make_user(db, "Ada Admin", role="admin")


@pytest.fixture
def service(db, provider):
    return make_service(db, provider)


@pytest.fixture
def ledger(db):
    return AvailabilityLedger(db)


@pytest.fixture
def guard(db, notifier):
    return BookingGuard(db, notifier)


@pytest.fixture
def catalog(db, cache, invalidator, settings):
    return CatalogService(db, cache, invalidator, settings)


@pytest.fixture
def conversations(db, cache, invalidator, emitter, settings):
    return ConversationService(db, cache, invalidator, emitter, settings)


@pytest.fixture
def client(settings, database, notifier, emitter):
    app = create_app(settings)
    with TestClient(app) as test_client:
        app.state.notifier = notifier
        app.state.emitter = emitter
        yield test_client


def auth(user: Users) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}
