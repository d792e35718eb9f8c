"""
FastAPI dependency providers.

Everything with a lifecycle (database, cache store, event publishers) lives
on app.state, created and connected in the lifespan; handlers receive it
through these providers.
"""

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from .config import Settings
from .database import get_db
from .models.entities import Users
from .services.availability import AvailabilityLedger, SlotGridConfig
from .services.bookings import BookingGuard
from .services.cache import CacheInvalidator, ReadThroughCache
from .services.catalog import CatalogService
from .services.events import NotificationDispatcher, RealtimeEmitter
from .services.messaging import ConversationService
from .services.notifications import NotificationInbox


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_cache(request: Request) -> ReadThroughCache:
    settings = request.app.state.settings
    return ReadThroughCache(request.app.state.cache_store, settings.cache_default_ttl)


def get_invalidator(request: Request) -> CacheInvalidator:
    return CacheInvalidator(request.app.state.cache_store)


def get_notifier(request: Request) -> NotificationDispatcher:
    return request.app.state.notifier


def get_emitter(request: Request) -> RealtimeEmitter:
    return request.app.state.emitter


def get_current_user(
    x_user_id: int | None = Header(None),
    db: Session = Depends(get_db),
) -> Users:
    """Caller identity, as authenticated upstream by the gateway."""
    if x_user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    user = db.get(Users, x_user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown or inactive user")
    return user


def get_ledger(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> AvailabilityLedger:
    return AvailabilityLedger(db, SlotGridConfig.from_settings(settings))


def get_inbox(
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> NotificationInbox:
    return NotificationInbox(db, notifier)


def get_booking_guard(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    inbox: NotificationInbox = Depends(get_inbox),
) -> BookingGuard:
    return BookingGuard(db, inbox, SlotGridConfig.from_settings(settings), settings.default_currency)


def get_catalog(
    db: Session = Depends(get_db),
    cache: ReadThroughCache = Depends(get_cache),
    invalidator: CacheInvalidator = Depends(get_invalidator),
    settings: Settings = Depends(get_settings),
) -> CatalogService:
    return CatalogService(db, cache, invalidator, settings)


def get_conversations(
    db: Session = Depends(get_db),
    cache: ReadThroughCache = Depends(get_cache),
    invalidator: CacheInvalidator = Depends(get_invalidator),
    emitter: RealtimeEmitter = Depends(get_emitter),
    settings: Settings = Depends(get_settings),
) -> ConversationService:
    return ConversationService(db, cache, invalidator, emitter, settings)
