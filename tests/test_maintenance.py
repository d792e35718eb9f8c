"""Tests for the periodic maintenance pass and its loop."""

import asyncio
from datetime import timedelta

from conftest import BOOKING_DAY, make_booking
from marketplace.clock import utcnow
from marketplace.models.entities import ConversationParticipants, Conversations, Messages
from marketplace.services import maintenance
from marketplace.services.maintenance import maintenance_loop, run_maintenance


def add_message(db, customer, provider, age_days):
    conversation = Conversations(
        participants=[
            ConversationParticipants(user_id=customer.id, unread_count=0),
            ConversationParticipants(user_id=provider.id, unread_count=0),
        ],
    )
    db.add(conversation)
    db.flush()
    message = Messages(
        conversation_id=conversation.id,
        sender_id=customer.id,
        recipient_id=provider.id,
        content="Hello",
        content_type="text",
        is_read=False,
        is_delivered=False,
        status="sent",
        created_at=utcnow() - timedelta(days=age_days),
    )
    db.add(message)
    db.commit()
    return message


def test_pass_purges_and_repairs(database, db, settings, ledger, customer, provider, service):
    add_message(db, customer, provider, age_days=120)
    add_message(db, customer, provider, age_days=1)

    booking = make_booking(db, customer, service)
    ledger.get_or_create_day(provider.id, BOOKING_DAY)
    ledger.reserve_slot(provider.id, BOOKING_DAY, "10:00", booking.id)
    booking.status = "cancelled"
    db.commit()

    assert run_maintenance(database, settings) == {"messages_purged": 1, "slots_repaired": 1}

    db.expire_all()
    assert db.query(Messages).count() == 1
    slot = ledger.find_slot(provider.id, BOOKING_DAY, "10:00")
    assert slot.is_booked is False
    assert slot.booking_id is None


def test_pass_with_nothing_to_do(database, settings):
    assert run_maintenance(database, settings) == {"messages_purged": 0, "slots_repaired": 0}


def test_loop_survives_errors(monkeypatch, database, settings):
    calls = []

    def flaky(database, settings):
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("database went away")
        return {"messages_purged": 0, "slots_repaired": 0}

    monkeypatch.setattr(maintenance, "run_maintenance", flaky)
    fast = settings.model_copy(update={"maintenance_interval_seconds": 0})

    async def scenario():
        task = asyncio.create_task(maintenance_loop(database, fast))
        while len(calls) < 3:
            await asyncio.sleep(0.01)
        task.cancel()
        await task

    asyncio.run(asyncio.wait_for(scenario(), timeout=5))
    assert len(calls) >= 3
