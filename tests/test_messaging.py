"""Tests for conversations, messages and unread read-state."""

import json
from datetime import timedelta

import pytest

from marketplace.clock import utcnow
from marketplace.errors import Forbidden, NotFound, ValidationFailed
from marketplace.models.entities import ConversationParticipants, Messages
from marketplace.services.cache import build_cache_key
from marketplace.services.cache.keys import CONVERSATIONS_LIST
from marketplace.services.messaging import purge_expired_messages


@pytest.fixture
def conversation(conversations, customer, provider, service):
    conversation, _ = conversations.create_conversation(customer.id, provider.id, service_id=service.id)
    return conversation


def participant(db, conversation, user) -> ConversationParticipants:
    db.expire_all()
    return (
        db.query(ConversationParticipants)
        .filter_by(conversation_id=conversation.id, user_id=user.id)
        .one()
    )


def listed_unread(conversations, user) -> int:
    return conversations.list_conversations(user.id)["conversations"][0]["unread_count"]


class TestCreateConversation:
    def test_reuses_existing_for_same_pair_and_context(self, conversations, conversation, customer, provider, service):
        again, created = conversations.create_conversation(provider.id, customer.id, service_id=service.id)
        assert created is False
        assert again.id == conversation.id

    def test_different_context_is_new(self, conversations, conversation, customer, provider):
        other, created = conversations.create_conversation(customer.id, provider.id)
        assert created is True
        assert other.id != conversation.id

    def test_not_with_yourself(self, conversations, customer):
        with pytest.raises(ValidationFailed):
            conversations.create_conversation(customer.id, customer.id)

    def test_unknown_recipient(self, conversations, customer):
        with pytest.raises(NotFound):
            conversations.create_conversation(customer.id, 999)

    def test_emits_to_both_rooms(self, conversation, emitter, customer, provider):
        assert emitter.events_for(f"user_{customer.id}") == ["conversationUpdated"]
        assert emitter.events_for(f"user_{provider.id}") == ["conversationUpdated"]


class TestSendMessage:
    def test_recipient_counter_incremented(self, db, conversations, conversation, customer, provider):
        message = conversations.send_message(customer.id, conversation.id, "Hello, are you free?")

        assert message.recipient_id == provider.id
        assert participant(db, conversation, provider).unread_count == 1
        assert participant(db, conversation, customer).unread_count == 0

    def test_snapshot_updated(self, db, conversations, conversation, customer):
        conversations.send_message(customer.id, conversation.id, "Hi")
        db.expire_all()
        assert conversation.last_message_content == "Hi"
        assert conversation.last_message_sender_id == customer.id

    def test_realtime_events(self, conversations, conversation, emitter, customer, provider):
        emitter.events.clear()
        conversations.send_message(customer.id, conversation.id, "Hi")

        for user in (customer, provider):
            assert emitter.events_for(f"user_{user.id}") == ["newMessage", "conversationUpdated"]

    def test_too_long(self, conversations, conversation, customer):
        with pytest.raises(ValidationFailed):
            conversations.send_message(customer.id, conversation.id, "x" * 1001)

    def test_max_length_accepted(self, conversations, conversation, customer):
        assert len(conversations.send_message(customer.id, conversation.id, "x" * 1000).content) == 1000

    def test_blank(self, conversations, conversation, customer):
        with pytest.raises(ValidationFailed):
            conversations.send_message(customer.id, conversation.id, "   ")

    def test_non_participant(self, conversations, conversation, other_customer):
        with pytest.raises(Forbidden):
            conversations.send_message(other_customer.id, conversation.id, "Hi")

    def test_missing_conversation(self, conversations, customer):
        with pytest.raises(NotFound):
            conversations.send_message(customer.id, 999, "Hi")


class TestUnreadCounts:
    def test_never_read_counts_all_from_others(self, conversations, conversation, customer, provider):
        conversations.send_message(customer.id, conversation.id, "one")
        conversations.send_message(customer.id, conversation.id, "two")
        conversations.send_message(provider.id, conversation.id, "reply")

        assert listed_unread(conversations, provider) == 2
        assert listed_unread(conversations, customer) == 1

    def test_mark_read_resets(self, db, conversations, conversation, customer, provider):
        conversations.send_message(customer.id, conversation.id, "one")
        last = conversations.send_message(customer.id, conversation.id, "two")

        conversations.mark_as_read(provider.id, conversation.id)

        state = participant(db, conversation, provider)
        assert state.unread_count == 0
        assert state.last_read_message_id == last.id
        assert state.last_read_at is not None
        assert listed_unread(conversations, provider) == 0

    def test_only_messages_after_last_read_count(self, conversations, conversation, customer, provider):
        conversations.send_message(customer.id, conversation.id, "old")
        conversations.mark_as_read(provider.id, conversation.id)
        conversations.send_message(customer.id, conversation.id, "new")

        assert listed_unread(conversations, provider) == 1

    def test_cached_list_does_not_freeze_unread(self, cache_store, conversations, conversation, customer, provider):
        conversations.send_message(customer.id, conversation.id, "one")
        assert listed_unread(conversations, provider) == 1

        # Mark-as-read leaves the cached summary in place
        conversations.mark_as_read(provider.id, conversation.id)
        key = build_cache_key(CONVERSATIONS_LIST, {"page": 1, "limit": 20}, user_id=provider.id)
        cached = json.loads(cache_store.get(key))
        assert "unread_count" not in cached["conversations"][0]

        assert listed_unread(conversations, provider) == 0

    def test_drifted_counter_is_corrected(self, db, conversations, conversation, customer, provider):
        conversations.send_message(customer.id, conversation.id, "one")
        state = participant(db, conversation, provider)
        state.unread_count = 99
        db.commit()

        assert listed_unread(conversations, provider) == 1
        assert participant(db, conversation, provider).unread_count == 1

    def test_unread_total(self, conversations, conversation, customer, provider):
        other, _ = conversations.create_conversation(customer.id, provider.id)
        conversations.send_message(customer.id, conversation.id, "a")
        conversations.send_message(customer.id, other.id, "b")
        conversations.send_message(customer.id, other.id, "c")

        assert conversations.unread_total(provider.id) == 3
        assert conversations.unread_total(customer.id) == 0

    def test_send_invalidates_both_lists(self, cache_store, conversations, conversation, customer, provider):
        conversations.list_conversations(customer.id)
        conversations.list_conversations(provider.id)

        conversations.send_message(customer.id, conversation.id, "hello")

        assert not [k for k in cache_store.keys() if k.startswith("conversations:")]


class TestGetMessages:
    def test_chronological_and_marks_read(self, db, conversations, conversation, customer, provider):
        for text in ("first", "second", "third"):
            conversations.send_message(customer.id, conversation.id, text)

        items, total = conversations.get_messages(provider.id, conversation.id)

        assert total == 3
        assert [m.content for m in items] == ["first", "second", "third"]
        assert participant(db, conversation, provider).unread_count == 0
        db.expire_all()
        assert all(m.is_read for m in db.query(Messages).all())

    def test_pagination_newest_page_first(self, conversations, conversation, customer):
        for i in range(5):
            conversations.send_message(customer.id, conversation.id, f"m{i}")

        page1, _ = conversations.get_messages(customer.id, conversation.id, page=1, limit=2)
        page2, _ = conversations.get_messages(customer.id, conversation.id, page=2, limit=2)

        assert [m.content for m in page1] == ["m3", "m4"]
        assert [m.content for m in page2] == ["m1", "m2"]

    def test_non_participant(self, conversations, conversation, other_customer):
        with pytest.raises(Forbidden):
            conversations.get_messages(other_customer.id, conversation.id)


class TestRetention:
    def test_purges_messages_older_than_horizon(self, db, conversations, conversation, customer, provider):
        old = conversations.send_message(customer.id, conversation.id, "ancient")
        conversations.mark_as_read(provider.id, conversation.id)
        conversations.send_message(customer.id, conversation.id, "recent")

        old.created_at = utcnow() - timedelta(days=91)
        db.commit()

        assert purge_expired_messages(db, 90) == 1

        db.expire_all()
        assert [m.content for m in db.query(Messages).all()] == ["recent"]
        state = participant(db, conversation, provider)
        assert state.last_read_message_id is None
        assert state.last_read_at is not None

    def test_keeps_messages_within_horizon(self, db, conversations, conversation, customer):
        conversations.send_message(customer.id, conversation.id, "fresh")
        assert purge_expired_messages(db, 90) == 0
