"""Tests for the in-process store backend."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from helpers import BUSINESS_NUMBER, CUSTOMER_E164, make_settings
from wabridge.domain.models import Message
from wabridge.errors import NotFoundError, ValidationError
from wabridge.infra.memory_store import MemoryStore
from wabridge.infra.pagination import Pagination
from wabridge.infra.store import DuplicateRecordError, MessageFilters, build_store

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _message(wamid=None, **overrides):
    fields = {
        "from_number": CUSTOMER_E164,
        "to_number": BUSINESS_NUMBER,
        "direction": "inbound",
        "message_type": "text",
        "status": "delivered",
        "content": "hi",
        "whatsapp_message_id": wamid,
        "timestamp": T0,
    }
    fields.update(overrides)
    return Message(**fields)


@pytest.fixture
def store():
    return MemoryStore()


class TestTransactions:
    def test_rollback_on_exception(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction() as session:
                session.create_message(_message("wamid.1"))
                session.record_inbound_contact(CUSTOMER_E164, "A", T0)
                raise RuntimeError("abort")

        assert store.messages == {}
        assert store.messages_by_wamid == {}
        assert store.contacts == {}

    def test_returned_entities_are_copies(self, store):
        with store.transaction() as session:
            created = session.create_message(_message("wamid.1"))
        created.status = "read"
        assert store.messages[created.id].status == "delivered"

    def test_validation_runs_before_write(self, store):
        with pytest.raises(ValidationError):
            with store.transaction() as session:
                session.create_message(_message("wamid.1", from_number="12345"))
        assert store.messages == {}


class TestMessages:
    def test_duplicate_wamid(self, store):
        with store.transaction() as session:
            session.create_message(_message("wamid.1"))
        with pytest.raises(DuplicateRecordError):
            with store.transaction() as session:
                session.create_message(_message("wamid.1"))
        assert len(store.messages) == 1

    def test_update_missing(self, store):
        message = _message("wamid.1", id="msg_missing")
        with pytest.raises(NotFoundError):
            with store.transaction() as session:
                session.update_message(message)

    def test_update_cannot_steal_wamid(self, store):
        with store.transaction() as session:
            session.create_message(_message("wamid.1"))
            other = session.create_message(_message("wamid.2"))
        other.whatsapp_message_id = "wamid.1"
        with pytest.raises(DuplicateRecordError):
            with store.transaction() as session:
                session.update_message(other)

    def test_list_newest_first(self, store):
        with store.transaction() as session:
            session.create_message(_message("wamid.old", timestamp=T0))
            session.create_message(_message("wamid.new", timestamp=T0 + timedelta(hours=1)))
            items, total = session.list_messages(MessageFilters(), Pagination.from_params())
        assert total == 2
        assert [m.whatsapp_message_id for m in items] == ["wamid.new", "wamid.old"]


class TestContacts:
    def test_first_and_repeat_messages(self, store):
        with store.transaction() as session:
            first = session.record_inbound_contact(CUSTOMER_E164, "", T0)
            second = session.record_inbound_contact(
                CUSTOMER_E164, "Bob", T0 - timedelta(minutes=5)
            )
        assert first.message_count == 1
        assert second.message_count == 2
        assert second.unread_count == 2
        assert second.name == "Bob"
        assert second.last_message_at == T0
        assert second.id == first.id


class TestApiKeys:
    def test_touch_missing_key(self, store):
        with pytest.raises(NotFoundError):
            with store.transaction() as session:
                session.touch_api_key("key_missing", T0)


def test_build_store_memory():
    assert isinstance(build_store(make_settings()), MemoryStore)


def test_build_store_unknown_backend():
    with pytest.raises(ValueError):
        build_store(replace(make_settings(), store_backend="redis"))
