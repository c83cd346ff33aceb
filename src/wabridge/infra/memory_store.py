"""In-process store backend (STORE_BACKEND=memory).

Used for local development and tests. Transactions are serialized by a
single re-entrant lock and rolled back by restoring a snapshot taken when
the transaction started. Entities are copied on the way in and out so
callers never hold references into the store.
"""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from wabridge.domain.models import (
    APIKey,
    Contact,
    Message,
    prepare_for_create,
    prepare_for_update,
)
from wabridge.errors import NotFoundError
from wabridge.infra.pagination import Pagination

from .store import DuplicateRecordError, MessageFilters


class MemorySession:
    """StoreSession over the MemoryStore tables. Only valid inside transaction()."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    # -- messages ---------------------------------------------------------

    def get_message(self, message_id: str) -> Message | None:
        message = self._store.messages.get(message_id)
        return copy.deepcopy(message) if message else None

    def get_message_by_whatsapp_id(
        self, whatsapp_message_id: str, *, for_update: bool = False
    ) -> Message | None:
        # The transaction lock already serializes writers.
        message_id = self._store.messages_by_wamid.get(whatsapp_message_id)
        return self.get_message(message_id) if message_id else None

    def create_message(self, message: Message) -> Message:
        prepare_for_create(message)
        wamid = message.whatsapp_message_id
        if wamid and wamid in self._store.messages_by_wamid:
            raise DuplicateRecordError("message", wamid)
        if message.id in self._store.messages:
            raise DuplicateRecordError("message", message.id)
        self._store.messages[message.id] = copy.deepcopy(message)
        if wamid:
            self._store.messages_by_wamid[wamid] = message.id
        return copy.deepcopy(message)

    def update_message(self, message: Message) -> Message:
        stored = self._store.messages.get(message.id)
        if stored is None:
            raise NotFoundError("message not found", details={"id": message.id})
        prepare_for_update(message)
        wamid = message.whatsapp_message_id
        owner = self._store.messages_by_wamid.get(wamid) if wamid else None
        if owner is not None and owner != message.id:
            raise DuplicateRecordError("message", wamid)
        if stored.whatsapp_message_id and stored.whatsapp_message_id != wamid:
            self._store.messages_by_wamid.pop(stored.whatsapp_message_id, None)
        self._store.messages[message.id] = copy.deepcopy(message)
        if wamid:
            self._store.messages_by_wamid[wamid] = message.id
        return copy.deepcopy(message)

    def list_messages(
        self, filters: MessageFilters, pagination: Pagination
    ) -> tuple[list[Message], int]:
        rows = [
            m
            for m in self._store.messages.values()
            if (
                filters.phone_number is None
                or filters.phone_number in (m.from_number, m.to_number)
            )
            and (filters.direction is None or m.direction == filters.direction)
            and (filters.status is None or m.status == filters.status)
        ]
        rows.sort(key=lambda m: (m.timestamp, m.created_at), reverse=True)
        window = rows[pagination.offset : pagination.offset + pagination.limit]
        return [copy.deepcopy(m) for m in window], len(rows)

    # -- contacts ---------------------------------------------------------

    def get_contact(self, phone_number: str) -> Contact | None:
        contact = self._store.contacts.get(phone_number)
        return copy.deepcopy(contact) if contact else None

    def record_inbound_contact(
        self, phone_number: str, name: str | None, message_at: datetime
    ) -> Contact:
        contact = self._store.contacts.get(phone_number)
        if contact is None:
            contact = prepare_for_create(
                Contact(
                    phone_number=phone_number,
                    name=name or "",
                    message_count=1,
                    unread_count=1,
                    last_message_at=message_at,
                )
            )
        else:
            contact = copy.deepcopy(contact)
            contact.message_count += 1
            contact.unread_count += 1
            if contact.last_message_at is None or message_at > contact.last_message_at:
                contact.last_message_at = message_at
            if name:
                contact.name = name
            prepare_for_update(contact)
        self._store.contacts[phone_number] = copy.deepcopy(contact)
        return contact

    def list_contacts(self, pagination: Pagination) -> tuple[list[Contact], int]:
        rows = sorted(
            self._store.contacts.values(),
            key=lambda c: (c.last_message_at is not None, c.last_message_at, c.created_at),
            reverse=True,
        )
        window = rows[pagination.offset : pagination.offset + pagination.limit]
        return [copy.deepcopy(c) for c in window], len(rows)

    # -- api keys ---------------------------------------------------------

    def create_api_key(self, api_key: APIKey) -> APIKey:
        prepare_for_create(api_key)
        for existing in self._store.api_keys.values():
            if existing.key_hash == api_key.key_hash:
                raise DuplicateRecordError("api_key", api_key.key_prefix)
        self._store.api_keys[api_key.id] = copy.deepcopy(api_key)
        return copy.deepcopy(api_key)

    def find_api_keys_by_prefix(self, key_prefix: str) -> list[APIKey]:
        return [
            copy.deepcopy(k)
            for k in self._store.api_keys.values()
            if k.key_prefix == key_prefix
        ]

    def touch_api_key(self, api_key_id: str, used_at: datetime) -> None:
        api_key = self._store.api_keys.get(api_key_id)
        if api_key is None:
            raise NotFoundError("api key not found", details={"id": api_key_id})
        api_key.last_used_at = used_at

    def ping(self) -> None:
        return None


class MemoryStore:
    """Dict-backed Store."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.messages: dict[str, Message] = {}
        self.messages_by_wamid: dict[str, str] = {}
        self.contacts: dict[str, Contact] = {}
        self.api_keys: dict[str, APIKey] = {}

    def _snapshot(self) -> tuple:
        return copy.deepcopy(
            (self.messages, self.messages_by_wamid, self.contacts, self.api_keys)
        )

    @contextmanager
    def transaction(self) -> Iterator[MemorySession]:
        with self._lock:
            snapshot = self._snapshot()
            try:
                yield MemorySession(self)
            except BaseException:
                self.messages, self.messages_by_wamid, self.contacts, self.api_keys = snapshot
                raise
