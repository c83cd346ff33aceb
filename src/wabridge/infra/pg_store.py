"""PostgreSQL store backend (STORE_BACKEND=postgres).

One connection per transaction (opened and closed by txn()). Driver
errors surface as DatabaseError; uniqueness collisions on idempotency
keys surface as DuplicateRecordError.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

import psycopg2
from psycopg2 import errors as pg_errors
from psycopg2.extensions import cursor as PgCursor

from wabridge.domain.models import (
    APIKey,
    Contact,
    Message,
    prepare_for_create,
    prepare_for_update,
)
from wabridge.errors import DatabaseError, NotFoundError
from wabridge.infra.db import txn
from wabridge.infra.pagination import Pagination
from wabridge.infra.repositories import (
    api_keys_repository,
    contacts_repository,
    messages_repository,
)

from .store import DuplicateRecordError, MessageFilters


class PgSession:
    """StoreSession bound to one psycopg2 cursor."""

    def __init__(self, cur: PgCursor) -> None:
        self._cur = cur

    def get_message(self, message_id: str) -> Message | None:
        return messages_repository.get_message(self._cur, message_id)

    def get_message_by_whatsapp_id(
        self, whatsapp_message_id: str, *, for_update: bool = False
    ) -> Message | None:
        return messages_repository.get_message_by_whatsapp_id(
            self._cur, whatsapp_message_id, lock=for_update
        )

    def create_message(self, message: Message) -> Message:
        prepare_for_create(message)
        stored = messages_repository.insert_message(self._cur, message)
        if stored is None:
            raise DuplicateRecordError("message", message.whatsapp_message_id or message.id)
        return stored

    def update_message(self, message: Message) -> Message:
        prepare_for_update(message)
        try:
            stored = messages_repository.update_message(self._cur, message)
        except pg_errors.UniqueViolation:
            raise DuplicateRecordError("message", message.whatsapp_message_id or message.id)
        if stored is None:
            raise NotFoundError("message not found", details={"id": message.id})
        return stored

    def list_messages(
        self, filters: MessageFilters, pagination: Pagination
    ) -> tuple[list[Message], int]:
        return messages_repository.list_messages(self._cur, filters, pagination)

    def get_contact(self, phone_number: str) -> Contact | None:
        return contacts_repository.get_contact(self._cur, phone_number)

    def record_inbound_contact(
        self, phone_number: str, name: str | None, message_at: datetime
    ) -> Contact:
        contact = prepare_for_create(
            Contact(
                phone_number=phone_number,
                name=name or "",
                message_count=1,
                unread_count=1,
                last_message_at=message_at,
            )
        )
        return contacts_repository.upsert_inbound_contact(self._cur, contact)

    def list_contacts(self, pagination: Pagination) -> tuple[list[Contact], int]:
        return contacts_repository.list_contacts(self._cur, pagination)

    def create_api_key(self, api_key: APIKey) -> APIKey:
        prepare_for_create(api_key)
        stored = api_keys_repository.insert_api_key(self._cur, api_key)
        if stored is None:
            raise DuplicateRecordError("api_key", api_key.key_prefix)
        return stored

    def find_api_keys_by_prefix(self, key_prefix: str) -> list[APIKey]:
        return api_keys_repository.find_by_prefix(self._cur, key_prefix)

    def touch_api_key(self, api_key_id: str, used_at: datetime) -> None:
        api_keys_repository.touch_last_used(self._cur, api_key_id, used_at)

    def ping(self) -> None:
        self._cur.execute("SELECT 1")
        self._cur.fetchone()


class PgStore:
    """Store backed by PostgreSQL through psycopg2."""

    def __init__(self, dsn: str, *, password: str | None = None) -> None:
        self._dsn = dsn
        self._password = password

    @contextmanager
    def transaction(self) -> Iterator[PgSession]:
        if not self._dsn:
            raise DatabaseError("database DSN not configured (DATABASE_URL)")
        try:
            with txn(self._dsn, password=self._password) as cur:
                yield PgSession(cur)
        except psycopg2.Error as exc:
            raise DatabaseError(details={"driver_error": type(exc).__name__}) from exc
