"""Storage collaborator contract.

The core talks to storage only through Store.transaction(), which yields a
StoreSession. A session commits on normal exit and rolls back on any
exception. Backends:

- "postgres": PgStore (psycopg2, raw SQL)
- "memory": MemoryStore (in-process, for dev/tests)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, ContextManager, Protocol

if TYPE_CHECKING:
    from wabridge.config import Settings
    from wabridge.domain.models import APIKey, Contact, Message
    from wabridge.infra.pagination import Pagination


class DuplicateRecordError(Exception):
    """Raised when an insert collides with a uniqueness constraint."""

    def __init__(self, entity: str, key: str) -> None:
        super().__init__(f"{entity} already exists for key {key!r}")
        self.entity = entity
        self.key = key


@dataclass(frozen=True)
class MessageFilters:
    phone_number: str | None = None
    direction: str | None = None
    status: str | None = None


class StoreSession(Protocol):
    """Operations available inside one storage transaction."""

    def get_message(self, message_id: str) -> Message | None: ...

    def get_message_by_whatsapp_id(
        self, whatsapp_message_id: str, *, for_update: bool = False
    ) -> Message | None: ...

    def create_message(self, message: Message) -> Message: ...

    def update_message(self, message: Message) -> Message: ...

    def list_messages(
        self, filters: MessageFilters, pagination: Pagination
    ) -> tuple[list[Message], int]: ...

    def get_contact(self, phone_number: str) -> Contact | None: ...

    def record_inbound_contact(
        self, phone_number: str, name: str | None, message_at: datetime
    ) -> Contact: ...

    def list_contacts(self, pagination: Pagination) -> tuple[list[Contact], int]: ...

    def create_api_key(self, api_key: APIKey) -> APIKey: ...

    def find_api_keys_by_prefix(self, key_prefix: str) -> list[APIKey]: ...

    def touch_api_key(self, api_key_id: str, used_at: datetime) -> None: ...

    def ping(self) -> None: ...


class Store(Protocol):
    def transaction(self) -> ContextManager[StoreSession]: ...


def build_store(settings: Settings) -> Store:
    """Create the store backend selected by settings.store_backend.

    Raises:
        ValueError: If the backend is unknown.
    """
    if settings.store_backend == "memory":
        from wabridge.infra.memory_store import MemoryStore

        return MemoryStore()
    if settings.store_backend == "postgres":
        from wabridge.infra.pg_store import PgStore

        return PgStore(settings.database_url, password=settings.database_password or None)
    raise ValueError(f"Unknown store backend: {settings.store_backend}")
