"""Persisted entities: Message, Contact, APIKey.

Entities are plain dataclasses. Storage backends never mutate them behind
the caller's back: every create/update goes through prepare_for_create()
or prepare_for_update(), which fill in ids and timestamps and validate
the entity before anything is written.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from wabridge.errors import ValidationError
from wabridge.infra.time import utc_now

from .validation import validate_choice, validate_not_empty, validate_phone_number

DIRECTION_INBOUND = "inbound"
DIRECTION_OUTBOUND = "outbound"
DIRECTIONS = (DIRECTION_INBOUND, DIRECTION_OUTBOUND)

MESSAGE_TYPE_TEXT = "text"
MESSAGE_TYPE_IMAGE = "image"
MESSAGE_TYPE_VIDEO = "video"
MESSAGE_TYPE_AUDIO = "audio"
MESSAGE_TYPE_DOCUMENT = "document"
MESSAGE_TYPE_LOCATION = "location"
MESSAGE_TYPE_TEMPLATE = "template"
MESSAGE_TYPES = (
    MESSAGE_TYPE_TEXT,
    MESSAGE_TYPE_IMAGE,
    MESSAGE_TYPE_VIDEO,
    MESSAGE_TYPE_AUDIO,
    MESSAGE_TYPE_DOCUMENT,
    MESSAGE_TYPE_LOCATION,
    MESSAGE_TYPE_TEMPLATE,
)
MEDIA_MESSAGE_TYPES = (
    MESSAGE_TYPE_IMAGE,
    MESSAGE_TYPE_VIDEO,
    MESSAGE_TYPE_AUDIO,
    MESSAGE_TYPE_DOCUMENT,
)

STATUS_QUEUED = "queued"
STATUS_SENT = "sent"
STATUS_DELIVERED = "delivered"
STATUS_READ = "read"
STATUS_FAILED = "failed"
MESSAGE_STATUSES = (STATUS_QUEUED, STATUS_SENT, STATUS_DELIVERED, STATUS_READ, STATUS_FAILED)

PERMISSION_ALL = "*"


def generate_id(prefix: str = "") -> str:
    """Generate a prefixed ID (e.g. "msg_0b6f...")."""
    value = str(uuid.uuid4())
    return f"{prefix}_{value}" if prefix else value


@dataclass
class Message:
    from_number: str
    to_number: str
    direction: str
    message_type: str
    status: str
    content: str = ""
    whatsapp_message_id: str | None = None
    media_url: str | None = None
    media_mime_type: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime | None = None
    id: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    ID_PREFIX: ClassVar[str] = "msg"

    def apply_defaults(self, now: datetime) -> None:
        if self.timestamp is None:
            self.timestamp = now

    def validate(self) -> None:
        validate_phone_number(self.from_number, "from_number")
        validate_phone_number(self.to_number, "to_number")
        validate_choice(self.direction, DIRECTIONS, "direction")
        validate_choice(self.message_type, MESSAGE_TYPES, "message_type")
        validate_choice(self.status, MESSAGE_STATUSES, "status")
        if self.whatsapp_message_id is not None and not self.whatsapp_message_id.strip():
            raise ValidationError("whatsapp_message_id must not be blank")

    def is_inbound(self) -> bool:
        return self.direction == DIRECTION_INBOUND

    def is_outbound(self) -> bool:
        return self.direction == DIRECTION_OUTBOUND

    def is_delivered(self) -> bool:
        return self.status in (STATUS_DELIVERED, STATUS_READ)

    def has_failed(self) -> bool:
        return self.status == STATUS_FAILED

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass
class Contact:
    phone_number: str
    name: str = ""
    profile_url: str | None = None
    last_message_at: datetime | None = None
    message_count: int = 0
    unread_count: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    ID_PREFIX: ClassVar[str] = "contact"

    def apply_defaults(self, now: datetime) -> None:
        pass

    def validate(self) -> None:
        validate_phone_number(self.phone_number)
        if self.message_count < 0 or self.unread_count < 0:
            raise ValidationError("contact counters must not be negative")

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass
class APIKey:
    name: str
    key_hash: str
    key_prefix: str
    permissions: list[str] = field(default_factory=list)
    expires_at: datetime | None = None
    last_used_at: datetime | None = None
    id: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    ID_PREFIX: ClassVar[str] = "key"

    def apply_defaults(self, now: datetime) -> None:
        pass

    def validate(self) -> None:
        validate_not_empty(self.name, "name")
        validate_not_empty(self.key_hash, "key_hash")
        validate_not_empty(self.key_prefix, "key_prefix")

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utc_now()) > self.expires_at

    def is_valid(self, now: datetime | None = None) -> bool:
        return not self.is_expired(now)

    def has_permission(self, permission: str) -> bool:
        if not self.permissions:
            return False
        return PERMISSION_ALL in self.permissions or permission in self.permissions

    def to_dict(self) -> dict[str, Any]:
        """Public representation. Never includes key_hash."""
        data = _serialize(asdict(self))
        data.pop("key_hash", None)
        return data


Entity = Message | Contact | APIKey


def prepare_for_create(entity: Entity, now: datetime | None = None) -> Entity:
    """Pre-commit pipeline for inserts: id, timestamps, defaults, validation.

    Raises:
        ValidationError: If the entity is invalid.
    """
    now = now or utc_now()
    if not entity.id:
        entity.id = generate_id(entity.ID_PREFIX)
    if entity.created_at is None:
        entity.created_at = now
    if entity.updated_at is None:
        entity.updated_at = now
    entity.apply_defaults(now)
    entity.validate()
    return entity


def prepare_for_update(entity: Entity, now: datetime | None = None) -> Entity:
    """Pre-commit pipeline for updates: stamp updated_at, validate.

    Raises:
        ValidationError: If the entity is invalid.
    """
    entity.updated_at = now or utc_now()
    entity.validate()
    return entity


def _serialize(data: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in data.items():
        out[key] = value.isoformat() if isinstance(value, datetime) else value
    return out
