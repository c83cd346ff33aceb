"""Normalized webhook events.

MessageEvent and StatusEvent are transient: the ingestion coordinator
creates them per delivery and discards them once applied. Message content
is a tagged union keyed by message_type: exactly one content variant is
carried per event.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Union


@dataclass(frozen=True)
class TextContent:
    body: str


@dataclass(frozen=True)
class MediaContent:
    """Reference to provider-hosted media (image, video, audio, document)."""

    media_id: str
    mime_type: str | None = None
    caption: str | None = None
    filename: str | None = None
    sha256: str | None = None
    voice: bool = False


@dataclass(frozen=True)
class LocationContent:
    latitude: float
    longitude: float
    name: str | None = None
    address: str | None = None


MessageContent = Union[TextContent, MediaContent, LocationContent]


@dataclass(frozen=True)
class MessageEvent:
    """One inbound message from a webhook delivery.

    Contains PII (from_number, contact_name, content). Never log it whole.
    """

    message_id: str
    from_number: str
    to_number: str | None
    timestamp: datetime
    message_type: str
    content: MessageContent
    contact_name: str | None = None
    phone_number_id: str | None = None
    context_message_id: str | None = None


@dataclass(frozen=True)
class StatusError:
    code: str
    title: str = ""
    message: str = ""


@dataclass(frozen=True)
class StatusEvent:
    """Delivery/read/failure update for a previously sent message.

    status is passed through verbatim from the provider; values outside
    the known lifecycle are tolerated downstream.
    """

    message_id: str
    status: str
    recipient_id: str | None = None
    timestamp: datetime | None = None
    error: StatusError | None = None
    phone_number_id: str | None = None


@dataclass(frozen=True)
class ItemFailure:
    """A single webhook item skipped by the normalizer."""

    kind: str  # "message" or "status"
    reason: str  # e.g. "malformed_timestamp", "unsupported_type"
    message_id: str | None = None
    detail: str = ""


@dataclass
class NormalizedWebhook:
    """Flattened result of one webhook delivery, in delivery order."""

    message_events: list[MessageEvent] = field(default_factory=list)
    status_events: list[StatusEvent] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.message_events and not self.status_events and not self.failures
