"""Message lifecycle state machine.

Statuses move forward only: queued -> sent -> delivered -> read. failed is
reachable from any state and is terminal. Webhooks are delivered
at-least-once and unordered, so:

- a status event whose rank is not above the current one is a no-op;
- once failed, non-failed events are ignored;
- a failed event always overwrites and records the provider error;
- unknown provider statuses are logged and ignored.

Inbound messages are idempotent on whatsapp_message_id. Each write runs in
one storage transaction; status transitions lock the message row.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from wabridge.domain.models import (
    DIRECTION_INBOUND,
    MEDIA_MESSAGE_TYPES,
    MESSAGE_STATUSES,
    STATUS_DELIVERED,
    STATUS_FAILED,
    STATUS_QUEUED,
    STATUS_READ,
    STATUS_SENT,
    Message,
)
from wabridge.errors import NotFoundError
from wabridge.infra.store import DuplicateRecordError, Store
from wabridge.observability.logging import get_logger
from wabridge.observability.redaction import id_prefix, safe_log_context
from wabridge.whatsapp.models import (
    LocationContent,
    MediaContent,
    MessageEvent,
    StatusEvent,
    TextContent,
)

STATUS_RANK = {
    STATUS_QUEUED: 0,
    STATUS_SENT: 1,
    STATUS_DELIVERED: 2,
    STATUS_READ: 3,
}


class Transition(str, Enum):
    ADVANCE = "advance"
    FAIL = "fail"
    STALE = "stale"
    TERMINAL = "terminal"
    UNKNOWN_STATUS = "unknown_status"

    @property
    def applies(self) -> bool:
        return self in (Transition.ADVANCE, Transition.FAIL)


class UnknownMessageError(NotFoundError):
    """Status event for a message that was never stored locally."""

    code = "unknown_message"
    default_message = "No message with this WhatsApp message id"


def plan_transition(current: str, incoming: str) -> Transition:
    """Decide what an incoming status does to a message in status current."""
    if incoming not in MESSAGE_STATUSES:
        return Transition.UNKNOWN_STATUS
    if incoming == STATUS_FAILED:
        return Transition.FAIL
    if current == STATUS_FAILED:
        return Transition.TERMINAL
    if STATUS_RANK[incoming] <= STATUS_RANK.get(current, 0):
        return Transition.STALE
    return Transition.ADVANCE


def message_from_event(event: MessageEvent) -> Message:
    """Build the inbound Message row for a normalized event (not yet stored)."""
    metadata: dict[str, Any] = {}
    if event.phone_number_id:
        metadata["phone_number_id"] = event.phone_number_id
    if event.context_message_id:
        metadata["context_message_id"] = event.context_message_id

    content = ""
    media_mime_type = None
    body = event.content
    if isinstance(body, TextContent):
        content = body.body
    elif isinstance(body, MediaContent):
        content = body.caption or ""
        media_mime_type = body.mime_type
        metadata["media_id"] = body.media_id
        if body.filename:
            metadata["filename"] = body.filename
        if body.sha256:
            metadata["media_sha256"] = body.sha256
        if body.voice:
            metadata["voice"] = True
    elif isinstance(body, LocationContent):
        content = body.name or body.address or ""
        metadata["location"] = {
            "latitude": body.latitude,
            "longitude": body.longitude,
            "name": body.name,
            "address": body.address,
        }

    return Message(
        whatsapp_message_id=event.message_id,
        from_number=event.from_number,
        to_number=event.to_number or "",
        direction=DIRECTION_INBOUND,
        message_type=event.message_type,
        content=content,
        media_mime_type=media_mime_type if event.message_type in MEDIA_MESSAGE_TYPES else None,
        status=STATUS_DELIVERED,
        metadata=metadata,
        timestamp=event.timestamp,
    )


class MessageStateMachine:
    """Applies normalized events and send results to stored messages."""

    def __init__(self, store: Store, *, logger: logging.Logger | None = None) -> None:
        self._store = store
        self._logger = logger or get_logger(__name__)

    def apply_message_event(self, event: MessageEvent) -> tuple[Message, bool]:
        """Store a new inbound message and bump the sender's contact.

        Returns:
            (message, is_new_record). A redelivered whatsapp_message_id
            returns the stored message and False without touching the
            contact.

        Raises:
            ValidationError: If the event does not form a valid message.
            DatabaseError: On storage failure.
        """
        with self._store.transaction() as session:
            existing = session.get_message_by_whatsapp_id(event.message_id)
            if existing is not None:
                self._log_duplicate(event)
                return existing, False

            try:
                message = session.create_message(message_from_event(event))
            except DuplicateRecordError:
                # Concurrent delivery of the same wamid won the insert.
                existing = session.get_message_by_whatsapp_id(event.message_id)
                if existing is None:
                    raise
                self._log_duplicate(event)
                return existing, False

            session.record_inbound_contact(
                event.from_number, event.contact_name, event.timestamp
            )

        self._logger.info(
            "inbound message stored",
            extra={
                "extra_fields": safe_log_context(
                    message_id=message.id,
                    wamid=id_prefix(event.message_id),
                    message_type=event.message_type,
                )
            },
        )
        return message, True

    def apply_status_event(self, event: StatusEvent) -> Message:
        """Apply a delivery/read/failure update to a stored message.

        Stale, post-failure and unknown statuses return the message
        unchanged.

        Raises:
            UnknownMessageError: If no message has event.message_id.
            DatabaseError: On storage failure.
        """
        with self._store.transaction() as session:
            message = session.get_message_by_whatsapp_id(event.message_id, for_update=True)
            if message is None:
                raise UnknownMessageError(details={"wamid": id_prefix(event.message_id)})

            transition = plan_transition(message.status, event.status)
            if not transition.applies:
                self._logger.info(
                    "status event not applied",
                    extra={
                        "extra_fields": safe_log_context(
                            message_id=message.id,
                            current_status=message.status,
                            incoming_status=event.status[:32],
                            transition=transition.value,
                        )
                    },
                )
                return message

            previous = message.status
            message.status = event.status
            if transition is Transition.FAIL:
                error = event.error
                message.error_code = error.code if error else None
                message.error_message = (error.message or error.title) if error else None
            if event.timestamp is not None:
                timestamps = dict(message.metadata.get("status_timestamps") or {})
                timestamps[event.status] = event.timestamp.isoformat()
                message.metadata["status_timestamps"] = timestamps
            message = session.update_message(message)

        self._logger.info(
            "message status updated",
            extra={
                "extra_fields": safe_log_context(
                    message_id=message.id,
                    from_status=previous,
                    to_status=message.status,
                )
            },
        )
        return message

    def record_send_result(self, message_id: str, whatsapp_message_id: str) -> Message:
        """Mark an outbound message as accepted by the provider (sent).

        Raises:
            NotFoundError: If the message does not exist.
        """
        with self._store.transaction() as session:
            message = _require_message(session, message_id)
            message.whatsapp_message_id = whatsapp_message_id
            if plan_transition(message.status, STATUS_SENT).applies:
                message.status = STATUS_SENT
            return session.update_message(message)

    def record_send_failure(
        self, message_id: str, error_code: str | None, error_message: str | None
    ) -> Message:
        """Mark an outbound message as failed with the provider error.

        Raises:
            NotFoundError: If the message does not exist.
        """
        with self._store.transaction() as session:
            message = _require_message(session, message_id)
            message.status = STATUS_FAILED
            message.error_code = error_code
            message.error_message = error_message
            return session.update_message(message)

    def _log_duplicate(self, event: MessageEvent) -> None:
        self._logger.info(
            "duplicate inbound message ignored",
            extra={"extra_fields": safe_log_context(wamid=id_prefix(event.message_id))},
        )


def _require_message(session: Any, message_id: str) -> Message:
    message = session.get_message(message_id)
    if message is None:
        raise NotFoundError("message not found", details={"id": message_id})
    return message
