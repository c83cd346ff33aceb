"""Outbound message creation and dispatch.

queue() stores the message as "queued" and returns immediately; dispatch()
is meant to run after the response is sent (FastAPI BackgroundTasks) and
records the provider outcome through the state machine. There is no retry:
a provider error leaves the message failed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from wabridge.domain.models import (
    DIRECTION_OUTBOUND,
    MEDIA_MESSAGE_TYPES,
    MESSAGE_TYPE_TEMPLATE,
    MESSAGE_TYPE_TEXT,
    STATUS_QUEUED,
    Message,
)
from wabridge.errors import AppError, NotFoundError, ValidationError, WhatsAppAPIError
from wabridge.infra.store import DuplicateRecordError, Store
from wabridge.observability.logging import get_logger
from wabridge.observability.redaction import safe_log_context

from .message_state import MessageStateMachine
from .validation import normalize_phone_number, validate_phone_number

SENDABLE_MESSAGE_TYPES = (MESSAGE_TYPE_TEXT, *MEDIA_MESSAGE_TYPES, MESSAGE_TYPE_TEMPLATE)


class MessageSender(Protocol):
    def send(self, message: Message) -> str: ...


@dataclass(frozen=True)
class OutboundRequest:
    to: str
    message_type: str
    content: str = ""
    media_url: str | None = None
    media_mime_type: str | None = None
    filename: str | None = None
    template_name: str | None = None
    template_language: str | None = None
    template_components: list[dict[str, Any]] = field(default_factory=list)


def build_outbound_message(request: OutboundRequest, from_number: str) -> Message:
    """Validate a send request and build the queued Message for it.

    Raises:
        ValidationError: On invalid recipient or missing type-specific fields.
    """
    to_number = validate_phone_number(normalize_phone_number(request.to), "to")

    if request.message_type not in SENDABLE_MESSAGE_TYPES:
        raise ValidationError(
            f"invalid type: {request.message_type} "
            f"(must be one of: {', '.join(SENDABLE_MESSAGE_TYPES)})",
            details={"type": request.message_type},
        )

    metadata: dict[str, Any] = {}
    content = request.content or ""

    if request.message_type == MESSAGE_TYPE_TEXT:
        if not content.strip():
            raise ValidationError("content is required for text messages")
    elif request.message_type in MEDIA_MESSAGE_TYPES:
        if not request.media_url:
            raise ValidationError(f"media_url is required for {request.message_type} messages")
        if request.filename:
            metadata["filename"] = request.filename
    else:
        if not request.template_name or not request.template_language:
            raise ValidationError(
                "template_name and template_language are required for template messages"
            )
        content = content or request.template_name
        metadata["template"] = {
            "name": request.template_name,
            "language": request.template_language,
            "components": list(request.template_components),
        }

    if not from_number:
        raise ValidationError("business phone number is not configured")

    return Message(
        from_number=from_number,
        to_number=to_number,
        direction=DIRECTION_OUTBOUND,
        message_type=request.message_type,
        content=content,
        media_url=request.media_url if request.message_type in MEDIA_MESSAGE_TYPES else None,
        media_mime_type=request.media_mime_type,
        status=STATUS_QUEUED,
        metadata=metadata,
    )


class OutboundService:
    """Queues outbound messages and hands them to the provider."""

    def __init__(
        self,
        store: Store,
        sender: MessageSender,
        *,
        from_number: str,
        state_machine: MessageStateMachine | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._sender = sender
        self._from_number = from_number
        self._logger = logger or get_logger(__name__)
        self._states = state_machine or MessageStateMachine(store, logger=self._logger)

    def queue(self, request: OutboundRequest) -> Message:
        """Store a new outbound message in status "queued".

        Raises:
            ValidationError: If the request is invalid.
            DatabaseError: On storage failure.
        """
        message = build_outbound_message(request, self._from_number)
        with self._store.transaction() as session:
            message = session.create_message(message)
        self._logger.info(
            "outbound message queued",
            extra={
                "extra_fields": safe_log_context(
                    message_id=message.id, message_type=message.message_type
                )
            },
        )
        return message

    def dispatch(self, message_id: str) -> None:
        """Send a queued message and record the outcome. Never raises."""
        try:
            with self._store.transaction() as session:
                message = session.get_message(message_id)
            if message is None:
                raise NotFoundError("message not found", details={"id": message_id})

            try:
                wamid = self._sender.send(message)
            except WhatsAppAPIError as exc:
                self._states.record_send_failure(
                    message_id, exc.provider_code or exc.code, exc.message
                )
                self._logger.warning(
                    "outbound message failed",
                    extra={
                        "extra_fields": safe_log_context(
                            message_id=message_id, provider_code=exc.provider_code
                        )
                    },
                )
                return

            self._states.record_send_result(message_id, wamid)
        except (AppError, DuplicateRecordError):
            self._logger.error(
                "outbound dispatch aborted",
                exc_info=True,
                extra={"extra_fields": safe_log_context(message_id=message_id)},
            )
