"""Message endpoints.

POST /messages           -> queue an outbound message (send_message), 202
GET  /messages           -> list with filters            (read_messages)
GET  /messages/{id}      -> single message               (read_messages)

Sending is fire-and-forget: the message is stored as "queued" and the
provider call runs as a background task after the response.
"""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from wabridge.api.auth import require_permission
from wabridge.api.deps import get_outbound, get_store
from wabridge.domain.api_keys import PERMISSION_READ_MESSAGES, PERMISSION_SEND_MESSAGE
from wabridge.domain.models import DIRECTIONS, MESSAGE_STATUSES, APIKey
from wabridge.domain.outbound import OutboundRequest, OutboundService
from wabridge.domain.validation import normalize_phone_number, validate_choice
from wabridge.errors import NotFoundError
from wabridge.infra.pagination import DEFAULT_LIMIT, Pagination
from wabridge.infra.store import MessageFilters, Store

router = APIRouter(prefix="/messages", tags=["messages"])


# ── Schemas ───────────────────────────────────────────────────────────────────


class SendMessageRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    to: str = Field(min_length=1, max_length=32)
    type: Literal["text", "image", "video", "audio", "document", "template"] = "text"
    content: str = ""
    media_url: str | None = None
    media_mime_type: str | None = None
    filename: str | None = None
    template_name: str | None = None
    template_language: str | None = None
    template_components: list[dict[str, Any]] = Field(default_factory=list)

    def to_outbound(self) -> OutboundRequest:
        return OutboundRequest(
            to=self.to,
            message_type=self.type,
            content=self.content,
            media_url=self.media_url,
            media_mime_type=self.media_mime_type,
            filename=self.filename,
            template_name=self.template_name,
            template_language=self.template_language,
            template_components=self.template_components,
        )


# ── POST /messages ────────────────────────────────────────────────────────────


@router.post("", status_code=202)
def send_message(
    body: SendMessageRequest,
    background_tasks: BackgroundTasks,
    _: APIKey = Depends(require_permission(PERMISSION_SEND_MESSAGE)),
    outbound: OutboundService = Depends(get_outbound),
) -> dict:
    """Queue an outbound message and dispatch it after responding.

    Returns the queued message; its status moves to sent or failed once
    the provider answers (see GET /messages/{id}).
    """
    message = outbound.queue(body.to_outbound())
    background_tasks.add_task(outbound.dispatch, message.id)
    return {"message": message.to_dict()}


# ── GET /messages ─────────────────────────────────────────────────────────────


@router.get("")
def list_messages(
    phone_number: str | None = None,
    direction: str | None = None,
    status: str | None = None,
    limit: int = Query(DEFAULT_LIMIT),
    offset: int = Query(0),
    _: APIKey = Depends(require_permission(PERMISSION_READ_MESSAGES)),
    store: Store = Depends(get_store),
) -> dict:
    """List messages newest first.

    Args:
        phone_number: Match either side of the conversation (E.164).
        direction: inbound or outbound.
        status: queued, sent, delivered, read or failed.
    """
    if direction:
        validate_choice(direction, DIRECTIONS, "direction")
    if status:
        validate_choice(status, MESSAGE_STATUSES, "status")

    filters = MessageFilters(
        phone_number=normalize_phone_number(phone_number) if phone_number else None,
        direction=direction or None,
        status=status or None,
    )
    pagination = Pagination.from_params(limit, offset)
    with store.transaction() as session:
        items, total = session.list_messages(filters, pagination)
    pagination.set_total(total)

    return {
        "data": [m.to_dict() for m in items],
        "pagination": pagination.to_response(),
    }


# ── GET /messages/{id} ────────────────────────────────────────────────────────


@router.get("/{message_id}")
def get_message(
    message_id: str,
    _: APIKey = Depends(require_permission(PERMISSION_READ_MESSAGES)),
    store: Store = Depends(get_store),
) -> dict:
    with store.transaction() as session:
        message = session.get_message(message_id)
    if message is None:
        raise NotFoundError("message not found", details={"id": message_id})
    return {"message": message.to_dict()}
