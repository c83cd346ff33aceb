"""Meta Cloud API adapter - verify and normalize webhook payloads.

Handles WhatsApp Business webhook deliveries: X-Hub-Signature-256
verification and flattening of the entry -> changes -> value envelope
into MessageEvent / StatusEvent records.

Envelope shape:
{
  "object": "whatsapp_business_account",
  "entry": [{
    "id": "WABA_ID",
    "changes": [{
      "field": "messages",
      "value": {
        "messaging_product": "whatsapp",
        "metadata": {"display_phone_number": "...", "phone_number_id": "..."},
        "contacts": [{"profile": {"name": "..."}, "wa_id": "..."}],
        "messages": [{"from": "...", "id": "wamid...", "timestamp": "...", "type": "text",
                      "text": {"body": "..."}}],
        "statuses": [{"id": "wamid...", "status": "delivered", "timestamp": "...",
                      "recipient_id": "...", "errors": [...]}]
      }
    }]
  }]
}
"""

from datetime import datetime
from typing import Any

from wabridge.domain.models import (
    MEDIA_MESSAGE_TYPES,
    MESSAGE_TYPE_LOCATION,
    MESSAGE_TYPE_TEXT,
    STATUS_FAILED,
)
from wabridge.domain.validation import is_e164, normalize_phone_number
from wabridge.errors import BadRequestError, UnauthorizedError
from wabridge.infra.hashing import SIGNATURE_PREFIX, compute_signature, signatures_match
from wabridge.infra.time import parse_epoch_seconds

from .models import (
    ItemFailure,
    LocationContent,
    MediaContent,
    MessageContent,
    MessageEvent,
    NormalizedWebhook,
    StatusError,
    StatusEvent,
    TextContent,
)

WHATSAPP_OBJECT = "whatsapp_business_account"
MESSAGES_FIELD = "messages"

FAILURE_MALFORMED_TIMESTAMP = "malformed_timestamp"
FAILURE_UNSUPPORTED_TYPE = "unsupported_type"
FAILURE_MISSING_FIELD = "missing_field"
FAILURE_INVALID_CONTENT = "invalid_content"
FAILURE_INVALID_SENDER = "invalid_sender"


class InvalidPayloadError(BadRequestError):
    """Raised when the webhook envelope has an invalid shape."""

    default_message = "Invalid webhook payload"


class SignatureVerificationError(UnauthorizedError):
    """Webhook signature missing, malformed or not matching the secret."""

    code = "invalid_signature"
    status_code = 403
    default_message = "Webhook signature verification failed"


class ItemError(ValueError):
    """A single message/status item could not be normalized."""

    reason = FAILURE_INVALID_CONTENT


class MalformedTimestampError(ItemError):
    reason = FAILURE_MALFORMED_TIMESTAMP


class UnsupportedMessageTypeError(ItemError):
    reason = FAILURE_UNSUPPORTED_TYPE


class MissingFieldError(ItemError):
    reason = FAILURE_MISSING_FIELD


class InvalidSenderError(ItemError):
    reason = FAILURE_INVALID_SENDER


def _check_signature(raw_body: bytes, signature_header: str | None, secret: bytes) -> None:
    if not secret:
        raise SignatureVerificationError("webhook secret not configured")
    if not signature_header:
        raise SignatureVerificationError("missing signature header")
    if not signature_header.startswith(SIGNATURE_PREFIX):
        raise SignatureVerificationError("invalid signature format")
    if not signatures_match(compute_signature(raw_body, secret), signature_header):
        raise SignatureVerificationError("signature mismatch")


def verify_signature(
    raw_body: bytes, signature_header: str | None, secret: bytes | str | None
) -> bool:
    """Verify a Meta webhook signature (HMAC-SHA256, "sha256=<hex>").

    Never raises. A missing secret means the delivery cannot be verified
    and is reported as a failure.

    Args:
        raw_body: Raw request body bytes, exactly as received.
        signature_header: X-Hub-Signature-256 header value.
        secret: App secret configured for the webhook.

    Returns:
        True only if the header matches the body's signature.
    """
    if isinstance(secret, str):
        secret = secret.encode("utf-8")
    try:
        _check_signature(raw_body, signature_header, secret or b"")
    except SignatureVerificationError:
        return False
    return True


def parse_message_timestamp(value: Any) -> datetime:
    """Parse a provider timestamp (decimal seconds since epoch).

    Raises:
        MalformedTimestampError: If the value is missing or unparsable.
    """
    try:
        return parse_epoch_seconds(value)
    except ValueError as exc:
        raise MalformedTimestampError(str(exc)) from exc


def normalize(envelope: Any, *, default_to_number: str | None = None) -> NormalizedWebhook:
    """Flatten a webhook envelope into ordered message and status events.

    Items that cannot be normalized (bad timestamp, unsupported type,
    missing fields) are reported in failures and skipped; the rest of the
    delivery is still returned. Changes for fields other than "messages"
    are ignored. An envelope without entries normalizes to empty lists.

    Args:
        envelope: Decoded JSON body.
        default_to_number: Business number used when the change metadata
            carries no display_phone_number.

    Raises:
        InvalidPayloadError: If the envelope itself has an invalid shape.
    """
    if not isinstance(envelope, dict):
        raise InvalidPayloadError("payload must be a JSON object")

    obj = envelope.get("object")
    if not isinstance(obj, str) or not obj:
        raise InvalidPayloadError("missing object field")
    if obj != WHATSAPP_OBJECT:
        raise InvalidPayloadError(
            "unexpected object field", details={"object": obj[:64]}
        )

    result = NormalizedWebhook()

    for entry in _as_list(envelope.get("entry"), "entry"):
        if not isinstance(entry, dict):
            raise InvalidPayloadError("entry items must be objects")
        for change in _as_list(entry.get("changes"), "changes"):
            if not isinstance(change, dict):
                raise InvalidPayloadError("changes items must be objects")
            if change.get("field", MESSAGES_FIELD) != MESSAGES_FIELD:
                continue
            value = change.get("value")
            if value is None:
                continue
            if not isinstance(value, dict):
                raise InvalidPayloadError("change value must be an object")
            _normalize_value(value, result, default_to_number)

    return result


def _as_list(value: Any, name: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise InvalidPayloadError(f"{name} must be a list")
    return value


def _normalize_value(
    value: dict[str, Any], result: NormalizedWebhook, default_to_number: str | None
) -> None:
    metadata = value.get("metadata") if isinstance(value.get("metadata"), dict) else {}
    phone_number_id = _str_or_none(metadata.get("phone_number_id"))
    display_number = _str_or_none(metadata.get("display_phone_number"))
    to_number = normalize_phone_number(display_number) if display_number else default_to_number

    names = _contact_names(_as_list(value.get("contacts"), "contacts"))

    for raw in _as_list(value.get("messages"), "messages"):
        try:
            result.message_events.append(
                _message_event(raw, to_number, phone_number_id, names)
            )
        except ItemError as exc:
            result.failures.append(
                ItemFailure(
                    kind="message",
                    reason=exc.reason,
                    message_id=_item_id(raw),
                    detail=str(exc),
                )
            )

    for raw in _as_list(value.get("statuses"), "statuses"):
        try:
            result.status_events.append(_status_event(raw, phone_number_id))
        except ItemError as exc:
            result.failures.append(
                ItemFailure(
                    kind="status",
                    reason=exc.reason,
                    message_id=_item_id(raw),
                    detail=str(exc),
                )
            )


def _contact_names(contacts: list[Any]) -> dict[str, str]:
    """Map wa_id -> profile name for the contacts block of a change."""
    names: dict[str, str] = {}
    for contact in contacts:
        if not isinstance(contact, dict):
            continue
        wa_id = _str_or_none(contact.get("wa_id"))
        profile = contact.get("profile")
        name = _str_or_none(profile.get("name")) if isinstance(profile, dict) else None
        if wa_id and name:
            names[normalize_phone_number(wa_id)] = name
    return names


def _message_event(
    raw: Any,
    to_number: str | None,
    phone_number_id: str | None,
    names: dict[str, str],
) -> MessageEvent:
    if not isinstance(raw, dict):
        raise MissingFieldError("message item must be an object")

    message_id = _str_or_none(raw.get("id"))
    if not message_id:
        raise MissingFieldError("message id is required")

    sender = _str_or_none(raw.get("from"))
    if not sender:
        raise MissingFieldError("message sender is required")
    from_number = normalize_phone_number(sender)
    if not is_e164(from_number):
        raise InvalidSenderError("sender is not a valid phone number")

    timestamp = parse_message_timestamp(raw.get("timestamp"))

    message_type = _str_or_none(raw.get("type"))
    if not message_type:
        raise MissingFieldError("message type is required")
    content = _message_content(message_type, raw)

    context = raw.get("context")
    context_id = _str_or_none(context.get("id")) if isinstance(context, dict) else None

    return MessageEvent(
        message_id=message_id,
        from_number=from_number,
        to_number=to_number,
        timestamp=timestamp,
        message_type=message_type,
        content=content,
        contact_name=names.get(from_number),
        phone_number_id=phone_number_id,
        context_message_id=context_id,
    )


def _message_content(message_type: str, raw: dict[str, Any]) -> MessageContent:
    """Map the populated payload variant to its content type."""
    if message_type == MESSAGE_TYPE_TEXT:
        text = raw.get("text")
        body = text.get("body") if isinstance(text, dict) else None
        if not isinstance(body, str):
            raise ItemError("text message without body")
        return TextContent(body=body)

    if message_type in MEDIA_MESSAGE_TYPES:
        media = raw.get(message_type)
        if not isinstance(media, dict):
            raise ItemError(f"{message_type} message without {message_type} object")
        media_id = _str_or_none(media.get("id"))
        if not media_id:
            raise ItemError(f"{message_type} message without media id")
        return MediaContent(
            media_id=media_id,
            mime_type=_str_or_none(media.get("mime_type")),
            caption=_str_or_none(media.get("caption")),
            filename=_str_or_none(media.get("filename")),
            sha256=_str_or_none(media.get("sha256")),
            voice=media.get("voice") is True,
        )

    if message_type == MESSAGE_TYPE_LOCATION:
        location = raw.get("location")
        if not isinstance(location, dict):
            raise ItemError("location message without location object")
        try:
            latitude = float(location["latitude"])
            longitude = float(location["longitude"])
        except (KeyError, TypeError, ValueError):
            raise ItemError("location message without valid coordinates")
        return LocationContent(
            latitude=latitude,
            longitude=longitude,
            name=_str_or_none(location.get("name")),
            address=_str_or_none(location.get("address")),
        )

    raise UnsupportedMessageTypeError(f"unsupported message type: {message_type[:32]}")


def _status_event(raw: Any, phone_number_id: str | None) -> StatusEvent:
    if not isinstance(raw, dict):
        raise MissingFieldError("status item must be an object")

    message_id = _str_or_none(raw.get("id"))
    if not message_id:
        raise MissingFieldError("status message id is required")

    status = _str_or_none(raw.get("status"))
    if not status:
        raise MissingFieldError("status value is required")

    timestamp = None
    if raw.get("timestamp") is not None:
        timestamp = parse_message_timestamp(raw.get("timestamp"))

    recipient = _str_or_none(raw.get("recipient_id"))

    error = None
    if status == STATUS_FAILED:
        error = _status_error(raw.get("errors"))

    return StatusEvent(
        message_id=message_id,
        status=status,
        recipient_id=normalize_phone_number(recipient) if recipient else None,
        timestamp=timestamp,
        error=error,
        phone_number_id=phone_number_id,
    )


def _status_error(errors: Any) -> StatusError | None:
    if not isinstance(errors, list) or not errors or not isinstance(errors[0], dict):
        return None
    first = errors[0]
    code = first.get("code")
    return StatusError(
        code="" if code is None else str(code),
        title=_str_or_none(first.get("title")) or "",
        message=_str_or_none(first.get("message")) or "",
    )


def _item_id(raw: Any) -> str | None:
    return _str_or_none(raw.get("id")) if isinstance(raw, dict) else None


def _str_or_none(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None
