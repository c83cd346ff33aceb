"""Outbound WhatsApp messaging via Meta Cloud API.

Security: never log recipient numbers or message bodies, only the message
id, type and lengths.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from wabridge.config import WhatsAppSettings
from wabridge.domain.models import (
    MEDIA_MESSAGE_TYPES,
    MESSAGE_TYPE_TEMPLATE,
    MESSAGE_TYPE_TEXT,
    Message,
)
from wabridge.errors import WhatsAppAPIError
from wabridge.observability.logging import get_logger
from wabridge.observability.redaction import safe_log_context


def build_message_payload(message: Message) -> dict[str, Any]:
    """Render a stored outbound Message as a Graph API /messages body.

    Raises:
        WhatsAppAPIError: If the message type cannot be sent.
    """
    payload: dict[str, Any] = {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        # Graph API expects the number without the leading "+"
        "to": message.to_number.lstrip("+"),
        "type": message.message_type,
    }

    if message.message_type == MESSAGE_TYPE_TEXT:
        payload["text"] = {"body": message.content, "preview_url": False}
    elif message.message_type in MEDIA_MESSAGE_TYPES:
        media: dict[str, Any] = {"link": message.media_url}
        if message.content and message.message_type != "audio":
            media["caption"] = message.content
        filename = message.metadata.get("filename")
        if filename and message.message_type == "document":
            media["filename"] = filename
        payload[message.message_type] = media
    elif message.message_type == MESSAGE_TYPE_TEMPLATE:
        template = message.metadata.get("template") or {}
        body: dict[str, Any] = {
            "name": template.get("name") or message.content,
            "language": {"code": template.get("language", "en_US")},
        }
        if template.get("components"):
            body["components"] = template["components"]
        payload["template"] = body
    else:
        raise WhatsAppAPIError(f"cannot send message type {message.message_type}")

    return payload


class MetaSender:
    """Graph API client for POST /{phone_number_id}/messages.

    Args:
        settings: WhatsApp credentials and endpoint configuration.
        session: Optional requests session (connection reuse, tests).
        logger: Optional logger.
    """

    def __init__(
        self,
        settings: WhatsAppSettings,
        *,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._settings = settings
        self._http = session or requests.Session()
        self._logger = logger or get_logger(__name__)

    def send(self, message: Message) -> str:
        """Send a message and return the provider's message id (wamid).

        Raises:
            WhatsAppAPIError: On configuration, network or provider errors.
        """
        if not self._settings.access_token or not self._settings.phone_number_id:
            raise WhatsAppAPIError("WhatsApp sending is not configured")

        payload = build_message_payload(message)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._settings.access_token}",
        }
        log_ctx = safe_log_context(
            message_id=message.id,
            message_type=message.message_type,
            content_len=len(message.content or ""),
        )
        self._logger.info("sending outbound message", extra={"extra_fields": log_ctx})

        try:
            response = self._http.post(
                self._settings.messages_endpoint,
                json=payload,
                headers=headers,
                timeout=self._settings.request_timeout_seconds,
            )
        except requests.RequestException as exc:
            self._logger.error(
                "outbound send failed",
                extra={"extra_fields": {**log_ctx, "error_type": type(exc).__name__}},
            )
            raise WhatsAppAPIError("request to WhatsApp API failed") from exc

        body = _json_or_empty(response)
        if response.status_code >= 400:
            error = body.get("error") if isinstance(body.get("error"), dict) else {}
            code = error.get("code")
            self._logger.error(
                "outbound send rejected",
                extra={
                    "extra_fields": {
                        **log_ctx,
                        **safe_log_context(status_code=response.status_code, provider_code=code),
                    }
                },
            )
            raise WhatsAppAPIError(
                error.get("message") or f"WhatsApp API returned {response.status_code}",
                provider_code=None if code is None else str(code),
                details={"status_code": response.status_code},
            )

        messages = body.get("messages")
        first = messages[0] if isinstance(messages, list) and messages else None
        wamid = first.get("id") if isinstance(first, dict) else None
        if not isinstance(wamid, str) or not wamid:
            raise WhatsAppAPIError("WhatsApp API response carried no message id")

        self._logger.info("outbound message sent", extra={"extra_fields": log_ctx})
        return wamid


def _json_or_empty(response: requests.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
