"""Shared test helper functions for wabridge tests.

This module contains helper functions that can be imported by both conftest.py
and individual test files. These are NOT fixtures - they are regular functions.
"""

from __future__ import annotations

import json
from typing import Any

from wabridge.config import Settings, WhatsAppSettings
from wabridge.infra.hashing import compute_signature

WEBHOOK_SECRET = "test-webhook-secret"
VERIFY_TOKEN = "test-verify-token"
BUSINESS_NUMBER = "+15550001111"
PHONE_NUMBER_ID = "109876543210"

# Synthetic numbers only (never real phones)
CUSTOMER = "15551234567"
CUSTOMER_E164 = "+15551234567"

TS_1 = "1704067200"  # 2024-01-01T00:00:00Z
TS_2 = "1704067260"
TS_3 = "1704067320"


def make_settings(**whatsapp_overrides: Any) -> Settings:
    """Settings for an in-memory app with a low bcrypt cost."""
    whatsapp = {
        "access_token": "test-access-token",
        "phone_number_id": PHONE_NUMBER_ID,
        "display_phone_number": BUSINESS_NUMBER,
        "webhook_verify_token": VERIFY_TOKEN,
        "webhook_secret": WEBHOOK_SECRET,
    }
    whatsapp.update(whatsapp_overrides)
    return Settings(
        environment="test",
        store_backend="memory",
        api_key_hash_rounds=4,
        whatsapp=WhatsAppSettings(**whatsapp),
    )


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return compute_signature(body, secret.encode("utf-8"))


def encode(payload: Any) -> bytes:
    return json.dumps(payload).encode("utf-8")


def text_message(
    wamid: str,
    body: str = "hi",
    sender: str = CUSTOMER,
    timestamp: Any = TS_1,
) -> dict[str, Any]:
    return {
        "from": sender,
        "id": wamid,
        "timestamp": timestamp,
        "type": "text",
        "text": {"body": body},
    }


def status_item(
    wamid: str,
    status: str,
    timestamp: Any = TS_2,
    errors: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    item: dict[str, Any] = {
        "id": wamid,
        "status": status,
        "timestamp": timestamp,
        "recipient_id": CUSTOMER,
    }
    if errors is not None:
        item["errors"] = errors
    return item


def envelope(
    messages: list[dict[str, Any]] | None = None,
    statuses: list[dict[str, Any]] | None = None,
    contacts: list[dict[str, Any]] | None = None,
    display_phone_number: str | None = "15550001111",
) -> dict[str, Any]:
    """Build a single-entry, single-change webhook envelope."""
    metadata: dict[str, Any] = {"phone_number_id": PHONE_NUMBER_ID}
    if display_phone_number is not None:
        metadata["display_phone_number"] = display_phone_number

    value: dict[str, Any] = {"messaging_product": "whatsapp", "metadata": metadata}
    if contacts is not None:
        value["contacts"] = contacts
    if messages is not None:
        value["messages"] = messages
    if statuses is not None:
        value["statuses"] = statuses

    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "WABA_ID", "changes": [{"field": "messages", "value": value}]}],
    }
