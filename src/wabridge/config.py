"""Application settings loaded from environment variables.

Settings are read once at startup and handed to create_app(); nothing in
the core reads os.environ directly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

from wabridge.domain.validation import is_e164, normalize_phone_number

DEFAULT_GRAPH_API_VERSION = "v18.0"
DEFAULT_GRAPH_API_BASE_URL = "https://graph.facebook.com"

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
VALID_STORE_BACKENDS = frozenset({"postgres", "memory"})


class ConfigError(Exception):
    """Raised when an environment variable cannot be parsed."""


@dataclass(frozen=True)
class WhatsAppSettings:
    """WhatsApp Cloud API credentials and webhook secrets.

    Attributes:
        access_token: Graph API bearer token for outbound sends.
        phone_number_id: Sender phone number ID in Meta Business.
        business_account_id: WhatsApp Business Account (WABA) ID.
        display_phone_number: Business number in E.164, used as from/to
            when the webhook metadata does not carry it.
        webhook_verify_token: Token echoed back during GET verification.
        webhook_secret: App secret used for X-Hub-Signature-256.
        api_base_url: Graph API host.
        api_version: Graph API version segment (e.g. v18.0).
        request_timeout_seconds: Timeout for outbound HTTP calls.
    """

    access_token: str = ""
    phone_number_id: str = ""
    business_account_id: str = ""
    display_phone_number: str = ""
    webhook_verify_token: str = ""
    webhook_secret: str = ""
    api_base_url: str = DEFAULT_GRAPH_API_BASE_URL
    api_version: str = DEFAULT_GRAPH_API_VERSION
    request_timeout_seconds: float = 10.0

    @property
    def messages_endpoint(self) -> str:
        """Graph API URL for POSTing messages."""
        if not self.phone_number_id:
            raise ConfigError("WHATSAPP_PHONE_NUMBER_ID is required for outbound sends")
        return f"{self.api_base_url}/{self.api_version}/{self.phone_number_id}/messages"


@dataclass(frozen=True)
class Settings:
    """Top-level service settings."""

    environment: str = "development"
    log_level: str = "INFO"
    store_backend: str = "postgres"
    database_url: str = ""
    database_password: str = ""
    api_key_hash_rounds: int = 12
    whatsapp: WhatsAppSettings = field(default_factory=WhatsAppSettings)

    def validate(self) -> list[str]:
        """Return a list of configuration problems (empty list = OK)."""
        errors: list[str] = []

        if self.store_backend == "postgres" and not self.database_url:
            errors.append("DATABASE_URL is required when STORE_BACKEND=postgres")

        if not self.whatsapp.webhook_secret:
            errors.append("WHATSAPP_WEBHOOK_SECRET not configured; webhooks will be rejected")

        if not self.whatsapp.webhook_verify_token:
            errors.append("WHATSAPP_WEBHOOK_VERIFY_TOKEN not configured")

        if not self.whatsapp.access_token or not self.whatsapp.phone_number_id:
            errors.append("WHATSAPP_ACCESS_TOKEN and WHATSAPP_PHONE_NUMBER_ID required to send")

        display = self.whatsapp.display_phone_number
        if display and not is_e164(display):
            errors.append(
                f"WHATSAPP_DISPLAY_PHONE_NUMBER {display!r} is not E.164 (e.g. +15550001111)"
            )

        return errors


def _get_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _get_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from environment variables.

    Args:
        environ: Mapping to read from. Defaults to os.environ.

    Returns:
        Immutable Settings instance.

    Raises:
        ConfigError: On unparsable numbers, unknown log level or backend.
    """
    env = os.environ if environ is None else environ

    log_level = env.get("LOG_LEVEL", "INFO").upper()
    if log_level not in VALID_LOG_LEVELS:
        raise ConfigError(
            f"invalid LOG_LEVEL {log_level!r}; valid: {', '.join(sorted(VALID_LOG_LEVELS))}"
        )

    store_backend = env.get("STORE_BACKEND", "postgres").lower()
    if store_backend not in VALID_STORE_BACKENDS:
        raise ConfigError(
            f"invalid STORE_BACKEND {store_backend!r}; valid: "
            f"{', '.join(sorted(VALID_STORE_BACKENDS))}"
        )

    hash_rounds = _get_int(env, "API_KEY_HASH_ROUNDS", 12)
    if not 4 <= hash_rounds <= 31:
        raise ConfigError("API_KEY_HASH_ROUNDS must be between 4 and 31")

    whatsapp = WhatsAppSettings(
        access_token=env.get("WHATSAPP_ACCESS_TOKEN", ""),
        phone_number_id=env.get("WHATSAPP_PHONE_NUMBER_ID", ""),
        business_account_id=env.get("WHATSAPP_BUSINESS_ACCOUNT_ID", ""),
        display_phone_number=normalize_phone_number(
            env.get("WHATSAPP_DISPLAY_PHONE_NUMBER", "")
        ),
        webhook_verify_token=env.get("WHATSAPP_WEBHOOK_VERIFY_TOKEN", ""),
        webhook_secret=env.get("WHATSAPP_WEBHOOK_SECRET", ""),
        api_base_url=env.get("WHATSAPP_API_BASE_URL", DEFAULT_GRAPH_API_BASE_URL).rstrip("/"),
        api_version=env.get("WHATSAPP_API_VERSION", DEFAULT_GRAPH_API_VERSION),
        request_timeout_seconds=_get_float(env, "WHATSAPP_REQUEST_TIMEOUT_SECONDS", 10.0),
    )

    return Settings(
        environment=env.get("ENV", "development"),
        log_level=log_level,
        store_backend=store_backend,
        database_url=env.get("DATABASE_URL", ""),
        database_password=env.get("DB_PASSWORD", ""),
        api_key_hash_rounds=hash_rounds,
        whatsapp=whatsapp,
    )
