"""API key authentication and issuance.

Keys are looked up by their plaintext prefix (a non-secret index) and
verified against the stored bcrypt hash. Plaintext keys are never stored
or logged; only the 8-character prefix appears in logs.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable

from wabridge.domain.models import APIKey
from wabridge.errors import APIKeyExpiredError, ForbiddenError, UnauthorizedError
from wabridge.infra.hashing import (
    DEFAULT_HASH_ROUNDS,
    compare_api_key,
    generate_api_key,
    get_key_prefix,
    hash_api_key,
)
from wabridge.infra.store import Store, StoreSession
from wabridge.infra.time import utc_now
from wabridge.observability.logging import get_logger
from wabridge.observability.redaction import safe_log_context

PERMISSION_SEND_MESSAGE = "send_message"
PERMISSION_READ_MESSAGES = "read_messages"
PERMISSION_READ_CONTACTS = "read_contacts"
PERMISSION_MANAGE_API_KEYS = "manage_api_keys"

Scheduler = Callable[..., Any]


def _run_in_thread(func: Callable[..., Any], *args: Any) -> None:
    threading.Thread(target=func, args=args, daemon=True).start()


class ApiKeyAuthenticator:
    """Validates plaintext API keys against stored hashes.

    Args:
        store: Storage collaborator holding API keys.
        schedule: Callable used to run the last_used_at update off the
            request path, called as schedule(func, *args). Defaults to a
            daemon thread; the API passes BackgroundTasks.add_task.
        logger: Optional logger.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        store: Store,
        *,
        schedule: Scheduler | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._schedule = schedule or _run_in_thread
        self._logger = logger or get_logger(__name__)
        self._clock = clock

    def authenticate(self, plain_key: str | None) -> APIKey:
        """Return the APIKey matching plain_key.

        Raises:
            UnauthorizedError: If the key is missing or matches nothing.
            APIKeyExpiredError: If the matching key is past expires_at.
            DatabaseError: On storage failure.
        """
        if not plain_key:
            raise UnauthorizedError("API key required")

        prefix = get_key_prefix(plain_key)
        with self._store.transaction() as session:
            candidates = session.find_api_keys_by_prefix(prefix)

        api_key = next((k for k in candidates if compare_api_key(k.key_hash, plain_key)), None)
        if api_key is None:
            self._logger.warning(
                "api key rejected",
                extra={"extra_fields": safe_log_context(key_prefix=prefix, reason="no_match")},
            )
            raise UnauthorizedError("invalid API key")

        now = self._clock()
        if api_key.is_expired(now):
            self._logger.warning(
                "api key rejected",
                extra={"extra_fields": safe_log_context(key_prefix=prefix, reason="expired")},
            )
            raise APIKeyExpiredError()

        self._schedule(self.record_usage, api_key.id, now)
        return api_key

    def record_usage(self, api_key_id: str, used_at: datetime) -> None:
        """Stamp last_used_at. Failures are logged, never raised."""
        try:
            with self._store.transaction() as session:
                session.touch_api_key(api_key_id, used_at)
        except Exception:
            self._logger.warning(
                "failed to record api key usage",
                exc_info=True,
                extra={"extra_fields": safe_log_context(api_key_id=api_key_id)},
            )


def authorize(api_key: APIKey, permission: str) -> bool:
    """True if the key grants permission ("*" grants everything)."""
    return api_key.has_permission(permission)


def require_permission(api_key: APIKey, permission: str) -> None:
    """Raise ForbiddenError unless the key grants permission."""
    if not authorize(api_key, permission):
        raise ForbiddenError(
            f"API key lacks permission: {permission}",
            details={"required_permission": permission},
        )


def issue_api_key(
    session: StoreSession,
    name: str,
    permissions: list[str],
    *,
    expires_at: datetime | None = None,
    rounds: int = DEFAULT_HASH_ROUNDS,
) -> tuple[APIKey, str]:
    """Create and store a new API key.

    Returns:
        (stored_key, plaintext). The plaintext is not recoverable later.

    Raises:
        ValidationError: If name is empty.
    """
    plain_key = generate_api_key()
    api_key = APIKey(
        name=name,
        key_hash=hash_api_key(plain_key, rounds=rounds),
        key_prefix=get_key_prefix(plain_key),
        permissions=sorted(set(permissions)),
        expires_at=expires_at,
    )
    return session.create_api_key(api_key), plain_key
