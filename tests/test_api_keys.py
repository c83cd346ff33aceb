"""Tests for the API key gate: authenticate, authorize, issue."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from wabridge.domain.api_keys import (
    ApiKeyAuthenticator,
    authorize,
    issue_api_key,
    require_permission,
)
from wabridge.domain.models import APIKey
from wabridge.errors import APIKeyExpiredError, ForbiddenError, UnauthorizedError
from wabridge.infra.hashing import compare_api_key
from wabridge.infra.memory_store import MemoryStore

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def scheduled():
    """Collects (func, args) instead of running usage updates."""
    return []


@pytest.fixture
def authenticator(store, scheduled):
    return ApiKeyAuthenticator(
        store,
        schedule=lambda func, *args: scheduled.append((func, args)),
        clock=lambda: NOW,
    )


def _issue(store, permissions=("*",), expires_at=None):
    with store.transaction() as session:
        return issue_api_key(session, "ops", list(permissions), expires_at=expires_at, rounds=4)


class TestIssueApiKey:
    def test_stores_hash_not_plaintext(self, store):
        api_key, plain = _issue(store, permissions=["send_message"])

        stored = store.api_keys[api_key.id]
        assert stored.key_hash != plain
        assert compare_api_key(stored.key_hash, plain)
        assert stored.key_prefix == plain[:8]
        assert stored.permissions == ["send_message"]
        assert api_key.id.startswith("key_")

    def test_permissions_deduplicated(self, store):
        api_key, _ = _issue(store, permissions=["read_messages", "read_messages", "send_message"])
        assert api_key.permissions == ["read_messages", "send_message"]

    def test_public_dict_hides_hash(self, store):
        api_key, _ = _issue(store)
        assert "key_hash" not in api_key.to_dict()

    def test_each_key_is_unique(self, store):
        _, first = _issue(store)
        _, second = _issue(store)
        assert first != second


class TestAuthenticate:
    def test_valid_key_schedules_usage_update(self, store, authenticator, scheduled):
        api_key, plain = _issue(store)

        result = authenticator.authenticate(plain)

        assert result.id == api_key.id
        assert len(scheduled) == 1
        func, args = scheduled[0]
        func(*args)
        assert store.api_keys[api_key.id].last_used_at == NOW

    def test_missing_key(self, authenticator):
        with pytest.raises(UnauthorizedError):
            authenticator.authenticate(None)
        with pytest.raises(UnauthorizedError):
            authenticator.authenticate("")

    def test_unknown_key(self, store, authenticator, scheduled):
        _issue(store)
        with pytest.raises(UnauthorizedError) as exc_info:
            authenticator.authenticate("not-a-real-key-at-all")
        assert exc_info.value.code == "unauthorized"
        assert scheduled == []

    def test_prefix_match_with_wrong_secret(self, store, authenticator):
        _, plain = _issue(store)
        tampered = plain[:8] + ("A" if plain[8] != "A" else "B") + plain[9:]
        with pytest.raises(UnauthorizedError):
            authenticator.authenticate(tampered)

    def test_expired_key_rejected_even_though_hash_matches(self, store, authenticator, scheduled):
        _, plain = _issue(store, expires_at=NOW - timedelta(seconds=1))

        with pytest.raises(APIKeyExpiredError) as exc_info:
            authenticator.authenticate(plain)

        assert isinstance(exc_info.value, UnauthorizedError)
        assert exc_info.value.code == "api_key_expired"
        assert exc_info.value.status_code == 401
        assert scheduled == []

    def test_future_expiry_accepted(self, store, authenticator):
        _, plain = _issue(store, expires_at=NOW + timedelta(days=1))
        assert authenticator.authenticate(plain).expires_at == NOW + timedelta(days=1)

    def test_record_usage_failure_is_logged_not_raised(self):
        broken = MagicMock()
        broken.transaction.side_effect = RuntimeError("db down")
        logger = MagicMock()

        ApiKeyAuthenticator(broken, logger=logger).record_usage("key_1", NOW)

        logger.warning.assert_called_once()

    def test_record_usage_for_deleted_key_is_logged(self, store):
        logger = MagicMock()
        ApiKeyAuthenticator(store, logger=logger).record_usage("key_missing", NOW)
        logger.warning.assert_called_once()


class TestAuthorize:
    def _key(self, permissions):
        return APIKey(name="k", key_hash="h", key_prefix="p", permissions=permissions)

    def test_wildcard_grants_everything(self):
        key = self._key(["*"])
        assert authorize(key, "send_message")
        assert authorize(key, "manage_api_keys")

    def test_explicit_permission(self):
        key = self._key(["read_messages"])
        assert authorize(key, "read_messages")
        assert not authorize(key, "send_message")

    def test_empty_permissions_grant_nothing(self):
        assert not authorize(self._key([]), "read_messages")

    def test_require_permission_raises_forbidden(self):
        with pytest.raises(ForbiddenError) as exc_info:
            require_permission(self._key(["read_contacts"]), "send_message")
        assert exc_info.value.details == {"required_permission": "send_message"}

    def test_require_permission_passes(self):
        require_permission(self._key(["send_message"]), "send_message")
