"""Shared pytest fixtures for wabridge tests."""
import sys
sys.dont_write_bytecode = True

from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from helpers import make_settings  # noqa: E402
from wabridge.api.factory import create_app  # noqa: E402
from wabridge.domain.api_keys import issue_api_key  # noqa: E402
from wabridge.infra.memory_store import MemoryStore  # noqa: E402


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def sender():
    """Outbound provider double; send() returns a provider message id."""
    fake = MagicMock()
    fake.send.return_value = "wamid.OUTBOUND_001"
    return fake


@pytest.fixture
def app(settings, store, sender):
    return create_app(settings=settings, store=store, sender=sender)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def make_api_key(store):
    """Issue a key straight into the store. Returns (APIKey, plaintext)."""

    def _make(permissions=("*",), name="test-key", expires_at=None):
        with store.transaction() as session:
            return issue_api_key(
                session, name, list(permissions), expires_at=expires_at, rounds=4
            )

    return _make
