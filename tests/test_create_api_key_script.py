"""Tests for scripts/create_api_key.py."""

import sys
from unittest.mock import patch

import pytest

from scripts.create_api_key import main
from wabridge.infra.hashing import compare_api_key
from wabridge.infra.memory_store import MemoryStore


@pytest.fixture
def postgres_env(monkeypatch):
    monkeypatch.setenv("STORE_BACKEND", "postgres")
    monkeypatch.setenv("DATABASE_URL", "dbname=wabridge")
    monkeypatch.setenv("API_KEY_HASH_ROUNDS", "4")


def test_usage_without_name(monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["create_api_key.py"])
    with pytest.raises(SystemExit) as exc_info:
        main()
    assert exc_info.value.code == 2
    assert "Usage" in capsys.readouterr().out


def test_memory_backend_refused(monkeypatch, capsys):
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setattr(sys, "argv", ["create_api_key.py", "bootstrap"])
    with pytest.raises(SystemExit) as exc_info:
        main()
    assert exc_info.value.code == 1
    assert "memory" in capsys.readouterr().out


def test_issues_key(monkeypatch, capsys, postgres_env):
    store = MemoryStore()
    monkeypatch.setattr(sys, "argv", ["create_api_key.py", "bootstrap", "manage_api_keys"])

    with patch("wabridge.infra.store.build_store", return_value=store):
        main()

    out = capsys.readouterr().out
    (api_key,) = store.api_keys.values()
    assert api_key.name == "bootstrap"
    assert api_key.permissions == ["manage_api_keys"]
    plain = next(line.split()[-1] for line in out.splitlines() if line.strip().startswith("key:"))
    assert compare_api_key(api_key.key_hash, plain)
