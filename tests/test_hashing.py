"""Tests for hashing primitives: webhook HMAC signatures and API key hashing."""

import re

import pytest

from wabridge.infra.hashing import (
    compare_api_key,
    compute_signature,
    generate_api_key,
    get_key_prefix,
    hash_api_key,
    signatures_match,
)


class TestComputeSignature:
    """HMAC-SHA256 rendered as sha256=<hex>."""

    def test_format(self):
        sig = compute_signature(b'{"a":1}', b"secret")
        assert re.fullmatch(r"sha256=[0-9a-f]{64}", sig)

    def test_deterministic(self):
        assert compute_signature(b"body", b"secret") == compute_signature(b"body", b"secret")

    def test_known_vector(self):
        # RFC 4231 test case 2
        sig = compute_signature(b"what do ya want for nothing?", b"Jefe")
        assert sig == (
            "sha256=5bdcc146bf60754e6a042426089575c75a003f089d2739839dec58b964ec3843"
        )

    def test_different_secret_differs(self):
        assert compute_signature(b"body", b"a") != compute_signature(b"body", b"b")


class TestSignaturesMatch:
    def test_equal(self):
        assert signatures_match("sha256=abc", "sha256=abc") is True

    def test_different(self):
        assert signatures_match("sha256=abc", "sha256=abd") is False

    def test_non_ascii_does_not_raise(self):
        assert signatures_match("sha256=abc", "sha256=ábc") is False


class TestApiKeyGeneration:
    def test_key_is_urlsafe_base64_of_32_bytes(self):
        key = generate_api_key()
        # 32 bytes -> 44 chars with one "=" of padding
        assert len(key) == 44
        assert re.fullmatch(r"[A-Za-z0-9_\-]+=", key)

    def test_keys_are_unique(self):
        assert len({generate_api_key() for _ in range(20)}) == 20

    def test_prefix_is_first_8_chars(self):
        assert get_key_prefix("abcdefghijkl") == "abcdefgh"


class TestApiKeyHashing:
    """bcrypt hashing (cost lowered to 4 for speed)."""

    def test_hash_is_not_plaintext(self):
        key = generate_api_key()
        hashed = hash_api_key(key, rounds=4)
        assert key not in hashed
        assert hashed.startswith("$2")

    def test_hash_is_salted(self):
        key = generate_api_key()
        assert hash_api_key(key, rounds=4) != hash_api_key(key, rounds=4)

    def test_compare_matches(self):
        key = generate_api_key()
        assert compare_api_key(hash_api_key(key, rounds=4), key) is True

    def test_compare_rejects_other_key(self):
        hashed = hash_api_key(generate_api_key(), rounds=4)
        assert compare_api_key(hashed, generate_api_key()) is False

    def test_compare_malformed_hash_is_mismatch(self):
        assert compare_api_key("not-a-bcrypt-hash", "key") is False

    def test_compare_empty_values(self):
        assert compare_api_key("", "key") is False
        assert compare_api_key(hash_api_key("key", rounds=4), "") is False

    def test_empty_key_cannot_be_hashed(self):
        with pytest.raises(ValueError):
            hash_api_key("", rounds=4)
