"""Hashing primitives shared by the webhook verifier and the API key gate.

- Webhook signatures: HMAC-SHA256 rendered as "sha256=<hex>", compared in
  constant time.
- API keys: bcrypt (salted, deliberately slow). Only the hash and a short
  plaintext prefix are ever stored.
"""

import base64
import hashlib
import hmac
import secrets

import bcrypt

SIGNATURE_PREFIX = "sha256="
API_KEY_PREFIX_LENGTH = 8
API_KEY_RANDOM_BYTES = 32
DEFAULT_HASH_ROUNDS = 12


def compute_signature(payload: bytes, secret: bytes) -> str:
    """Compute the X-Hub-Signature-256 value for a payload.

    Args:
        payload: Raw request body bytes.
        secret: App secret.

    Returns:
        "sha256=" followed by the lowercase hex digest.
    """
    digest = hmac.new(secret, payload, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def signatures_match(expected: str, provided: str) -> bool:
    """Constant-time comparison of two signature strings."""
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def generate_api_key() -> str:
    """Generate a new random API key (URL-safe base64, 32 random bytes)."""
    return base64.urlsafe_b64encode(secrets.token_bytes(API_KEY_RANDOM_BYTES)).decode("ascii")


def get_key_prefix(key: str) -> str:
    """First characters of a plaintext key, used as a non-secret lookup index."""
    return key[:API_KEY_PREFIX_LENGTH]


def hash_api_key(key: str, rounds: int = DEFAULT_HASH_ROUNDS) -> str:
    """Hash an API key with bcrypt.

    Raises:
        ValueError: If the key is empty.
    """
    if not key:
        raise ValueError("cannot hash an empty API key")
    hashed = bcrypt.hashpw(key.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def compare_api_key(key_hash: str, key: str) -> bool:
    """Check a plaintext key against a stored bcrypt hash.

    Malformed hashes compare as a mismatch instead of raising.
    """
    if not key_hash or not key:
        return False
    try:
        return bcrypt.checkpw(key.encode("utf-8"), key_hash.encode("utf-8"))
    except ValueError:
        return False
