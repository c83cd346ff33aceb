"""Issue an API key directly against the configured store.

Usage:
    DATABASE_URL=... uv run python scripts/create_api_key.py <name> [permission ...]

Permissions default to "*" (everything). Use this to bootstrap the first
key holding manage_api_keys; later keys can be issued through
POST /api-keys.

The plaintext key is printed once and cannot be recovered afterwards.
"""

from __future__ import annotations

import sys


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: uv run python scripts/create_api_key.py <name> [permission ...]")
        sys.exit(2)

    name = sys.argv[1]
    permissions = sys.argv[2:] or ["*"]

    # Import after argument validation so usage errors don't need a configured env
    from wabridge.config import ConfigError, load_settings
    from wabridge.domain.api_keys import issue_api_key
    from wabridge.errors import AppError
    from wabridge.infra.store import build_store

    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    if settings.store_backend == "memory":
        print("ERROR: STORE_BACKEND=memory does not persist keys; use postgres")
        sys.exit(1)

    if not settings.database_url:
        print("ERROR: DATABASE_URL not set")
        sys.exit(1)

    store = build_store(settings)
    try:
        with store.transaction() as session:
            api_key, plain_key = issue_api_key(
                session, name, permissions, rounds=settings.api_key_hash_rounds
            )
    except AppError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    print()
    print("=== API Key Created ===")
    print(f"  id:          {api_key.id}")
    print(f"  name:        {api_key.name}")
    print(f"  prefix:      {api_key.key_prefix}")
    print(f"  permissions: {', '.join(api_key.permissions)}")
    print(f"  key:         {plain_key}")
    print()
    print("Store the key now; it is not shown again.")


if __name__ == "__main__":
    main()
