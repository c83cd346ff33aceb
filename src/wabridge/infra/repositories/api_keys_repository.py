"""API keys repository - raw SQL with psycopg2 (no ORM)."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from psycopg2.extensions import cursor as PgCursor
from psycopg2.extras import Json

from wabridge.domain.models import APIKey

_COLUMNS = """
    id, name, key_hash, key_prefix, permissions,
    expires_at, last_used_at, created_at, updated_at
"""


def _row_to_api_key(row: tuple[Any, ...]) -> APIKey:
    return APIKey(
        id=row[0],
        name=row[1],
        key_hash=row[2],
        key_prefix=row[3],
        permissions=list(row[4] or []),
        expires_at=row[5],
        last_used_at=row[6],
        created_at=row[7],
        updated_at=row[8],
    )


def insert_api_key(cur: PgCursor, api_key: APIKey) -> APIKey | None:
    """Insert a prepared key. Returns None on key_hash collision."""
    cur.execute(
        f"""
        INSERT INTO api_keys (
            id, name, key_hash, key_prefix, permissions,
            expires_at, last_used_at, created_at, updated_at
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (key_hash) DO NOTHING
        RETURNING {_COLUMNS}
        """,
        (
            api_key.id,
            api_key.name,
            api_key.key_hash,
            api_key.key_prefix,
            Json(api_key.permissions),
            api_key.expires_at,
            api_key.last_used_at,
            api_key.created_at,
            api_key.updated_at,
        ),
    )
    row = cur.fetchone()
    return _row_to_api_key(row) if row else None


def find_by_prefix(cur: PgCursor, key_prefix: str) -> list[APIKey]:
    """Candidate keys sharing a plaintext prefix (non-secret index)."""
    cur.execute(
        f"SELECT {_COLUMNS} FROM api_keys WHERE key_prefix = %s ORDER BY created_at",
        (key_prefix,),
    )
    return [_row_to_api_key(r) for r in cur.fetchall()]


def touch_last_used(cur: PgCursor, api_key_id: str, used_at: datetime) -> None:
    cur.execute(
        "UPDATE api_keys SET last_used_at = %s WHERE id = %s",
        (used_at, api_key_id),
    )
