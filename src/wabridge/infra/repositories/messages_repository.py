"""Messages repository - raw SQL with psycopg2 (no ORM).

whatsapp_message_id is the idempotency key for webhook ingestion and is
backed by a unique index. insert_message() uses ON CONFLICT DO NOTHING so
a concurrent duplicate delivery returns None instead of aborting the
transaction.
"""

from __future__ import annotations

from typing import Any

from psycopg2.extensions import cursor as PgCursor
from psycopg2.extras import Json

from wabridge.domain.models import Message
from wabridge.infra.db import for_update
from wabridge.infra.pagination import Pagination
from wabridge.infra.store import MessageFilters

_COLUMNS = """
    id, whatsapp_message_id, from_number, to_number, direction, message_type,
    content, media_url, media_mime_type, status, error_code, error_message,
    metadata, timestamp, created_at, updated_at
"""


def _row_to_message(row: tuple[Any, ...]) -> Message:
    return Message(
        id=row[0],
        whatsapp_message_id=row[1],
        from_number=row[2],
        to_number=row[3],
        direction=row[4],
        message_type=row[5],
        content=row[6] or "",
        media_url=row[7],
        media_mime_type=row[8],
        status=row[9],
        error_code=row[10],
        error_message=row[11],
        metadata=row[12] or {},
        timestamp=row[13],
        created_at=row[14],
        updated_at=row[15],
    )


def get_message(cur: PgCursor, message_id: str) -> Message | None:
    cur.execute(f"SELECT {_COLUMNS} FROM messages WHERE id = %s", (message_id,))
    row = cur.fetchone()
    return _row_to_message(row) if row else None


def get_message_by_whatsapp_id(
    cur: PgCursor, whatsapp_message_id: str, *, lock: bool = False
) -> Message | None:
    """Fetch a message by provider id, optionally locking the row FOR UPDATE."""
    query = f"SELECT {_COLUMNS} FROM messages WHERE whatsapp_message_id = %s"
    if lock:
        row = for_update(cur, query, (whatsapp_message_id,))
    else:
        cur.execute(query, (whatsapp_message_id,))
        row = cur.fetchone()
    return _row_to_message(row) if row else None


def insert_message(cur: PgCursor, message: Message) -> Message | None:
    """Insert a prepared message.

    Returns:
        The stored message, or None when whatsapp_message_id already exists.
    """
    cur.execute(
        f"""
        INSERT INTO messages (
            id, whatsapp_message_id, from_number, to_number, direction, message_type,
            content, media_url, media_mime_type, status, error_code, error_message,
            metadata, timestamp, created_at, updated_at
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (whatsapp_message_id) DO NOTHING
        RETURNING {_COLUMNS}
        """,
        (
            message.id,
            message.whatsapp_message_id,
            message.from_number,
            message.to_number,
            message.direction,
            message.message_type,
            message.content,
            message.media_url,
            message.media_mime_type,
            message.status,
            message.error_code,
            message.error_message,
            Json(message.metadata),
            message.timestamp,
            message.created_at,
            message.updated_at,
        ),
    )
    row = cur.fetchone()
    return _row_to_message(row) if row else None


def update_message(cur: PgCursor, message: Message) -> Message | None:
    """Write the mutable fields of a prepared message. Returns None if missing."""
    cur.execute(
        f"""
        UPDATE messages
        SET whatsapp_message_id = %s,
            status = %s,
            error_code = %s,
            error_message = %s,
            metadata = %s,
            updated_at = %s
        WHERE id = %s
        RETURNING {_COLUMNS}
        """,
        (
            message.whatsapp_message_id,
            message.status,
            message.error_code,
            message.error_message,
            Json(message.metadata),
            message.updated_at,
            message.id,
        ),
    )
    row = cur.fetchone()
    return _row_to_message(row) if row else None


def list_messages(
    cur: PgCursor, filters: MessageFilters, pagination: Pagination
) -> tuple[list[Message], int]:
    """List messages newest first with optional filters. Returns (rows, total)."""
    conditions: list[str] = []
    params: list[Any] = []

    if filters.phone_number:
        conditions.append("(from_number = %s OR to_number = %s)")
        params.extend([filters.phone_number, filters.phone_number])
    if filters.direction:
        conditions.append("direction = %s")
        params.append(filters.direction)
    if filters.status:
        conditions.append("status = %s")
        params.append(filters.status)

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

    cur.execute(f"SELECT COUNT(*) FROM messages {where}", params)  # noqa: S608
    total = cur.fetchone()[0]

    cur.execute(
        f"""
        SELECT {_COLUMNS} FROM messages
        {where}
        ORDER BY timestamp DESC, created_at DESC
        LIMIT %s OFFSET %s
        """,  # noqa: S608
        [*params, pagination.limit, pagination.offset],
    )
    return [_row_to_message(r) for r in cur.fetchall()], total
