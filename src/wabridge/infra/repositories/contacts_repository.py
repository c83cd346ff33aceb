"""Contacts repository - raw SQL with psycopg2 (no ORM).

Contact counters are denormalized from message ingestion and only ever
change through record_inbound_contact(), a single-statement upsert keyed
on the unique phone_number. last_message_at uses GREATEST so out-of-order
deliveries never move it backwards.
"""

from __future__ import annotations

from typing import Any

from psycopg2.extensions import cursor as PgCursor
from psycopg2.extras import Json

from wabridge.domain.models import Contact
from wabridge.infra.pagination import Pagination

_COLUMNS = """
    id, phone_number, name, profile_url, last_message_at,
    message_count, unread_count, metadata, created_at, updated_at
"""


def _row_to_contact(row: tuple[Any, ...]) -> Contact:
    return Contact(
        id=row[0],
        phone_number=row[1],
        name=row[2] or "",
        profile_url=row[3],
        last_message_at=row[4],
        message_count=row[5],
        unread_count=row[6],
        metadata=row[7] or {},
        created_at=row[8],
        updated_at=row[9],
    )


def get_contact(cur: PgCursor, phone_number: str) -> Contact | None:
    cur.execute(f"SELECT {_COLUMNS} FROM contacts WHERE phone_number = %s", (phone_number,))
    row = cur.fetchone()
    return _row_to_contact(row) if row else None


def upsert_inbound_contact(cur: PgCursor, contact: Contact) -> Contact:
    """Insert a prepared contact or bump the existing row's counters.

    Args:
        cur: Database cursor (must be inside a transaction).
        contact: Prepared contact carrying phone_number, name and
            last_message_at of the message being ingested, with counters
            already set to 1 for the insert case.

    Returns:
        The contact row after the upsert.
    """
    cur.execute(
        f"""
        INSERT INTO contacts (
            id, phone_number, name, profile_url, last_message_at,
            message_count, unread_count, metadata, created_at, updated_at
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (phone_number) DO UPDATE
        SET message_count   = contacts.message_count + 1,
            unread_count    = contacts.unread_count + 1,
            last_message_at = GREATEST(contacts.last_message_at, EXCLUDED.last_message_at),
            name            = COALESCE(NULLIF(EXCLUDED.name, ''), contacts.name),
            updated_at      = EXCLUDED.updated_at
        RETURNING {_COLUMNS}
        """,
        (
            contact.id,
            contact.phone_number,
            contact.name,
            contact.profile_url,
            contact.last_message_at,
            contact.message_count,
            contact.unread_count,
            Json(contact.metadata),
            contact.created_at,
            contact.updated_at,
        ),
    )
    return _row_to_contact(cur.fetchone())


def list_contacts(cur: PgCursor, pagination: Pagination) -> tuple[list[Contact], int]:
    cur.execute("SELECT COUNT(*) FROM contacts")
    total = cur.fetchone()[0]
    cur.execute(
        f"""
        SELECT {_COLUMNS} FROM contacts
        ORDER BY last_message_at DESC NULLS LAST, created_at DESC
        LIMIT %s OFFSET %s
        """,
        (pagination.limit, pagination.offset),
    )
    return [_row_to_contact(r) for r in cur.fetchall()], total
