"""Database access layer using psycopg2.

Provides:
- get_conn(): Open a connection for an explicit DSN
- txn(): Context manager for short, safe transactions
- for_update(): SELECT ... FOR UPDATE helper
"""

from contextlib import contextmanager
from typing import Any, Iterator, Sequence

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor


def _dsn_has_password(dsn: str) -> bool:
    if "://" in dsn:
        netloc = dsn.split("://", 1)[1].split("/", 1)[0]
        userinfo = netloc.rsplit("@", 1)[0] if "@" in netloc else ""
        return ":" in userinfo
    return any(part.startswith("password=") for part in dsn.split())


def get_conn(dsn: str, password: str | None = None) -> PgConnection:
    """Open a new database connection.

    Args:
        dsn: libpq DSN or postgres:// URL.
        password: Injected only when the DSN carries no password.

    Returns:
        psycopg2 connection object.

    Raises:
        RuntimeError: If dsn is empty.
        psycopg2.Error: On connection failure.
    """
    if not dsn:
        raise RuntimeError("database DSN not configured (DATABASE_URL)")
    if password and not _dsn_has_password(dsn):
        return psycopg2.connect(dsn, password=password)
    return psycopg2.connect(dsn)


@contextmanager
def txn(
    dsn: str | None = None,
    *,
    conn: PgConnection | None = None,
    password: str | None = None,
) -> Iterator[PgCursor]:
    """Context manager for a short, safe transaction.

    If conn is None, opens a new connection from dsn that is closed on exit.
    Commits on successful exit, rolls back on exception.

    Example:
        with txn(settings.database_url) as cur:
            cur.execute("INSERT INTO t (x) VALUES (%s)", (1,))
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn(dsn or "", password)

    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if owns_conn:
            conn.close()


def for_update(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
) -> tuple[Any, ...] | None:
    """Execute SELECT ... FOR UPDATE and fetch one row.

    Appends FOR UPDATE clause to the query. Use within a transaction
    to lock the selected row until commit/rollback.
    """
    full_query = query.rstrip().rstrip(";") + " FOR UPDATE"
    cur.execute(full_query, params)
    return cur.fetchone()
