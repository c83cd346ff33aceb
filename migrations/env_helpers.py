"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without alembic.context.
The service itself connects with psycopg2 and accepts either a libpq
key=value DSN or a postgres:// URL in DATABASE_URL; SQLAlchemy needs a
postgresql+psycopg2:// URL, so both forms are converted here.
"""

from __future__ import annotations

import os
from typing import Mapping

from psycopg2.extensions import parse_dsn
from sqlalchemy.engine import URL

DRIVER_NAME = "postgresql+psycopg2"


def dsn_to_url(dsn: str, password: str | None = None) -> str:
    """Convert a libpq DSN or postgres URL into a SQLAlchemy URL string.

    Args:
        dsn: "dbname=... user=... host=..." or "postgres://user@host/db".
        password: Used only when the DSN carries no password.

    Raises:
        psycopg2.ProgrammingError: If the DSN cannot be parsed.
    """
    if dsn.startswith("postgres://"):
        dsn = "postgresql://" + dsn[len("postgres://"):]
    params = parse_dsn(dsn)

    host = params.pop("host", None) or "localhost"
    query: dict[str, str] = {}
    if host.startswith("/"):
        # Unix socket (Cloud SQL): host goes into the query string
        query["host"] = host
        host = None

    port = params.pop("port", None)
    url = URL.create(
        drivername=DRIVER_NAME,
        username=params.pop("user", None),
        password=params.pop("password", None) or password or None,
        host=host,
        port=int(port) if port else None,
        database=params.pop("dbname", None),
        query=query,
    )
    return url.render_as_string(hide_password=False)


def get_database_url(environ: Mapping[str, str] | None = None) -> str:
    """Read DATABASE_URL (and DB_PASSWORD) and return a SQLAlchemy URL.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
    """
    env = os.environ if environ is None else environ
    dsn = env.get("DATABASE_URL", "")
    if not dsn:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    return dsn_to_url(dsn, env.get("DB_PASSWORD") or None)
