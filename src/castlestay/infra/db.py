"""psycopg2 connection and transaction helpers.

Every booking-core write runs inside ``txn()``; row locks taken with
``for_update()`` live until that transaction commits or rolls back.
"""

import os
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Sequence

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor


def _dsn_has_password(dsn: str) -> bool:
    if "://" in dsn:
        netloc = dsn.split("://", 1)[1].split("/", 1)[0]
        if "@" not in netloc:
            return False
        userinfo = netloc.rsplit("@", 1)[0]
        return ":" in userinfo and bool(userinfo.split(":", 1)[1])
    return any(part.startswith("password=") for part in dsn.split())


def get_conn() -> PgConnection:
    """Open a connection to DATABASE_URL.

    DB_PASSWORD is passed separately when the DSN itself has no password.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
    """
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")

    password = os.environ.get("DB_PASSWORD")
    if password and not _dsn_has_password(dsn):
        return psycopg2.connect(dsn, password=password)
    return psycopg2.connect(dsn)


@contextmanager
def txn(conn: PgConnection | None = None) -> Iterator[PgCursor]:
    """Yield a cursor; commit on clean exit, roll back and re-raise otherwise.

    A connection opened here is closed on exit. A caller-supplied one is
    left open.
    """
    owned = conn is None
    if owned:
        conn = get_conn()

    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if owned:
            conn.close()


def for_update(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
    *,
    nowait: bool = False,
    skip_locked: bool = False,
    fetch_all: bool = False,
) -> Any:
    """Run ``query`` with a FOR UPDATE lock clause appended.

    ``skip_locked`` is what the expiry sweep uses so two sweepers never
    wait on each other. Returns the first row, or all rows with
    ``fetch_all``.

    Raises:
        ValueError: If both nowait and skip_locked are set.
    """
    if nowait and skip_locked:
        raise ValueError("Cannot use both nowait and skip_locked")

    clause = "FOR UPDATE"
    if nowait:
        clause += " NOWAIT"
    elif skip_locked:
        clause += " SKIP LOCKED"

    cur.execute(f"{query.rstrip().rstrip(';')} {clause}", params)
    return cur.fetchall() if fetch_all else cur.fetchone()


def db_now(cur: PgCursor) -> datetime:
    """now() from the database clock; constant within one transaction."""
    cur.execute("SELECT now()")
    return cur.fetchone()[0]
