"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without triggering
alembic.context at import time.
"""

from __future__ import annotations

import os
from urllib.parse import quote_plus, urlparse, urlunparse

_DRIVER_PREFIX = "postgresql+psycopg2://"


def _parse_libpq_dsn(dsn: str) -> dict[str, str]:
    """Parse a libpq key=value DSN. Single-quoted values may contain spaces
    and backslash escapes."""
    tokens: dict[str, str] = {}
    pos, end = 0, len(dsn)

    while pos < end:
        while pos < end and dsn[pos].isspace():
            pos += 1
        eq = dsn.find("=", pos)
        if pos >= end or eq == -1:
            break
        key = dsn[pos:eq].strip()
        pos = eq + 1

        value: list[str] = []
        if pos < end and dsn[pos] == "'":
            pos += 1
            while pos < end and dsn[pos] != "'":
                if dsn[pos] == "\\" and pos + 1 < end:
                    pos += 1
                value.append(dsn[pos])
                pos += 1
            pos += 1  # closing quote
        else:
            while pos < end and not dsn[pos].isspace():
                value.append(dsn[pos])
                pos += 1
        tokens[key] = "".join(value)

    return tokens


def _libpq_dsn_to_url(dsn: str) -> str:
    """Convert a libpq key=value DSN to a SQLAlchemy URL.

    A host starting with "/" is a unix socket directory and goes into the
    query string; anything else becomes HOST:PORT.
    """
    tokens = _parse_libpq_dsn(dsn)
    password = tokens.get("password") or os.environ.get("DB_PASSWORD", "")

    userinfo = f"{quote_plus(tokens.get('user', ''))}:{quote_plus(password)}"
    dbname = quote_plus(tokens.get("dbname", ""))
    host = tokens.get("host", "localhost")

    if host.startswith("/"):
        return f"{_DRIVER_PREFIX}{userinfo}@/{dbname}?host={quote_plus(host)}"

    port = tokens.get("port", "5432")
    return f"{_DRIVER_PREFIX}{userinfo}@{host}:{port}/{dbname}"


def _inject_password(url: str, password: str) -> str:
    parsed = urlparse(url)
    if parsed.password:
        return url
    netloc = f"{quote_plus(parsed.username or '')}:{quote_plus(password)}@{parsed.hostname}"
    if parsed.port:
        netloc += f":{parsed.port}"
    return urlunparse(parsed._replace(netloc=netloc))


def get_database_url() -> str:
    """SQLAlchemy URL from DATABASE_URL (URL or libpq DSN) and DB_PASSWORD."""
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")

    if "://" not in url:
        return _libpq_dsn_to_url(url)

    for scheme in ("postgres://", "postgresql://"):
        if url.startswith(scheme):
            url = _DRIVER_PREFIX + url[len(scheme):]
            break

    db_password = os.environ.get("DB_PASSWORD", "")
    if db_password:
        url = _inject_password(url, db_password)
    return url
