"""Tests for database layer."""

import os
from unittest.mock import MagicMock, patch

import pytest


class TestGetConnPasswordFallback:
    """DB_PASSWORD fallback in get_conn(), no real DB needed."""

    def test_db_password_fallback_dsn_without_password(self):
        from castlestay.infra.db import get_conn

        env = {"DATABASE_URL": "dbname=db user=u host=h port=5432", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("castlestay.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with(
                "dbname=db user=u host=h port=5432",
                password="from-env",
            )

    def test_db_password_not_used_when_url_has_password(self):
        from castlestay.infra.db import get_conn

        env = {"DATABASE_URL": "postgres://u:p@h/db", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("castlestay.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with("postgres://u:p@h/db")

    def test_db_password_fallback_url_without_password(self):
        from castlestay.infra.db import get_conn

        env = {"DATABASE_URL": "postgres://u@h/db", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("castlestay.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with("postgres://u@h/db", password="from-env")

    def test_raises_without_database_url(self):
        from castlestay.infra.db import get_conn

        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(RuntimeError, match="DATABASE_URL"):
                get_conn()


class TestTxnWithMockConnection:
    def test_commits_on_success(self):
        from castlestay.infra.db import txn

        conn = MagicMock()
        with txn(conn) as cur:
            cur.execute("SELECT 1")

        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        conn.close.assert_not_called()

    def test_rolls_back_and_reraises(self):
        from castlestay.infra.db import txn

        conn = MagicMock()
        with pytest.raises(ValueError):
            with txn(conn):
                raise ValueError("boom")

        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_owned_connection_is_closed(self):
        from castlestay.infra.db import txn

        conn = MagicMock()
        with patch("castlestay.infra.db.get_conn", return_value=conn):
            with txn():
                pass
        conn.close.assert_called_once()


class TestForUpdate:
    def test_appends_for_update(self):
        from castlestay.infra.db import for_update

        cur = MagicMock()
        cur.fetchone.return_value = ("row",)
        result = for_update(cur, "SELECT id FROM bookings WHERE id = %s;", ("b1",))

        cur.execute.assert_called_once_with(
            "SELECT id FROM bookings WHERE id = %s FOR UPDATE", ("b1",)
        )
        assert result == ("row",)

    def test_skip_locked_fetch_all(self):
        from castlestay.infra.db import for_update

        cur = MagicMock()
        cur.fetchall.return_value = [("a",), ("b",)]
        rows = for_update(cur, "SELECT id FROM bookings", skip_locked=True, fetch_all=True)

        assert cur.execute.call_args[0][0].endswith("FOR UPDATE SKIP LOCKED")
        assert rows == [("a",), ("b",)]

    def test_nowait(self):
        from castlestay.infra.db import for_update

        cur = MagicMock()
        for_update(cur, "SELECT 1", nowait=True)
        assert cur.execute.call_args[0][0].endswith("FOR UPDATE NOWAIT")

    def test_nowait_and_skip_locked_conflict(self):
        from castlestay.infra.db import for_update

        with pytest.raises(ValueError):
            for_update(MagicMock(), "SELECT 1", nowait=True, skip_locked=True)


_skip_no_db = pytest.mark.skipif(
    not os.environ.get("DATABASE_URL"),
    reason="DATABASE_URL not set - skipping DB integration tests",
)


@_skip_no_db
class TestTxnIntegration:
    def test_rollback_discards_changes(self):
        from castlestay.infra.db import get_conn, txn

        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute("CREATE TEMP TABLE test_txn (id serial, val text)")
            conn.commit()

            with pytest.raises(RuntimeError):
                with txn(conn) as cur:
                    cur.execute("INSERT INTO test_txn (val) VALUES (%s)", ("x",))
                    raise RuntimeError("abort")

            with conn.cursor() as cur:
                cur.execute("SELECT count(*) FROM test_txn")
                assert cur.fetchone()[0] == 0
        finally:
            conn.close()
