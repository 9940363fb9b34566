"""Run the versioned SQL scripts kept under migrations/sql."""

from __future__ import annotations

from pathlib import Path

from alembic import op

SQL_DIR = Path(__file__).resolve().parent / "sql"


def run_sql_file(name: str) -> None:
    """Execute one script through the DBAPI cursor.

    exec_driver_sql skips SQLAlchemy's bind-parameter parsing, so dollar-quoted
    function bodies and ':' inside them pass through untouched.
    """
    op.get_bind().exec_driver_sql((SQL_DIR / name).read_text(encoding="utf-8"))


def run_statements(*statements: str) -> None:
    conn = op.get_bind()
    for statement in statements:
        conn.exec_driver_sql(statement)
