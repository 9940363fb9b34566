"""Credits ledger and booking alerts.

Revision ID: 003_credits_and_alerts
Revises: 002_dutch_auction
Create Date: 2026-10-12
"""
from __future__ import annotations

from sql_files import run_sql_file, run_statements

revision = "003_credits_and_alerts"
down_revision = "002_dutch_auction"
branch_labels = None
depends_on = None


def upgrade() -> None:
    run_sql_file("003_credits_and_alerts.sql")


def downgrade() -> None:
    run_statements(
        "DROP TABLE IF EXISTS booking_alerts",
        "DROP TABLE IF EXISTS credit_transactions",
        "DROP TABLE IF EXISTS user_credits",
    )
