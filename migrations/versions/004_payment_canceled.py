"""Allow the 'canceled' payment status.

Revision ID: 004_payment_canceled
Revises: 003_credits_and_alerts
Create Date: 2026-10-20
"""
from __future__ import annotations

from sql_files import run_sql_file, run_statements

revision = "004_payment_canceled"
down_revision = "003_credits_and_alerts"
branch_labels = None
depends_on = None


def upgrade() -> None:
    run_sql_file("004_payment_canceled.sql")


def downgrade() -> None:
    run_statements(
        "UPDATE payments SET status = 'failed' WHERE status = 'canceled'",
        "ALTER TABLE payments DROP CONSTRAINT IF EXISTS payments_status_check",
        "ALTER TABLE payments ADD CONSTRAINT payments_status_check "
        "CHECK (status IN ('created', 'pending', 'succeeded', 'failed'))",
    )
