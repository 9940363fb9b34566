"""Booking core tables.

Creates accommodations, bookings (with the booking_status enum), payments,
the outbox and the processed_events dedupe table.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-05
"""
from __future__ import annotations

from sql_files import run_sql_file, run_statements

revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    run_sql_file("001_initial.sql")


def downgrade() -> None:
    run_statements(
        "DROP TABLE IF EXISTS processed_events",
        "DROP TABLE IF EXISTS outbox_events",
        "DROP TABLE IF EXISTS payments",
        "DROP TABLE IF EXISTS bookings",
        "DROP TABLE IF EXISTS accommodations",
        "DROP TYPE IF EXISTS booking_status",
    )
