"""Dutch auction fields, schedule and audit history.

Adds the auction columns to accommodations, a write-once trigger on
auction_buyer_id, the single-active auction_config table and the
append-only auction_history table.

Revision ID: 002_dutch_auction
Revises: 001_initial_schema
Create Date: 2026-10-09
"""
from __future__ import annotations

from sql_files import run_sql_file, run_statements

revision = "002_dutch_auction"
down_revision = "001_initial_schema"
branch_labels = None
depends_on = None

_AUCTION_COLUMNS = (
    "is_in_auction",
    "auction_tier",
    "auction_start_price_cents",
    "auction_floor_price_cents",
    "auction_current_price_cents",
    "auction_last_price_update",
    "auction_buyer_id",
    "auction_purchase_price_cents",
    "auction_purchased_at",
    "auction_purchase_cancelled_at",
)


def upgrade() -> None:
    run_sql_file("002_dutch_auction.sql")


def downgrade() -> None:
    drop_columns = ", ".join(
        f"DROP COLUMN IF EXISTS {column}" for column in _AUCTION_COLUMNS
    )
    run_statements(
        "DROP TABLE IF EXISTS auction_history",
        "DROP FUNCTION IF EXISTS auction_history_immutable()",
        "DROP TABLE IF EXISTS auction_config",
        "DROP TRIGGER IF EXISTS accommodations_buyer_write_once_trg ON accommodations",
        "DROP FUNCTION IF EXISTS accommodations_buyer_write_once()",
        "ALTER TABLE accommodations DROP CONSTRAINT IF EXISTS accommodations_auction_prices_chk",
        f"ALTER TABLE accommodations {drop_columns}",
    )
