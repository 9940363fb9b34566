"""Auction repository - schedule, single-winner claim and audit history.

Uses raw SQL with psycopg2 (no ORM).
"""

from datetime import datetime
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from castlestay.domain.auction_price import AuctionConfig


def get_active_auction_config(cur: PgCursor) -> AuctionConfig | None:
    """Load the single active auction schedule, or None if none is active."""
    cur.execute(
        """
        SELECT auction_start_time, auction_end_time, price_drop_interval_hours, is_active
        FROM auction_config
        WHERE is_active
        LIMIT 1
        """
    )
    row = cur.fetchone()
    if row is None:
        return None
    return AuctionConfig(
        start_time=row[0],
        end_time=row[1],
        price_drop_interval_hours=row[2],
        is_active=row[3],
    )


def claim_auction_item(
    cur: PgCursor,
    *,
    item_id: str,
    user_id: str,
    price_cents: int,
    purchased_at: datetime,
) -> bool:
    """Attach a buyer to an unsold auction item.

    Single conditional UPDATE: only the first writer sees
    auction_buyer_id IS NULL, every later writer matches zero rows.

    Returns:
        True if this call won the item.
    """
    cur.execute(
        """
        UPDATE accommodations
        SET auction_buyer_id = %s,
            auction_purchase_price_cents = %s,
            auction_purchased_at = %s,
            auction_current_price_cents = %s,
            auction_last_price_update = %s,
            updated_at = now()
        WHERE id = %s
          AND is_in_auction
          AND auction_buyer_id IS NULL
        RETURNING id
        """,
        (user_id, price_cents, purchased_at, price_cents, purchased_at, item_id),
    )
    return cur.fetchone() is not None


def mark_purchase_cancelled(
    cur: PgCursor,
    *,
    item_id: str,
    user_id: str,
) -> bool:
    """Flag the purchase of item_id by user_id as cancelled (buyer stays set)."""
    cur.execute(
        """
        UPDATE accommodations
        SET auction_purchase_cancelled_at = now(), updated_at = now()
        WHERE id = %s
          AND auction_buyer_id = %s
          AND auction_purchase_cancelled_at IS NULL
        """,
        (item_id, user_id),
    )
    return cur.rowcount == 1


def insert_auction_history(
    cur: PgCursor,
    *,
    item_id: str,
    user_id: str,
    action_type: str,
    price_cents: int,
    notes: str | None = None,
) -> int:
    """Append an immutable audit row (purchase or cancellation)."""
    cur.execute(
        """
        INSERT INTO auction_history (
            accommodation_id, user_id, action_type, price_at_action_cents, notes
        )
        VALUES (%s, %s, %s, %s, %s)
        RETURNING id
        """,
        (item_id, user_id, action_type, price_cents, notes),
    )
    return cur.fetchone()[0]


def list_auction_history(cur: PgCursor, item_id: str) -> list[dict[str, Any]]:
    cur.execute(
        """
        SELECT id, user_id, action_type, price_at_action_cents, notes, created_at
        FROM auction_history
        WHERE accommodation_id = %s
        ORDER BY id
        """,
        (item_id,),
    )
    return [
        {
            "id": row[0],
            "user_id": row[1],
            "action_type": row[2],
            "price_at_action_cents": row[3],
            "notes": row[4],
            "created_at": row[5],
        }
        for row in cur.fetchall()
    ]


def list_unsold_auction_items(cur: PgCursor) -> list[dict[str, Any]]:
    cur.execute(
        """
        SELECT id, auction_start_price_cents, auction_floor_price_cents,
               auction_current_price_cents
        FROM accommodations
        WHERE is_in_auction AND auction_buyer_id IS NULL
        ORDER BY id
        """
    )
    return [
        {
            "id": str(row[0]),
            "auction_start_price_cents": row[1],
            "auction_floor_price_cents": row[2],
            "auction_current_price_cents": row[3],
        }
        for row in cur.fetchall()
    ]


def update_cached_price(
    cur: PgCursor,
    *,
    item_id: str,
    price_cents: int,
    updated_at: datetime,
) -> bool:
    """Refresh the display cache of an unsold item."""
    cur.execute(
        """
        UPDATE accommodations
        SET auction_current_price_cents = %s,
            auction_last_price_update = %s
        WHERE id = %s AND auction_buyer_id IS NULL
        """,
        (price_cents, updated_at, item_id),
    )
    return cur.rowcount == 1
