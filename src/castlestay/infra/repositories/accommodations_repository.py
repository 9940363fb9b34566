"""Accommodations repository - inventory and auction fields.

Uses raw SQL with psycopg2 (no ORM).
"""

from typing import Any

from psycopg2.extensions import cursor as PgCursor

_COLUMNS = """
    id, title, category, base_price_cents, inventory, is_unlimited,
    is_in_auction, auction_tier, auction_start_price_cents,
    auction_floor_price_cents, auction_current_price_cents,
    auction_buyer_id, auction_purchase_price_cents, auction_purchased_at,
    auction_purchase_cancelled_at
"""


def _row_to_dict(row: tuple) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "title": row[1],
        "category": row[2],
        "base_price_cents": row[3],
        "inventory": row[4],
        "is_unlimited": row[5],
        "is_in_auction": row[6],
        "auction_tier": row[7],
        "auction_start_price_cents": row[8],
        "auction_floor_price_cents": row[9],
        "auction_current_price_cents": row[10],
        "auction_buyer_id": row[11],
        "auction_purchase_price_cents": row[12],
        "auction_purchased_at": row[13],
        "auction_purchase_cancelled_at": row[14],
    }


def get_accommodation(
    cur: PgCursor,
    accommodation_id: str,
    *,
    lock: bool = False,
) -> dict[str, Any] | None:
    """Retrieve an accommodation by ID.

    Args:
        cur: Database cursor.
        accommodation_id: Accommodation UUID.
        lock: If True, takes a FOR UPDATE row lock (reservation path).

    Returns:
        Dict with accommodation data or None if not found.
    """
    suffix = " FOR UPDATE" if lock else ""
    cur.execute(
        f"SELECT {_COLUMNS} FROM accommodations WHERE id = %s{suffix}",
        (accommodation_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_dict(row)


def get_accommodations(cur: PgCursor, accommodation_ids: list[str]) -> list[dict[str, Any]]:
    """Retrieve several accommodations, ordered by ID. Unknown IDs are skipped."""
    if not accommodation_ids:
        return []
    cur.execute(
        f"SELECT {_COLUMNS} FROM accommodations WHERE id = ANY(%s::uuid[]) ORDER BY id",
        (list(accommodation_ids),),
    )
    return [_row_to_dict(row) for row in cur.fetchall()]
