"""Bookings repository - persistence for bookings.

Uses raw SQL with psycopg2 (no ORM).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from castlestay.infra.db import for_update

# Statuses that hold capacity
ACTIVE_STATUSES = ("pending", "confirmed")

_COLUMNS = """
    id, accommodation_id, user_id, check_in, check_out, status,
    total_price_cents, base_cost_cents, seasonal_discount_pct,
    duration_discount_pct, seasonal_discount_cents, duration_discount_cents,
    credits_applied_cents, payment_ref, idempotency_key, cancel_reason,
    created_at, confirmed_at, cancelled_at
"""


def _row_to_dict(row: tuple) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "accommodation_id": str(row[1]) if row[1] else None,
        "user_id": row[2],
        "check_in": row[3],
        "check_out": row[4],
        "status": row[5],
        "total_price_cents": row[6],
        "base_cost_cents": row[7],
        "seasonal_discount_pct": row[8],
        "duration_discount_pct": row[9],
        "seasonal_discount_cents": row[10],
        "duration_discount_cents": row[11],
        "credits_applied_cents": row[12],
        "payment_ref": row[13],
        "idempotency_key": row[14],
        "cancel_reason": row[15],
        "created_at": row[16],
        "confirmed_at": row[17],
        "cancelled_at": row[18],
    }


def amount_due_cents(booking: dict[str, Any]) -> int:
    """Amount left to charge after credits."""
    return max(booking["total_price_cents"] - booking["credits_applied_cents"], 0)


def insert_booking(
    cur: PgCursor,
    *,
    accommodation_id: str | None,
    user_id: str,
    check_in: date,
    check_out: date,
    total_price_cents: int,
    base_cost_cents: int,
    seasonal_discount_pct: Decimal,
    duration_discount_pct: Decimal,
    seasonal_discount_cents: int,
    duration_discount_cents: int,
    credits_applied_cents: int = 0,
    idempotency_key: str | None = None,
) -> tuple[str | None, bool]:
    """Insert a pending booking with idempotency.

    Uses ON CONFLICT DO NOTHING on (user_id, idempotency_key).

    Returns:
        Tuple of (booking_id, created).
    """
    cur.execute(
        """
        INSERT INTO bookings (
            accommodation_id, user_id, check_in, check_out, status,
            total_price_cents, base_cost_cents,
            seasonal_discount_pct, duration_discount_pct,
            seasonal_discount_cents, duration_discount_cents,
            credits_applied_cents, idempotency_key
        )
        VALUES (%s, %s, %s, %s, 'pending', %s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (user_id, idempotency_key)
        WHERE idempotency_key IS NOT NULL
        DO NOTHING
        RETURNING id
        """,
        (
            accommodation_id,
            user_id,
            check_in,
            check_out,
            total_price_cents,
            base_cost_cents,
            seasonal_discount_pct,
            duration_discount_pct,
            seasonal_discount_cents,
            duration_discount_cents,
            credits_applied_cents,
            idempotency_key,
        ),
    )
    row = cur.fetchone()
    if row is not None:
        return (str(row[0]), True)

    if idempotency_key is None:
        return (None, False)

    existing = find_by_idempotency_key(
        cur, user_id=user_id, idempotency_key=idempotency_key
    )
    if existing is not None:
        return (existing["id"], False)
    return (None, False)


def find_by_idempotency_key(
    cur: PgCursor,
    *,
    user_id: str,
    idempotency_key: str,
) -> dict[str, Any] | None:
    cur.execute(
        f"""
        SELECT {_COLUMNS} FROM bookings
        WHERE user_id = %s AND idempotency_key = %s
        """,
        (user_id, idempotency_key),
    )
    row = cur.fetchone()
    return _row_to_dict(row) if row else None


def get_booking(cur: PgCursor, booking_id: str) -> dict[str, Any] | None:
    """Retrieve a booking by ID (no lock)."""
    cur.execute(f"SELECT {_COLUMNS} FROM bookings WHERE id = %s", (booking_id,))
    row = cur.fetchone()
    return _row_to_dict(row) if row else None


def lock_booking(cur: PgCursor, booking_id: str) -> dict[str, Any] | None:
    """Retrieve a booking with a FOR UPDATE row lock."""
    row = for_update(
        cur,
        f"SELECT {_COLUMNS} FROM bookings WHERE id = %s",
        (booking_id,),
    )
    return _row_to_dict(row) if row else None


def find_booking_by_payment_ref(cur: PgCursor, payment_ref: str) -> dict[str, Any] | None:
    cur.execute(
        f"SELECT {_COLUMNS} FROM bookings WHERE payment_ref = %s",
        (payment_ref,),
    )
    row = cur.fetchone()
    return _row_to_dict(row) if row else None


def lock_stale_pending_bookings(
    cur: PgCursor,
    *,
    created_before: datetime,
    limit: int,
) -> list[dict[str, Any]]:
    """Lock pending bookings created before a cutoff, skipping locked rows.

    Rows locked by a concurrent confirm/cancel are skipped so the sweep
    never waits on a user-facing transaction.
    """
    rows = for_update(
        cur,
        f"""
        SELECT {_COLUMNS} FROM bookings
        WHERE status = 'pending' AND created_at < %s
        ORDER BY created_at
        LIMIT %s
        """,
        (created_before, limit),
        skip_locked=True,
        fetch_all=True,
    )
    return [_row_to_dict(row) for row in rows]


def mark_confirmed(cur: PgCursor, *, booking_id: str, payment_ref: str | None) -> bool:
    """Transition pending -> confirmed. Returns False if the guard fails."""
    cur.execute(
        """
        UPDATE bookings
        SET status = 'confirmed',
            payment_ref = COALESCE(%s, payment_ref),
            confirmed_at = now(),
            updated_at = now()
        WHERE id = %s AND status = 'pending'
        """,
        (payment_ref, booking_id),
    )
    return cur.rowcount == 1


def mark_cancelled(cur: PgCursor, *, booking_id: str, reason: str) -> bool:
    """Transition pending -> cancelled. Returns False if the guard fails."""
    cur.execute(
        """
        UPDATE bookings
        SET status = 'cancelled',
            cancel_reason = %s,
            cancelled_at = now(),
            updated_at = now()
        WHERE id = %s AND status = 'pending'
        """,
        (reason, booking_id),
    )
    return cur.rowcount == 1


def set_payment_ref(cur: PgCursor, *, booking_id: str, payment_ref: str) -> None:
    """Link a pending booking to its external payment record."""
    cur.execute(
        """
        UPDATE bookings
        SET payment_ref = %s, updated_at = now()
        WHERE id = %s AND status = 'pending'
          AND (payment_ref IS NULL OR payment_ref = %s)
        """,
        (payment_ref, booking_id, payment_ref),
    )
