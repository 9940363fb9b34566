"""Booking alerts - paid-but-not-booked records for human operators.

Uses raw SQL with psycopg2 (no ORM).
"""

from psycopg2.extensions import cursor as PgCursor


def insert_booking_alert(
    cur: PgCursor,
    *,
    booking_id: str | None,
    payment_ref: str,
    amount_cents: int,
    error_class: str,
    detail: str | None,
    attempts: int,
) -> int | None:
    """Record an open alert for a payment. One open alert per payment_ref.

    Returns:
        Alert ID, or None if an open alert for this payment already exists.
    """
    cur.execute(
        """
        INSERT INTO booking_alerts (
            booking_id, payment_ref, amount_cents, error_class, detail, attempts
        )
        VALUES (%s, %s, %s, %s, %s, %s)
        ON CONFLICT (payment_ref) WHERE resolved_at IS NULL DO NOTHING
        RETURNING id
        """,
        (booking_id, payment_ref, amount_cents, error_class, detail, attempts),
    )
    row = cur.fetchone()
    return row[0] if row else None
