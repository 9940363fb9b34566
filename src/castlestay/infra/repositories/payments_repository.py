"""Payments repository - persistence for payment records.

Uses raw SQL with psycopg2 (no ORM).
"""

from typing import Any

from psycopg2.extensions import cursor as PgCursor

PROVIDER_STRIPE = "stripe"

VALID_STATUSES = {"created", "pending", "succeeded", "failed", "canceled"}

_COLUMNS = "id, booking_id, provider, provider_ref, status, amount_cents, currency"


def _row_to_dict(row: tuple) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "booking_id": str(row[1]),
        "provider": row[2],
        "provider_ref": row[3],
        "status": row[4],
        "amount_cents": row[5],
        "currency": row[6],
    }


def insert_payment(
    cur: PgCursor,
    *,
    booking_id: str,
    provider_ref: str,
    amount_cents: int,
    currency: str,
    provider: str = PROVIDER_STRIPE,
) -> tuple[dict[str, Any], bool]:
    """Insert a payment record for a booking, once per provider.

    Returns:
        Tuple of (payment, created). On conflict the existing record is
        returned with created=False.
    """
    cur.execute(
        f"""
        INSERT INTO payments (
            booking_id, provider, provider_ref, status, amount_cents, currency
        )
        VALUES (%s, %s, %s, 'created', %s, %s)
        ON CONFLICT (booking_id, provider) DO NOTHING
        RETURNING {_COLUMNS}
        """,
        (booking_id, provider, provider_ref, amount_cents, currency),
    )
    row = cur.fetchone()
    if row is not None:
        return (_row_to_dict(row), True)

    existing = get_payment_for_booking(cur, booking_id, provider=provider)
    return (existing, False)


def get_payment_for_booking(
    cur: PgCursor,
    booking_id: str,
    *,
    provider: str = PROVIDER_STRIPE,
) -> dict[str, Any] | None:
    cur.execute(
        f"SELECT {_COLUMNS} FROM payments WHERE booking_id = %s AND provider = %s",
        (booking_id, provider),
    )
    row = cur.fetchone()
    return _row_to_dict(row) if row else None


def get_payment_by_provider_ref(
    cur: PgCursor,
    provider_ref: str,
    *,
    provider: str = PROVIDER_STRIPE,
) -> dict[str, Any] | None:
    """Get a payment by provider object ID (e.g. PaymentIntent ID)."""
    cur.execute(
        f"SELECT {_COLUMNS} FROM payments WHERE provider = %s AND provider_ref = %s",
        (provider, provider_ref),
    )
    row = cur.fetchone()
    return _row_to_dict(row) if row else None


def update_payment_status(
    cur: PgCursor,
    *,
    payment_id: str,
    status: str,
) -> None:
    """Update payment status.

    Raises:
        ValueError: If status is not in VALID_STATUSES.
    """
    if status not in VALID_STATUSES:
        raise ValueError(f"Invalid status: {status}. Must be one of {VALID_STATUSES}")

    cur.execute(
        """
        UPDATE payments
        SET status = %s, updated_at = now()
        WHERE id = %s
        """,
        (status, payment_id),
    )
