"""Credits repository - stored-value balances and their ledger.

Uses raw SQL with psycopg2 (no ORM).
"""

from psycopg2.extensions import cursor as PgCursor


class InsufficientCreditsError(Exception):
    """Raised when a debit would take a balance below zero."""


def get_balance(cur: PgCursor, user_id: str, *, lock: bool = False) -> int:
    """Current credit balance in cents (0 if the user has no row).

    Args:
        lock: If True, takes a FOR UPDATE lock on the balance row so
            concurrent reservations by the same user serialize.
    """
    suffix = " FOR UPDATE" if lock else ""
    cur.execute(
        "SELECT balance_cents FROM user_credits WHERE user_id = %s" + suffix,
        (user_id,),
    )
    row = cur.fetchone()
    return row[0] if row else 0


def pending_credits_cents(cur: PgCursor, user_id: str) -> int:
    """Credits promised to the user's pending bookings, not yet debited."""
    cur.execute(
        """
        SELECT COALESCE(SUM(credits_applied_cents), 0)
        FROM bookings
        WHERE user_id = %s AND status = 'pending'
        """,
        (user_id,),
    )
    return cur.fetchone()[0]



def debit_for_booking(
    cur: PgCursor,
    *,
    user_id: str,
    booking_id: str,
    amount_cents: int,
) -> bool:
    """Debit credits for a booking, at most once.

    The ledger row is inserted first; its partial unique index on
    (booking_id) WHERE kind = 'booking_debit' makes a second debit for the
    same booking a no-op. The balance update is guarded so it never goes
    negative.

    Returns:
        True if credits were debited now, False if this booking was
        already debited (or amount is zero).

    Raises:
        InsufficientCreditsError: If the balance cannot cover the amount.
    """
    if amount_cents <= 0:
        return False

    cur.execute(
        """
        INSERT INTO credit_transactions (user_id, booking_id, amount_cents, kind)
        VALUES (%s, %s, %s, 'booking_debit')
        ON CONFLICT (booking_id) WHERE kind = 'booking_debit' DO NOTHING
        """,
        (user_id, booking_id, -amount_cents),
    )
    if cur.rowcount == 0:
        return False

    cur.execute(
        """
        UPDATE user_credits
        SET balance_cents = balance_cents - %s, updated_at = now()
        WHERE user_id = %s AND balance_cents >= %s
        """,
        (amount_cents, user_id, amount_cents),
    )
    if cur.rowcount == 0:
        raise InsufficientCreditsError(
            f"Insufficient credits for booking {booking_id}"
        )
    return True
