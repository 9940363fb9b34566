"""Dedupe receipts for webhooks and tasks (processed_events).

Uses raw SQL with psycopg2 (no ORM).
"""

from psycopg2.extensions import cursor as PgCursor


def record_processed(cur: PgCursor, *, source: str, external_id: str) -> bool:
    """Insert a dedupe receipt.

    Returns:
        True if this is the first time (source, external_id) is seen,
        False if it was already processed.
    """
    cur.execute(
        """
        INSERT INTO processed_events (source, external_id)
        VALUES (%s, %s)
        ON CONFLICT (source, external_id) DO NOTHING
        """,
        (source, external_id),
    )
    return cur.rowcount == 1
