"""Outbox repository - event emission for async processing.

Uses raw SQL with psycopg2 (no ORM).
"""

import json

from psycopg2.extensions import cursor as PgCursor


def emit_event(
    cur: PgCursor,
    *,
    event_type: str,
    aggregate_type: str,
    aggregate_id: str,
    payload: dict | None = None,
    correlation_id: str | None = None,
) -> int:
    """Emit an event to the outbox.

    Args:
        cur: Database cursor (within transaction).
        event_type: Event type (e.g., BOOKING_CREATED).
        aggregate_type: Aggregate type (e.g., booking).
        aggregate_id: Aggregate ID (e.g., booking UUID).
        payload: Optional JSON payload (no PII).
        correlation_id: Optional correlation ID for tracing.

    Returns:
        The generated event ID.
    """
    payload_json = json.dumps(payload, default=str) if payload else None

    cur.execute(
        """
        INSERT INTO outbox_events (
            event_type, aggregate_type, aggregate_id, payload, correlation_id
        )
        VALUES (%s, %s, %s, %s, %s)
        RETURNING id
        """,
        (event_type, aggregate_type, aggregate_id, payload_json, correlation_id),
    )
    return cur.fetchone()[0]


def emit_booking_event(
    cur: PgCursor,
    *,
    event_type: str,
    booking: dict,
    correlation_id: str | None = None,
    **extra,
) -> int:
    """Emit a booking lifecycle event with the standard (PII-free) payload."""
    payload = {
        "accommodation_id": booking.get("accommodation_id"),
        "check_in": booking["check_in"].isoformat() if booking.get("check_in") else None,
        "check_out": booking["check_out"].isoformat() if booking.get("check_out") else None,
        "total_price_cents": booking.get("total_price_cents"),
        "credits_applied_cents": booking.get("credits_applied_cents", 0),
        **extra,
    }
    return emit_event(
        cur,
        event_type=event_type,
        aggregate_type="booking",
        aggregate_id=booking["id"],
        payload=payload,
        correlation_id=correlation_id,
    )
