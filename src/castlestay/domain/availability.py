"""Availability resolver - remaining capacity per accommodation and range.

Ranges are half-open: night N is occupied by [check_in, check_out) iff
check_in <= N < check_out. Two ranges [a, b) and [c, d) overlap iff
a < d and c < b, so a check-out day may equal the next check-in day.

Capacity held = bookings in {pending, confirmed} overlapping the range.
Display reads may ignore pending bookings older than the grace window;
the reservation path never does (see domain.reservations).
"""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta

from psycopg2.extensions import cursor as PgCursor

from castlestay.infra.db import txn
from castlestay.infra.repositories.accommodations_repository import get_accommodations
from castlestay.infra.repositories.bookings_repository import ACTIVE_STATUSES
from castlestay.infra.settings import get_booking_settings
from castlestay.infra.time import as_utc, utc_now


class InvalidDateRangeError(ValueError):
    """Raised when check_in is not strictly before check_out."""


def validate_date_range(check_in: date, check_out: date) -> None:
    if check_in >= check_out:
        raise InvalidDateRangeError("check_in must be before check_out")


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Half-open overlap test."""
    return a_start < b_end and b_start < a_end


def count_overlapping(
    cur: PgCursor,
    accommodation_id: str,
    check_in: date,
    check_out: date,
    *,
    stale_before: datetime | None = None,
    exclude_booking_id: str | None = None,
) -> int:
    """Count bookings holding capacity on an accommodation over a range.

    Args:
        cur: Database cursor.
        accommodation_id: Accommodation UUID.
        check_in: Requested check-in (inclusive).
        check_out: Requested check-out (exclusive).
        stale_before: If set, pending bookings created before this instant
            are not counted (display mode only).
        exclude_booking_id: Booking to ignore.

    Returns:
        Number of overlapping pending/confirmed bookings.
    """
    conditions = [
        "accommodation_id = %s",
        "status = ANY(%s::booking_status[])",
        "check_in < %s",   # existing check_in < requested check_out
        "check_out > %s",  # existing check_out > requested check_in
    ]
    params: list = [accommodation_id, list(ACTIVE_STATUSES), check_out, check_in]

    if stale_before is not None:
        conditions.append("NOT (status = 'pending' AND created_at < %s)")
        params.append(stale_before)

    if exclude_booking_id is not None:
        conditions.append("id != %s")
        params.append(exclude_booking_id)

    where = " AND ".join(conditions)
    cur.execute(f"SELECT count(*) FROM bookings WHERE {where}", params)
    return cur.fetchone()[0]


def _pending_hold_stats(
    cur: PgCursor,
    accommodation_id: str,
    check_in: date,
    check_out: date,
    *,
    fresh_since: datetime,
) -> tuple[int, datetime | None]:
    """Fresh pending holds over the range and the oldest one's created_at."""
    cur.execute(
        """
        SELECT count(*), min(created_at)
        FROM bookings
        WHERE accommodation_id = %s
          AND status = 'pending'
          AND created_at >= %s
          AND check_in < %s
          AND check_out > %s
        """,
        (accommodation_id, fresh_since, check_out, check_in),
    )
    row = cur.fetchone()
    return row[0], row[1]


def get_availability(
    accommodation_ids: list[str],
    check_in: date,
    check_out: date,
    *,
    now: datetime | None = None,
    grace: timedelta | None = None,
) -> list[dict]:
    """Display availability for several accommodations.

    Read-only and eventually consistent: the answer may be stale by the time
    a reservation is attempted, which re-checks under a row lock.

    Args:
        accommodation_ids: Accommodation UUIDs. Unknown IDs are omitted.
        check_in: Check-in date (inclusive).
        check_out: Check-out date (exclusive).
        now: Clock reading (defaults to current UTC time).
        grace: Pending grace window (defaults to settings).

    Returns:
        List of dicts:
        {
            "accommodation_id": str,
            "is_available": bool,
            "available_capacity": int | None,  # None when unlimited
            "pending_holds": int,
            "minutes_until_release": int | None,
        }

    Raises:
        InvalidDateRangeError: If check_in >= check_out.
    """
    validate_date_range(check_in, check_out)

    now = as_utc(now) if now is not None else utc_now()
    if grace is None:
        grace = get_booking_settings().pending_grace
    stale_before = now - grace

    results = []
    with txn() as cur:
        for acc in get_accommodations(cur, accommodation_ids):
            acc_id = acc["id"]

            if acc["is_unlimited"]:
                results.append({
                    "accommodation_id": acc_id,
                    "is_available": True,
                    "available_capacity": None,
                    "pending_holds": 0,
                    "minutes_until_release": None,
                })
                continue

            held = count_overlapping(
                cur, acc_id, check_in, check_out, stale_before=stale_before
            )
            pending_holds, oldest_pending = _pending_hold_stats(
                cur, acc_id, check_in, check_out, fresh_since=stale_before
            )

            available = max(acc["inventory"] - held, 0)

            minutes_until_release = None
            if available == 0 and oldest_pending is not None:
                remaining = as_utc(oldest_pending) + grace - now
                minutes_until_release = max(
                    math.ceil(remaining.total_seconds() / 60), 0
                )

            results.append({
                "accommodation_id": acc_id,
                "is_available": available > 0,
                "available_capacity": available,
                "pending_holds": pending_holds,
                "minutes_until_release": minutes_until_release,
            })

    return results


def find_overbooked_nights(cur: PgCursor) -> list[dict]:
    """Audit query: nights where held bookings exceed inventory.

    Should always return an empty list; anything else is a data integrity
    incident.
    """
    cur.execute(
        """
        SELECT b.accommodation_id, n.night::date, count(*) AS held, a.inventory
        FROM bookings b
        JOIN accommodations a ON a.id = b.accommodation_id
        CROSS JOIN LATERAL generate_series(
            b.check_in::timestamp, (b.check_out - 1)::timestamp, interval '1 day'
        ) AS n(night)
        WHERE b.status IN ('pending', 'confirmed')
          AND NOT a.is_unlimited
        GROUP BY b.accommodation_id, n.night, a.inventory
        HAVING count(*) > a.inventory
        ORDER BY b.accommodation_id, n.night
        """
    )
    return [
        {
            "accommodation_id": str(row[0]),
            "night": row[1],
            "held": row[2],
            "inventory": row[3],
        }
        for row in cur.fetchall()
    ]
