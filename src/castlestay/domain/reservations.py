"""Reservation coordinator - transactional capacity reservation.

Guarantees that at most `inventory` pending/confirmed bookings overlap any
requested range of a capacity-limited accommodation.

Protocol (one short transaction):
1. SELECT ... FOR UPDATE on the accommodation row. Concurrent reservations
   for the same accommodation queue here instead of interleaving.
2. Recount overlapping pending/confirmed bookings (no grace exclusion).
3. Reject with NoAvailabilityError when nothing is left.
4. Insert the pending booking and its outbox event; commit releases the lock.

Payment happens after the lock is released, against the pending row.
"""

from datetime import date

from psycopg2.extensions import cursor as PgCursor

from castlestay.domain.availability import count_overlapping, validate_date_range
from castlestay.domain.pricing import InvalidPriceError, PriceQuote
from castlestay.infra.db import txn
from castlestay.infra.repositories.accommodations_repository import get_accommodation
from castlestay.infra.repositories.bookings_repository import (
    amount_due_cents,
    find_by_idempotency_key,
    get_booking,
    insert_booking,
)
from castlestay.infra.repositories.credits_repository import (
    InsufficientCreditsError,
    get_balance,
    pending_credits_cents,
)
from castlestay.infra.repositories.outbox_repository import emit_booking_event
from castlestay.infra.settings import get_booking_settings
from castlestay.observability.logging import get_logger
from castlestay.observability.redaction import id_prefix, safe_log_context
from castlestay.tasks.client import TasksClient

logger = get_logger(__name__)

# Module-level tasks client (singleton for dev)
_tasks_client = TasksClient()


def _get_tasks_client() -> TasksClient:
    """Get tasks client (allows override in tests)."""
    return _tasks_client


class NoAvailabilityError(Exception):
    """Raised when no capacity is left for the requested range."""

    def __init__(self, accommodation_id: str, check_in: date, check_out: date) -> None:
        self.accommodation_id = accommodation_id
        self.check_in = check_in
        self.check_out = check_out
        super().__init__(
            f"No availability for {accommodation_id} ({check_in} to {check_out})"
        )


class AccommodationNotFoundError(Exception):
    """Accommodation does not exist."""


class AccommodationNotBookableError(Exception):
    """Accommodation is sold through the auction, not by reservation."""


class IdempotencyConflictError(Exception):
    """Idempotency key reused for a different accommodation or stay."""


def _validate(
    check_in: date,
    check_out: date,
    quote: PriceQuote,
    credits_applied_cents: int,
) -> None:
    validate_date_range(check_in, check_out)
    if quote.total_cents < 0:
        raise InvalidPriceError("total price cannot be negative")
    if credits_applied_cents < 0:
        raise InvalidPriceError("credits_applied_cents cannot be negative")
    if credits_applied_cents > quote.total_cents:
        raise InvalidPriceError("credits_applied_cents exceeds total price")


def _booking_result(booking: dict, *, created: bool) -> dict:
    return {
        "booking_id": booking["id"],
        "accommodation_id": booking["accommodation_id"],
        "status": booking["status"],
        "check_in": booking["check_in"],
        "check_out": booking["check_out"],
        "total_price_cents": booking["total_price_cents"],
        "credits_applied_cents": booking["credits_applied_cents"],
        "amount_due_cents": amount_due_cents(booking),
        "created_at": booking["created_at"],
        "created": created,
    }


def _reserve_locked(
    cur: PgCursor,
    *,
    accommodation_id: str,
    user_id: str,
    check_in: date,
    check_out: date,
    quote: PriceQuote,
    credits_applied_cents: int,
    idempotency_key: str | None,
    correlation_id: str | None,
) -> dict:
    # Step 1: Lock accommodation row
    acc = get_accommodation(cur, accommodation_id, lock=True)
    if acc is None:
        raise AccommodationNotFoundError(f"Accommodation not found: {accommodation_id}")
    if acc["is_in_auction"]:
        raise AccommodationNotBookableError(
            f"Accommodation {accommodation_id} is sold by auction"
        )

    # Idempotent replay (checked under the lock, so same-key races serialize)
    if idempotency_key is not None:
        existing = find_by_idempotency_key(
            cur, user_id=user_id, idempotency_key=idempotency_key
        )
        if existing is not None:
            if (
                str(existing["accommodation_id"]) != str(accommodation_id)
                or existing["check_in"] != check_in
                or existing["check_out"] != check_out
            ):
                raise IdempotencyConflictError(
                    f"Idempotency key already used for booking {existing['id']}"
                )
            return _booking_result(existing, created=False)

    # Step 2-3: Authoritative recount
    if not acc["is_unlimited"]:
        held = count_overlapping(cur, accommodation_id, check_in, check_out)
        if acc["inventory"] - held <= 0:
            raise NoAvailabilityError(accommodation_id, check_in, check_out)

    # Credits promised to other pending bookings are not spendable twice
    if credits_applied_cents > 0:
        available = get_balance(cur, user_id, lock=True) - pending_credits_cents(cur, user_id)
        if available < credits_applied_cents:
            raise InsufficientCreditsError(
                "Credit balance does not cover credits_applied_cents"
            )

    # Step 4: Insert pending booking
    booking_id, created = insert_booking(
        cur,
        accommodation_id=accommodation_id,
        user_id=user_id,
        check_in=check_in,
        check_out=check_out,
        total_price_cents=quote.total_cents,
        base_cost_cents=quote.base_cost_cents,
        seasonal_discount_pct=quote.seasonal_discount_pct,
        duration_discount_pct=quote.duration_discount_pct,
        seasonal_discount_cents=quote.seasonal_discount_cents,
        duration_discount_cents=quote.duration_discount_cents,
        credits_applied_cents=credits_applied_cents,
        idempotency_key=idempotency_key,
    )
    if booking_id is None:
        raise RuntimeError("Failed to create booking")

    booking = get_booking(cur, booking_id)

    if created:
        emit_booking_event(
            cur,
            event_type="BOOKING_CREATED",
            booking=booking,
            correlation_id=correlation_id,
            nights=quote.nights,
        )

    return _booking_result(booking, created=created)


def reserve(
    *,
    accommodation_id: str,
    user_id: str,
    check_in: date,
    check_out: date,
    quote: PriceQuote,
    credits_applied_cents: int = 0,
    idempotency_key: str | None = None,
    correlation_id: str | None = None,
    cur: PgCursor | None = None,
) -> dict:
    """Reserve capacity on an accommodation as a pending booking.

    Across N concurrent callers for overlapping ranges on an accommodation
    with inventory K, exactly min(N, K) succeed.

    Args:
        accommodation_id: Accommodation UUID.
        user_id: Booking owner (auth subject).
        check_in: Check-in date (inclusive).
        check_out: Check-out date (exclusive).
        quote: Price breakdown persisted on the booking.
        credits_applied_cents: Stored credits to apply at confirmation.
        idempotency_key: Optional client key; a replay with the same
            (user_id, key) returns the original booking; a replay for a
            different accommodation or stay raises IdempotencyConflictError.
        correlation_id: Optional correlation ID for tracing.
        cur: Optional cursor to run inside a caller's transaction.

    Returns:
        Dict with booking_id, status, amounts and created flag.

    Raises:
        InvalidDateRangeError: If check_in >= check_out.
        InvalidPriceError: If price or credits are unusable.
        AccommodationNotFoundError: If the accommodation does not exist.
        AccommodationNotBookableError: If it is an auction item.
        InsufficientCreditsError: If the balance cannot cover the credits
            after credits promised to the user's other pending bookings.
        NoAvailabilityError: If capacity is exhausted for the range.
        IdempotencyConflictError: If the key was used for another stay.
    """
    _validate(check_in, check_out, quote, credits_applied_cents)

    kwargs = dict(
        accommodation_id=accommodation_id,
        user_id=user_id,
        check_in=check_in,
        check_out=check_out,
        quote=quote,
        credits_applied_cents=credits_applied_cents,
        idempotency_key=idempotency_key,
        correlation_id=correlation_id,
    )
    try:
        if cur is not None:
            result = _reserve_locked(cur, **kwargs)
        else:
            with txn() as c:
                result = _reserve_locked(c, **kwargs)
    except NoAvailabilityError:
        logger.info(
            "reservation rejected: no availability",
            extra={
                "extra_fields": safe_log_context(
                    accommodation_id=accommodation_id,
                    check_in=check_in,
                    check_out=check_out,
                )
            },
        )
        raise

    logger.info(
        "booking reserved",
        extra={
            "extra_fields": safe_log_context(
                booking_id_prefix=id_prefix(result["booking_id"]),
                accommodation_id=accommodation_id,
                created=result["created"],
                amount_due_cents=result["amount_due_cents"],
            )
        },
    )

    # Schedule expiration (outside transaction). Idempotent by task_id.
    grace = get_booking_settings().pending_grace
    booking_id = result["booking_id"]
    task_id = f"expire-booking:{booking_id}"
    _get_tasks_client().enqueue_http(
        task_id=task_id,
        url_path="/tasks/bookings/expire",
        payload={
            "booking_id": booking_id,
            "task_id": task_id,
            "correlation_id": correlation_id,
        },
        correlation_id=correlation_id,
        schedule_time=result["created_at"] + grace,
    )

    return result
