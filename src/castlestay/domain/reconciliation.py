"""Payment reconciliation - paid-but-not-booked handling and expiry sweep.

The most dangerous failure in the system is money captured for a booking
that never reaches `confirmed`. finalize_paid_booking retries confirmation
a bounded number of times, checks between attempts whether another path
(webhook worker, user confirm call) already finalized the same payment,
and when it gives up records a booking_alerts row, logs at CRITICAL and
raises PaymentSucceededBookingFailedError.
"""

from __future__ import annotations

import time
from datetime import timedelta

import psycopg2

from castlestay.domain.lifecycle import (
    BookingNotFoundError,
    InvalidBookingStateError,
    PaymentRefMismatchError,
    PaymentRequiredError,
    confirm_booking,
    expire_pending_booking,
    is_confirmed_with,
    record_payment_succeeded,
)
from castlestay.infra.db import db_now, txn
from castlestay.infra.repositories.alerts_repository import insert_booking_alert
from castlestay.infra.repositories.bookings_repository import lock_stale_pending_bookings
from castlestay.infra.repositories.credits_repository import InsufficientCreditsError
from castlestay.infra.settings import get_booking_settings
from castlestay.observability.logging import get_logger
from castlestay.observability.redaction import id_prefix, safe_log_context

logger = get_logger(__name__)

RETRY_BACKOFF_SECONDS = 0.2

# Errors that retrying cannot fix
_PERMANENT_ERRORS = (
    BookingNotFoundError,
    InvalidBookingStateError,
    PaymentRefMismatchError,
    PaymentRequiredError,
    InsufficientCreditsError,
)


class PaymentSucceededBookingFailedError(Exception):
    """Payment was captured but the booking could not be confirmed."""

    error_code = "payment_succeeded_booking_failed"

    def __init__(
        self,
        booking_id: str,
        payment_ref: str,
        amount_cents: int,
        attempts: int,
        cause: BaseException | None = None,
    ) -> None:
        self.booking_id = booking_id
        self.payment_ref = payment_ref
        self.amount_cents = amount_cents
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"Payment {payment_ref} succeeded but booking {booking_id} "
            f"was not confirmed after {attempts} attempt(s)"
        )


def _sleep(seconds: float) -> None:
    """Backoff sleep (patched in tests)."""
    time.sleep(seconds)


def _escalate(
    *,
    booking_id: str,
    payment_ref: str,
    amount_cents: int,
    attempts: int,
    error: BaseException | None,
    correlation_id: str | None,
) -> PaymentSucceededBookingFailedError:
    """Record the operator alert and log at CRITICAL."""
    alert_id = None
    try:
        with txn() as cur:
            alert_id = insert_booking_alert(
                cur,
                booking_id=booking_id,
                payment_ref=payment_ref,
                amount_cents=amount_cents,
                error_class=type(error).__name__ if error else "Unknown",
                detail=str(error) if error else None,
                attempts=attempts,
            )
    except psycopg2.Error:
        # The CRITICAL log below is the alert of last resort
        logger.exception(
            "failed to persist booking alert",
            extra={"extra_fields": safe_log_context(booking_id_prefix=id_prefix(booking_id))},
        )

    logger.critical(
        "payment succeeded but booking failed",
        extra={
            "extra_fields": safe_log_context(
                error_code=PaymentSucceededBookingFailedError.error_code,
                booking_id=booking_id,
                payment_ref_prefix=id_prefix(payment_ref),
                amount_cents=amount_cents,
                attempts=attempts,
                alert_id=alert_id,
                error_class=type(error).__name__ if error else None,
                correlationId=correlation_id,
            )
        },
    )
    return PaymentSucceededBookingFailedError(
        booking_id, payment_ref, amount_cents, attempts, error
    )


def finalize_paid_booking(
    booking_id: str,
    payment_ref: str,
    amount_cents: int,
    *,
    max_attempts: int | None = None,
    correlation_id: str | None = None,
) -> dict:
    """Confirm a booking whose payment has already succeeded.

    Args:
        booking_id: Booking UUID.
        payment_ref: Succeeded payment reference (PaymentIntent ID).
        amount_cents: Captured amount (for the alert record).
        max_attempts: Bounded retries (defaults to RECONCILE_MAX_ATTEMPTS).
        correlation_id: Optional correlation ID for tracing.

    Returns:
        Result of confirm_booking, or {"status": "already_confirmed"} when a
        concurrent path finalized the same payment.

    Raises:
        PaymentSucceededBookingFailedError: When confirmation cannot be
            achieved. An alert has been recorded before raising.
    """
    if max_attempts is None:
        max_attempts = get_booking_settings().reconcile_max_attempts

    try:
        record_payment_succeeded(payment_ref)
    except psycopg2.Error:
        logger.warning(
            "could not mark payment succeeded before finalize",
            extra={"extra_fields": safe_log_context(payment_ref_prefix=id_prefix(payment_ref))},
        )

    last_error: BaseException | None = None
    attempts = 0

    while attempts < max_attempts:
        attempts += 1
        try:
            return confirm_booking(
                booking_id, payment_ref, correlation_id=correlation_id
            )
        except _PERMANENT_ERRORS as e:
            last_error = e
            break
        except psycopg2.Error as e:
            last_error = e
            logger.warning(
                "finalize attempt failed",
                extra={
                    "extra_fields": safe_log_context(
                        booking_id_prefix=id_prefix(booking_id),
                        attempt=attempts,
                        max_attempts=max_attempts,
                        error_class=type(e).__name__,
                    )
                },
            )

        # Another path may have landed the same confirmation meanwhile
        try:
            if is_confirmed_with(booking_id, payment_ref):
                return {
                    "status": "already_confirmed",
                    "booking_id": booking_id,
                    "payment_ref": payment_ref,
                    "credits_debited": False,
                }
        except psycopg2.Error as e:
            last_error = e

        if attempts < max_attempts:
            _sleep(RETRY_BACKOFF_SECONDS * attempts)

    raise _escalate(
        booking_id=booking_id,
        payment_ref=payment_ref,
        amount_cents=amount_cents,
        attempts=attempts,
        error=last_error,
        correlation_id=correlation_id,
    )


def reconcile_pending_booking(
    booking_id: str,
    *,
    grace: timedelta,
    skip_locked: bool = False,
    max_attempts: int | None = None,
    correlation_id: str | None = None,
) -> dict:
    """Expire a pending booking past its grace window, or finalize it if paid."""
    result = expire_pending_booking(
        booking_id,
        grace=grace,
        skip_locked=skip_locked,
        correlation_id=correlation_id,
    )
    if result["status"] != "payment_succeeded":
        return result

    return finalize_paid_booking(
        booking_id,
        result["payment_ref"],
        result["amount_cents"],
        max_attempts=max_attempts,
        correlation_id=correlation_id,
    )


def expire_stale_pending_bookings(
    *,
    grace: timedelta | None = None,
    limit: int = 100,
    max_attempts: int | None = None,
    correlation_id: str | None = None,
) -> dict:
    """Sweep pending bookings older than the grace window.

    Candidates are selected with FOR UPDATE SKIP LOCKED so rows being
    confirmed or cancelled right now are left alone; each candidate is then
    handled in its own transaction so one failure does not roll back the
    rest of the batch.

    Returns:
        Counts: {"expired", "confirmed", "skipped", "alerted", "failed"}.
    """
    if grace is None:
        grace = get_booking_settings().pending_grace

    with txn() as cur:
        now = db_now(cur)
        candidates = [
            b["id"]
            for b in lock_stale_pending_bookings(
                cur, created_before=now - grace, limit=limit
            )
        ]

    counts = {"expired": 0, "confirmed": 0, "skipped": 0, "alerted": 0, "failed": 0}

    for booking_id in candidates:
        try:
            result = reconcile_pending_booking(
                booking_id,
                grace=grace,
                skip_locked=True,
                max_attempts=max_attempts,
                correlation_id=correlation_id,
            )
        except PaymentSucceededBookingFailedError:
            # Already recorded in booking_alerts and logged at CRITICAL
            counts["alerted"] += 1
            continue
        except psycopg2.Error:
            logger.exception(
                "expire sweep failed for booking",
                extra={"extra_fields": safe_log_context(booking_id_prefix=id_prefix(booking_id))},
            )
            counts["failed"] += 1
            continue

        status = result["status"]
        if status == "expired":
            counts["expired"] += 1
        elif status in ("confirmed", "already_confirmed"):
            counts["confirmed"] += 1
        else:
            counts["skipped"] += 1

    logger.info(
        "expire sweep completed",
        extra={
            "extra_fields": safe_log_context(candidates=len(candidates), **counts)
        },
    )
    return counts
