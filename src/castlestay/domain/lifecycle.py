"""Booking lifecycle - pending -> confirmed / cancelled transitions.

confirmed and cancelled are terminal. Every transition runs under a
FOR UPDATE lock on the booking row and is guarded by status, so replays
and races between the user, the webhook worker and the expiry sweep are
no-ops instead of double transitions.

Credits are debited in the same transaction that confirms the booking:
either both happen or neither does.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from psycopg2.extensions import cursor as PgCursor

from castlestay.infra.db import db_now, for_update, txn
from castlestay.infra.repositories.bookings_repository import (
    amount_due_cents,
    get_booking,
    lock_booking,
    mark_cancelled,
    mark_confirmed,
)
from castlestay.infra.repositories.credits_repository import debit_for_booking
from castlestay.infra.repositories.outbox_repository import emit_booking_event
from castlestay.infra.repositories.payments_repository import (
    get_payment_by_provider_ref,
    get_payment_for_booking,
    update_payment_status,
)
from castlestay.infra.time import as_utc
from castlestay.observability.logging import get_logger
from castlestay.observability.redaction import id_prefix, safe_log_context

if TYPE_CHECKING:
    from castlestay.stripe.client import StripeClient

logger = get_logger(__name__)

CANCEL_REASON_USER = "user_cancelled"
CANCEL_REASON_PAYMENT_FAILED = "payment_failed"
CANCEL_REASON_EXPIRED = "expired"


class BookingNotFoundError(Exception):
    """Booking does not exist."""


class InvalidBookingStateError(Exception):
    """Requested transition is not allowed from the booking's status."""

    def __init__(self, booking_id: str, status: str, action: str) -> None:
        self.booking_id = booking_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} booking {booking_id} in status {status}")


class PaymentRefMismatchError(Exception):
    """Payment reference does not belong to this booking."""


class PaymentRequiredError(Exception):
    """Booking has an amount due and no payment reference was given."""


class PaymentNotCancellableError(Exception):
    """Payment succeeded (or is still settling), so the booking stays pending."""

    def __init__(self, booking_id: str, payment_status: str) -> None:
        self.booking_id = booking_id
        self.payment_status = payment_status
        super().__init__(
            f"Booking {booking_id} cannot be cancelled: payment is {payment_status}"
        )


def _confirm_locked(
    cur: PgCursor,
    booking: dict,
    payment_ref: str | None,
    correlation_id: str | None,
) -> dict:
    """Confirm a pending booking whose row is already locked."""
    booking_id = booking["id"]

    if amount_due_cents(booking) > 0 and payment_ref is None:
        raise PaymentRequiredError(f"Booking {booking_id} requires a payment reference")

    if booking["payment_ref"] and payment_ref and booking["payment_ref"] != payment_ref:
        raise PaymentRefMismatchError(
            f"Booking {booking_id} is linked to a different payment"
        )

    payment = None
    if payment_ref is not None:
        payment = get_payment_by_provider_ref(cur, payment_ref)
        if payment is not None and payment["booking_id"] != booking_id:
            raise PaymentRefMismatchError(
                f"Payment does not belong to booking {booking_id}"
            )

    credits_debited = debit_for_booking(
        cur,
        user_id=booking["user_id"],
        booking_id=booking_id,
        amount_cents=booking["credits_applied_cents"],
    )

    if payment is not None and payment["status"] != "succeeded":
        update_payment_status(cur, payment_id=payment["id"], status="succeeded")

    if not mark_confirmed(cur, booking_id=booking_id, payment_ref=payment_ref):
        # Row is locked and was pending; a failed guard means corrupted state
        raise InvalidBookingStateError(booking_id, "unknown", "confirm")

    emit_booking_event(
        cur,
        event_type="BOOKING_CONFIRMED",
        booking=booking,
        correlation_id=correlation_id,
        payment_id=payment["id"] if payment else None,
    )

    return {
        "status": "confirmed",
        "booking_id": booking_id,
        "payment_ref": payment_ref,
        "credits_debited": credits_debited,
    }


def confirm_booking(
    booking_id: str,
    payment_ref: str | None,
    *,
    correlation_id: str | None = None,
) -> dict:
    """Confirm a booking after verified payment success.

    Idempotent: confirming an already-confirmed booking with the same
    payment reference returns {"status": "already_confirmed"} and changes
    nothing (credits are not debited twice).

    Args:
        booking_id: Booking UUID.
        payment_ref: External payment reference (PaymentIntent ID). May be
            None only when nothing is due after credits.
        correlation_id: Optional correlation ID for tracing.

    Returns:
        Dict with status ("confirmed" | "already_confirmed") and booking_id.

    Raises:
        BookingNotFoundError: If booking does not exist.
        InvalidBookingStateError: If booking is cancelled.
        PaymentRefMismatchError: If confirmed/linked with another payment.
        PaymentRequiredError: If an amount is due and payment_ref is None.
        InsufficientCreditsError: If the credit debit cannot be covered.
    """
    with txn() as cur:
        booking = lock_booking(cur, booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking not found: {booking_id}")

        if booking["status"] == "confirmed":
            if booking["payment_ref"] != payment_ref:
                raise PaymentRefMismatchError(
                    f"Booking {booking_id} already confirmed with a different payment"
                )
            return {
                "status": "already_confirmed",
                "booking_id": booking_id,
                "payment_ref": payment_ref,
                "credits_debited": False,
            }

        if booking["status"] != "pending":
            raise InvalidBookingStateError(booking_id, booking["status"], "confirm")

        result = _confirm_locked(cur, booking, payment_ref, correlation_id)

    logger.info(
        "booking confirmed",
        extra={
            "extra_fields": safe_log_context(
                booking_id_prefix=id_prefix(booking_id),
                payment_ref_prefix=id_prefix(payment_ref),
                credits_debited=result["credits_debited"],
            )
        },
    )
    return result


def _void_payment(
    cur: PgCursor,
    booking_id: str,
    payment: dict,
    stripe_client: StripeClient,
    correlation_id: str | None,
) -> str:
    """Cancel the booking's PaymentIntent while its row lock is held.

    Returns the intent status Stripe reports; only "canceled" means no
    charge can land on the booking any more.
    """
    intent = stripe_client.cancel_payment_intent(
        payment["provider_ref"], correlation_id=correlation_id
    )
    if intent["status"] == "canceled":
        update_payment_status(cur, payment_id=payment["id"], status="canceled")
    else:
        logger.warning(
            "payment intent could not be cancelled",
            extra={
                "extra_fields": safe_log_context(
                    booking_id_prefix=id_prefix(booking_id),
                    payment_ref_prefix=id_prefix(payment["provider_ref"]),
                    intent_status=intent["status"],
                )
            },
        )
    return intent["status"]


def cancel_booking(
    booking_id: str,
    *,
    stripe_client: StripeClient,
    reason: str = CANCEL_REASON_USER,
    actor: str | None = None,
    correlation_id: str | None = None,
) -> dict:
    """Cancel a pending booking, releasing its capacity.

    A booking whose payment already succeeded is never cancelled; the
    webhook or the sweep will confirm it. Otherwise its PaymentIntent is
    cancelled first so a late charge cannot land on a cancelled booking.

    Returns:
        {"status": "cancelled"} or {"status": "noop"} if already cancelled.

    Raises:
        BookingNotFoundError: If booking does not exist.
        InvalidBookingStateError: If booking is confirmed.
        PaymentNotCancellableError: If the payment succeeded or Stripe
            refused to cancel the intent.
    """
    with txn() as cur:
        booking = lock_booking(cur, booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking not found: {booking_id}")

        if booking["status"] == "cancelled":
            return {"status": "noop", "booking_id": booking_id}
        if booking["status"] != "pending":
            raise InvalidBookingStateError(booking_id, booking["status"], "cancel")

        payment = get_payment_for_booking(cur, booking_id)
        if payment is not None:
            if payment["status"] == "succeeded":
                raise PaymentNotCancellableError(booking_id, payment["status"])
            if payment["status"] != "canceled":
                intent_status = _void_payment(
                    cur, booking_id, payment, stripe_client, correlation_id
                )
                if intent_status != "canceled":
                    raise PaymentNotCancellableError(booking_id, intent_status)

        mark_cancelled(cur, booking_id=booking_id, reason=reason)
        emit_booking_event(
            cur,
            event_type="BOOKING_CANCELLED",
            booking=booking,
            correlation_id=correlation_id,
            reason=reason,
            actor=actor,
        )

    logger.info(
        "booking cancelled",
        extra={
            "extra_fields": safe_log_context(
                booking_id_prefix=id_prefix(booking_id),
                reason=reason,
            )
        },
    )
    return {"status": "cancelled", "booking_id": booking_id, "reason": reason}


def fail_booking_payment(
    booking_id: str,
    payment_ref: str,
    *,
    stripe_client: StripeClient,
    correlation_id: str | None = None,
) -> dict:
    """Record a failed payment and cancel the pending booking.

    A failed attempt is not final in Stripe: the customer may retry on the
    same intent. The intent is cancelled before the booking is, and if it
    turns out to have succeeded in the meantime the booking is left pending
    for the succeeded event to confirm.

    Returns:
        {"status": "cancelled"}, {"status": "payment_succeeded"} when the
        payment went through after all, or {"status": "noop"} when the
        booking is no longer pending.
    """
    with txn() as cur:
        booking = lock_booking(cur, booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking not found: {booking_id}")

        payment = get_payment_by_provider_ref(cur, payment_ref)
        if payment is not None and payment["booking_id"] != booking_id:
            raise PaymentRefMismatchError(
                f"Payment does not belong to booking {booking_id}"
            )

        if booking["status"] != "pending":
            return {"status": "noop", "booking_id": booking_id}

        if payment is not None and payment["status"] == "succeeded":
            return {"status": "payment_succeeded", "booking_id": booking_id}

        if payment is not None:
            intent_status = _void_payment(
                cur, booking_id, payment, stripe_client, correlation_id
            )
            if intent_status == "succeeded":
                return {"status": "payment_succeeded", "booking_id": booking_id}
            if intent_status != "canceled":
                raise PaymentNotCancellableError(booking_id, intent_status)

        mark_cancelled(cur, booking_id=booking_id, reason=CANCEL_REASON_PAYMENT_FAILED)
        emit_booking_event(
            cur,
            event_type="BOOKING_CANCELLED",
            booking=booking,
            correlation_id=correlation_id,
            reason=CANCEL_REASON_PAYMENT_FAILED,
        )

    logger.info(
        "booking cancelled after payment failure",
        extra={
            "extra_fields": safe_log_context(
                booking_id_prefix=id_prefix(booking_id),
                payment_ref_prefix=id_prefix(payment_ref),
            )
        },
    )
    return {
        "status": "cancelled",
        "booking_id": booking_id,
        "reason": CANCEL_REASON_PAYMENT_FAILED,
    }


def expire_pending_booking(
    booking_id: str,
    *,
    grace: timedelta,
    skip_locked: bool = False,
    correlation_id: str | None = None,
) -> dict:
    """Cancel a pending booking whose grace window has passed.

    A booking whose payment record already succeeded is NOT cancelled:
    money has moved, so it is handed back as "payment_succeeded" for the
    caller to finalize.

    Returns:
        Dict with status:
        - {"status": "noop"} - booking not found or not pending
        - {"status": "skipped"} - row locked by another transaction
        - {"status": "not_expired_yet"}
        - {"status": "payment_succeeded", "payment_ref", "amount_cents"}
        - {"status": "expired"}
    """
    with txn() as cur:
        if skip_locked:
            row = for_update(
                cur,
                "SELECT id FROM bookings WHERE id = %s AND status = 'pending'",
                (booking_id,),
                skip_locked=True,
            )
            if row is None:
                return {"status": "skipped", "booking_id": booking_id}

        booking = lock_booking(cur, booking_id)
        if booking is None or booking["status"] != "pending":
            return {"status": "noop", "booking_id": booking_id}

        now = db_now(cur)
        if as_utc(now) < as_utc(booking["created_at"]) + grace:
            return {"status": "not_expired_yet", "booking_id": booking_id}

        payment = get_payment_for_booking(cur, booking_id)
        if payment is not None and payment["status"] == "succeeded":
            return {
                "status": "payment_succeeded",
                "booking_id": booking_id,
                "payment_ref": payment["provider_ref"],
                "amount_cents": payment["amount_cents"],
            }

        mark_cancelled(cur, booking_id=booking_id, reason=CANCEL_REASON_EXPIRED)
        emit_booking_event(
            cur,
            event_type="BOOKING_EXPIRED",
            booking=booking,
            correlation_id=correlation_id,
            reason=CANCEL_REASON_EXPIRED,
        )

    logger.info(
        "pending booking expired",
        extra={"extra_fields": safe_log_context(booking_id_prefix=id_prefix(booking_id))},
    )
    return {"status": "expired", "booking_id": booking_id}


def is_confirmed_with(booking_id: str, payment_ref: str | None) -> bool:
    """True if the booking is already confirmed with this payment reference."""
    with txn() as cur:
        booking = get_booking(cur, booking_id)
    return (
        booking is not None
        and booking["status"] == "confirmed"
        and booking["payment_ref"] == payment_ref
    )


def record_payment_succeeded(payment_ref: str) -> dict | None:
    """Mark a payment record succeeded in its own short transaction.

    Committed before any attempt to confirm the booking, so the expiry
    sweep can see that money moved even if confirmation keeps failing.

    Returns:
        The payment dict, or None if no payment has this reference.
    """
    with txn() as cur:
        payment = get_payment_by_provider_ref(cur, payment_ref)
        if payment is None:
            return None
        if payment["status"] != "succeeded":
            update_payment_status(cur, payment_id=payment["id"], status="succeeded")
            payment["status"] = "succeeded"
    return payment
