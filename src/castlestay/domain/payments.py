"""Payment domain logic.

Creates idempotent Stripe PaymentIntents tied to pending bookings and links
the booking to its payment record so later confirmation can find it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from castlestay.domain.lifecycle import BookingNotFoundError, InvalidBookingStateError
from castlestay.infra.db import txn
from castlestay.infra.repositories.bookings_repository import (
    amount_due_cents,
    get_booking,
    set_payment_ref,
)
from castlestay.infra.repositories.payments_repository import (
    get_payment_for_booking,
    insert_payment,
)
from castlestay.observability.logging import get_logger
from castlestay.observability.redaction import id_prefix, safe_log_context

if TYPE_CHECKING:
    from castlestay.stripe.client import StripeClient

logger = get_logger(__name__)


class NothingToPayError(Exception):
    """Booking has no amount due after credits."""


def _get_idempotency_key(booking_id: str) -> str:
    """Deterministic idempotency key for a booking's PaymentIntent."""
    return f"booking:{booking_id}:payment_intent"


def attach_payment(
    booking_id: str,
    *,
    stripe_client: StripeClient,
    currency: str,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Create (or reuse) the PaymentIntent for a pending booking.

    If a payment already exists for the booking, the existing intent is
    retrieved instead of creating a new one.

    Returns:
        Dict with payment_id, payment_intent_id, client_secret, amount_cents
        and created flag.

    Raises:
        BookingNotFoundError: If booking does not exist.
        InvalidBookingStateError: If booking is not pending.
        NothingToPayError: If nothing is due after credits.
    """
    with txn() as cur:
        booking = get_booking(cur, booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking not found: {booking_id}")
        if booking["status"] != "pending":
            raise InvalidBookingStateError(booking_id, booking["status"], "pay")

        amount = amount_due_cents(booking)
        if amount <= 0:
            raise NothingToPayError(f"Booking {booking_id} has nothing to pay")

        existing = get_payment_for_booking(cur, booking_id)

    if existing is not None:
        intent = stripe_client.retrieve_payment_intent(
            existing["provider_ref"], correlation_id=correlation_id
        )
        logger.info(
            "payment intent reused",
            extra={
                "extra_fields": safe_log_context(
                    booking_id_prefix=id_prefix(booking_id),
                    payment_id=existing["id"],
                )
            },
        )
        return {
            "payment_id": existing["id"],
            "payment_intent_id": existing["provider_ref"],
            "client_secret": intent["client_secret"],
            "amount_cents": existing["amount_cents"],
            "currency": existing["currency"],
            "created": False,
        }

    # Stripe call outside the transaction; the idempotency key makes a
    # concurrent duplicate return the same intent.
    intent = stripe_client.create_payment_intent(
        amount_cents=amount,
        currency=currency,
        idempotency_key=_get_idempotency_key(booking_id),
        metadata={"booking_id": booking_id},
        correlation_id=correlation_id,
    )

    with txn() as cur:
        payment, created = insert_payment(
            cur,
            booking_id=booking_id,
            provider_ref=intent["payment_intent_id"],
            amount_cents=amount,
            currency=currency,
        )
        set_payment_ref(cur, booking_id=booking_id, payment_ref=payment["provider_ref"])

    logger.info(
        "payment intent attached",
        extra={
            "extra_fields": safe_log_context(
                booking_id_prefix=id_prefix(booking_id),
                payment_id=payment["id"],
                created=created,
            )
        },
    )

    return {
        "payment_id": payment["id"],
        "payment_intent_id": payment["provider_ref"],
        "client_secret": intent["client_secret"],
        "amount_cents": payment["amount_cents"],
        "currency": payment["currency"],
        "created": created,
    }
