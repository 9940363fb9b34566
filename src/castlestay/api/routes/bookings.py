"""Booking endpoints: reserve, pay, confirm, cancel.

The server always recomputes the price from the accommodation's base rate;
clients never submit amounts.
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from castlestay.api.auth import CurrentUser, get_current_user
from castlestay.domain.availability import InvalidDateRangeError
from castlestay.domain.lifecycle import (
    BookingNotFoundError,
    InvalidBookingStateError,
    PaymentNotCancellableError,
    PaymentRefMismatchError,
    cancel_booking,
    confirm_booking,
)
from castlestay.domain.payments import NothingToPayError, attach_payment
from castlestay.domain.pricing import InvalidPriceError, compute_pricing
from castlestay.domain.reconciliation import (
    PaymentSucceededBookingFailedError,
    finalize_paid_booking,
)
from castlestay.domain.reservations import (
    AccommodationNotBookableError,
    AccommodationNotFoundError,
    IdempotencyConflictError,
    NoAvailabilityError,
    reserve,
)
from castlestay.infra.db import txn
from castlestay.infra.repositories.accommodations_repository import get_accommodation
from castlestay.infra.repositories.bookings_repository import amount_due_cents, get_booking
from castlestay.infra.repositories.credits_repository import InsufficientCreditsError
from castlestay.infra.settings import get_booking_settings
from castlestay.observability.correlation import get_correlation_id
from castlestay.observability.logging import get_logger
from castlestay.observability.redaction import id_prefix, safe_log_context
from castlestay.stripe.client import StripeClient

router = APIRouter(prefix="/bookings", tags=["bookings"])

logger = get_logger(__name__)


class CreateBookingRequest(BaseModel):
    accommodation_id: str
    check_in: date
    check_out: date
    credits_applied_cents: int = Field(default=0, ge=0)


class ConfirmBookingRequest(BaseModel):
    payment_intent_id: str | None = None


class CancelBookingRequest(BaseModel):
    reason: str | None = None


def _get_stripe_client() -> StripeClient:
    """Get Stripe client (allows override in tests)."""
    return StripeClient()


def _serialize_booking(booking: dict) -> dict:
    return {
        "id": booking["id"],
        "accommodation_id": booking["accommodation_id"],
        "status": booking["status"],
        "check_in": booking["check_in"].isoformat(),
        "check_out": booking["check_out"].isoformat(),
        "total_price_cents": booking["total_price_cents"],
        "base_cost_cents": booking["base_cost_cents"],
        "seasonal_discount_pct": str(booking["seasonal_discount_pct"]),
        "duration_discount_pct": str(booking["duration_discount_pct"]),
        "seasonal_discount_cents": booking["seasonal_discount_cents"],
        "duration_discount_cents": booking["duration_discount_cents"],
        "credits_applied_cents": booking["credits_applied_cents"],
        "amount_due_cents": amount_due_cents(booking),
        "payment_ref": booking["payment_ref"],
        "cancel_reason": booking["cancel_reason"],
    }


def _get_owned_booking(booking_id: str, user: CurrentUser) -> dict:
    """Load a booking of the current user; other users' bookings are 404."""
    with txn() as cur:
        booking = get_booking(cur, booking_id)
    if booking is None or booking["user_id"] != user.id:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking


@router.post("", status_code=201)
def create_booking(
    body: CreateBookingRequest,
    user: CurrentUser = Depends(get_current_user),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
) -> dict:
    """Reserve an accommodation as a pending booking.

    Bookings with nothing due after credits are confirmed immediately.
    """
    correlation_id = get_correlation_id()

    with txn() as cur:
        acc = get_accommodation(cur, body.accommodation_id)
    if acc is None:
        raise HTTPException(status_code=404, detail="Accommodation not found")

    quote = compute_pricing(
        acc["base_price_cents"],
        body.check_in,
        body.check_out,
        title=acc["title"],
        category=acc["category"],
    )

    try:
        result = reserve(
            accommodation_id=body.accommodation_id,
            user_id=user.id,
            check_in=body.check_in,
            check_out=body.check_out,
            quote=quote,
            credits_applied_cents=body.credits_applied_cents,
            idempotency_key=idempotency_key,
            correlation_id=correlation_id,
        )
    except (InvalidDateRangeError, InvalidPriceError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InsufficientCreditsError:
        raise HTTPException(status_code=400, detail="insufficient_credits")
    except AccommodationNotFoundError:
        raise HTTPException(status_code=404, detail="Accommodation not found")
    except AccommodationNotBookableError:
        raise HTTPException(status_code=409, detail="accommodation_in_auction")
    except NoAvailabilityError:
        raise HTTPException(status_code=409, detail="no_availability")
    except IdempotencyConflictError:
        raise HTTPException(status_code=409, detail="idempotency_key_reused")

    status = result["status"]
    if status == "pending" and result["amount_due_cents"] == 0:
        try:
            confirm_booking(result["booking_id"], None, correlation_id=correlation_id)
        except InsufficientCreditsError:
            raise HTTPException(status_code=400, detail="insufficient_credits")
        status = "confirmed"

    return {
        "booking_id": result["booking_id"],
        "status": status,
        "created": result["created"],
        "total_price_cents": result["total_price_cents"],
        "credits_applied_cents": result["credits_applied_cents"],
        "amount_due_cents": result["amount_due_cents"],
        "quote": quote.as_dict(),
    }


@router.get("/{booking_id}")
def read_booking(
    booking_id: str,
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    return _serialize_booking(_get_owned_booking(booking_id, user))


@router.post("/{booking_id}/payment-intent")
def create_payment_intent(
    booking_id: str,
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Create (or reuse) the Stripe PaymentIntent for a pending booking."""
    _get_owned_booking(booking_id, user)

    try:
        result = attach_payment(
            booking_id,
            stripe_client=_get_stripe_client(),
            currency=get_booking_settings().currency,
            correlation_id=get_correlation_id(),
        )
    except InvalidBookingStateError as e:
        raise HTTPException(status_code=409, detail=f"booking_{e.status}")
    except NothingToPayError:
        raise HTTPException(status_code=409, detail="nothing_to_pay")

    return result


@router.post("/{booking_id}/confirm")
def confirm(
    booking_id: str,
    body: ConfirmBookingRequest,
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Confirm a booking after the client-side payment step.

    The PaymentIntent is re-read from Stripe; the client's word that it
    paid is never trusted.
    """
    correlation_id = get_correlation_id()
    booking = _get_owned_booking(booking_id, user)
    due = amount_due_cents(booking)

    try:
        if due == 0:
            return confirm_booking(booking_id, None, correlation_id=correlation_id)

        if not body.payment_intent_id:
            raise HTTPException(status_code=400, detail="payment_intent_id is required")

        intent = _get_stripe_client().retrieve_payment_intent(
            body.payment_intent_id, correlation_id=correlation_id
        )
        if intent["booking_id"] != booking_id or intent["amount_cents"] != due:
            logger.warning(
                "payment intent does not match booking",
                extra={
                    "extra_fields": safe_log_context(
                        booking_id_prefix=id_prefix(booking_id),
                        payment_intent_prefix=id_prefix(body.payment_intent_id),
                    )
                },
            )
            raise HTTPException(status_code=409, detail="payment_mismatch")
        if intent["status"] != "succeeded":
            raise HTTPException(status_code=409, detail="payment_not_completed")

        return finalize_paid_booking(
            booking_id,
            body.payment_intent_id,
            intent["amount_cents"],
            correlation_id=correlation_id,
        )
    except BookingNotFoundError:
        raise HTTPException(status_code=404, detail="Booking not found")
    except InvalidBookingStateError as e:
        raise HTTPException(status_code=409, detail=f"booking_{e.status}")
    except PaymentRefMismatchError:
        raise HTTPException(status_code=409, detail="payment_mismatch")
    except InsufficientCreditsError:
        raise HTTPException(status_code=400, detail="insufficient_credits")
    except PaymentSucceededBookingFailedError as e:
        raise HTTPException(status_code=500, detail=e.error_code)


@router.post("/{booking_id}/cancel")
def cancel(
    booking_id: str,
    body: CancelBookingRequest,
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    _get_owned_booking(booking_id, user)
    try:
        return cancel_booking(
            booking_id,
            stripe_client=_get_stripe_client(),
            reason=body.reason or "user_cancelled",
            actor=user.id,
            correlation_id=get_correlation_id(),
        )
    except InvalidBookingStateError as e:
        raise HTTPException(status_code=409, detail=f"booking_{e.status}")
    except PaymentNotCancellableError as e:
        raise HTTPException(status_code=409, detail=f"payment_{e.payment_status}")
