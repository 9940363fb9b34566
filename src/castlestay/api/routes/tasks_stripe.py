"""Worker routes for Stripe task handling."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from castlestay.api.task_auth import require_task_auth
from castlestay.domain.lifecycle import (
    BookingNotFoundError,
    PaymentNotCancellableError,
    fail_booking_payment,
)
from castlestay.domain.reconciliation import (
    PaymentSucceededBookingFailedError,
    finalize_paid_booking,
)
from castlestay.observability.correlation import get_correlation_id
from castlestay.observability.logging import get_logger
from castlestay.observability.redaction import id_prefix, safe_log_context
from castlestay.stripe.client import StripeClient
from castlestay.stripe.webhook import PAYMENT_FAILED, PAYMENT_SUCCEEDED

router = APIRouter(
    prefix="/tasks/stripe",
    tags=["tasks"],
    dependencies=[Depends(require_task_auth)],
)

logger = get_logger(__name__)


def _get_stripe_client() -> StripeClient:
    return StripeClient()


class StripeEventTask(BaseModel):
    event_id: str
    event_type: str
    payment_ref: str
    booking_id: str
    amount_cents: int
    correlation_id: str | None = None


@router.post("/handle-event")
def handle_event(body: StripeEventTask) -> JSONResponse:
    """Apply a verified PaymentIntent event to its booking.

    - payment_intent.succeeded: finalize (bounded retries, alert on failure)
    - payment_intent.payment_failed: cancel the pending booking
    """
    correlation_id = body.correlation_id or get_correlation_id()

    logger.info(
        "handle-event task received",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                event_id_prefix=id_prefix(body.event_id),
                event_type=body.event_type,
                booking_id_prefix=id_prefix(body.booking_id),
            )
        },
    )

    try:
        if body.event_type == PAYMENT_SUCCEEDED:
            result = finalize_paid_booking(
                body.booking_id,
                body.payment_ref,
                body.amount_cents,
                correlation_id=correlation_id,
            )
        elif body.event_type == PAYMENT_FAILED:
            result = fail_booking_payment(
                body.booking_id,
                body.payment_ref,
                stripe_client=_get_stripe_client(),
                correlation_id=correlation_id,
            )
        else:
            return JSONResponse(status_code=200, content={"ok": True, "status": "ignored"})
    except PaymentSucceededBookingFailedError as e:
        # 5xx so the task is retried; the alert is already recorded
        return JSONResponse(status_code=500, content={"ok": False, "error": e.error_code})
    except BookingNotFoundError:
        return JSONResponse(status_code=200, content={"ok": True, "status": "noop"})
    except PaymentNotCancellableError as e:
        # Intent still settling; 5xx so the event is redelivered
        return JSONResponse(
            status_code=503,
            content={"ok": False, "error": f"payment_{e.payment_status}"},
        )

    return JSONResponse(status_code=200, content={"ok": True, **result})
