"""Stripe webhook route - public endpoint for PaymentIntent events.

Security rules:
- Validate Stripe-Signature on every request.
- Never log payload or signature header.
- Return 5xx if enqueue fails (so Stripe retries).
- No business logic here - just receipt + enqueue.
"""

from __future__ import annotations

import os

from fastapi import APIRouter, Header, Request, Response

from castlestay.infra.db import txn
from castlestay.infra.repositories.payments_repository import get_payment_by_provider_ref
from castlestay.infra.repositories.processed_events_repository import record_processed
from castlestay.observability.correlation import get_correlation_id
from castlestay.observability.logging import get_logger
from castlestay.observability.redaction import id_prefix, safe_log_context
from castlestay.stripe.webhook import (
    HANDLED_EVENT_TYPES,
    InvalidPayloadError,
    InvalidSignatureError,
    verify_and_extract,
)
from castlestay.tasks.client import TasksClient

router = APIRouter(tags=["webhooks"])

logger = get_logger(__name__)

EVENT_SOURCE = "stripe"

# Tasks client singleton
_tasks_client = TasksClient()


def _get_tasks_client() -> TasksClient:
    """Get tasks client instance (allows test injection)."""
    return _tasks_client


def _get_webhook_secret() -> str:
    """Get Stripe webhook secret from environment."""
    secret = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    if not secret:
        raise RuntimeError("STRIPE_WEBHOOK_SECRET not configured")
    return secret


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(..., alias="Stripe-Signature"),
) -> Response:
    """Receive Stripe webhook events.

    ACK 2xx only if:
    1. Signature validated
    2. Receipt inserted in processed_events
    3. Task enqueued successfully

    Returns:
        200 OK if processed, duplicate, or an event type we do not handle.
        400 Bad Request if signature invalid or the payment is unknown.
        500 Internal Server Error if enqueue fails.
    """
    correlation_id = get_correlation_id()
    payload_bytes = await request.body()

    try:
        webhook_secret = _get_webhook_secret()
    except RuntimeError:
        logger.error(
            "webhook secret not configured",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=500, content="server configuration error")

    try:
        event = verify_and_extract(payload_bytes, stripe_signature, webhook_secret)
    except InvalidSignatureError:
        return Response(status_code=400, content="invalid signature")
    except InvalidPayloadError:
        return Response(status_code=400, content="invalid payload")

    logger.info(
        "stripe webhook received",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                event_id_prefix=id_prefix(event.event_id),
                event_type=event.event_type,
            )
        },
    )

    if event.event_type not in HANDLED_EVENT_TYPES:
        return Response(status_code=200, content="ignored")

    if not event.object_id:
        return Response(status_code=400, content="event missing object id")

    task_id = f"stripe:{event.event_id}"

    try:
        with txn() as cur:
            # Only payment intents we created are processed; metadata is not trusted
            payment = get_payment_by_provider_ref(cur, event.object_id)
            if payment is None:
                logger.warning(
                    "cannot resolve payment for stripe event",
                    extra={
                        "extra_fields": safe_log_context(
                            correlationId=correlation_id,
                            event_type=event.event_type,
                            object_id_prefix=id_prefix(event.object_id),
                        )
                    },
                )
                return Response(status_code=400, content="unknown object")

            if not record_processed(cur, source=EVENT_SOURCE, external_id=event.event_id):
                logger.info(
                    "duplicate stripe event ignored",
                    extra={
                        "extra_fields": safe_log_context(
                            correlationId=correlation_id,
                            event_id_prefix=id_prefix(event.event_id),
                        )
                    },
                )
                return Response(status_code=200, content="duplicate")

            # Enqueue inside the transaction: if it fails the receipt rolls back
            enqueued = _get_tasks_client().enqueue_http(
                task_id=task_id,
                url_path="/tasks/stripe/handle-event",
                payload={
                    "event_id": event.event_id,
                    "event_type": event.event_type,
                    "payment_ref": event.object_id,
                    "booking_id": payment["booking_id"],
                    "amount_cents": event.amount_cents
                    if event.amount_cents is not None
                    else payment["amount_cents"],
                    "correlation_id": correlation_id,
                },
                correlation_id=correlation_id,
            )
            if not enqueued:
                raise RuntimeError(f"enqueue returned false for task_id={task_id}")

    except Exception:
        logger.exception(
            "stripe webhook processing failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=500, content="processing failed")

    return Response(status_code=200, content="ok")
