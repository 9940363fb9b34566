"""Checks the Stripe-Signature header and pulls out the few PaymentIntent
fields the booking core routes on. Payloads and signatures are never logged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import json

import stripe

from castlestay.observability.logging import get_logger

logger = get_logger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
HANDLED_EVENT_TYPES = frozenset({PAYMENT_SUCCEEDED, PAYMENT_FAILED})

SIGNATURE_TOLERANCE_SECONDS = 300


class InvalidSignatureError(Exception):
    """Webhook signature validation failed."""


class InvalidPayloadError(Exception):
    """Payload structure is invalid or missing required fields."""


@dataclass
class StripeWebhookEvent:
    """Minimal extracted data from a Stripe webhook event."""

    event_id: str
    event_type: str
    object_id: str | None  # payment_intent.id for payment_intent.* events
    amount_cents: int | None = None
    booking_id: str | None = None


def verify_and_extract(
    payload_bytes: bytes,
    signature_header: str,
    webhook_secret: str,
) -> StripeWebhookEvent:
    """Validate Stripe webhook signature and extract minimal event data.

    Raises:
        InvalidSignatureError: If signature validation fails.
        InvalidPayloadError: If event structure is invalid.
    """
    try:
        payload = payload_bytes.decode("utf-8")
        stripe.WebhookSignature.verify_header(
            payload,
            signature_header,
            webhook_secret,
            tolerance=SIGNATURE_TOLERANCE_SECONDS,
        )
        event = json.loads(payload)
    except stripe.SignatureVerificationError as e:
        logger.warning("stripe webhook signature verification failed")
        raise InvalidSignatureError("Invalid signature") from e
    except ValueError as e:
        logger.warning("stripe webhook payload parsing failed")
        raise InvalidPayloadError("Invalid payload") from e

    if not isinstance(event, dict):
        raise InvalidPayloadError("Event must be a JSON object")

    event_id = event.get("id")
    event_type = event.get("type")

    if not event_id or not event_type:
        raise InvalidPayloadError("Missing event id or type")

    obj = _event_object(event)
    metadata = obj.get("metadata") or {}

    return StripeWebhookEvent(
        event_id=event_id,
        event_type=event_type,
        object_id=obj.get("id"),
        amount_cents=obj.get("amount_received") or obj.get("amount"),
        booking_id=metadata.get("booking_id"),
    )


def _event_object(event: dict[str, Any]) -> dict[str, Any]:
    data = event.get("data") or {}
    return data.get("object") or {}
