"""PaymentIntent calls for the booking core.

Domain code talks to this class, never to the stripe package. Every create
carries an idempotency key, and only intent ids reach the logs.
"""

from __future__ import annotations

import os
from typing import Any

import stripe

from castlestay.observability.logging import get_logger
from castlestay.observability.redaction import safe_log_context

logger = get_logger(__name__)


def _intent_to_dict(intent: Any) -> dict[str, Any]:
    metadata = intent.metadata or {}
    return {
        "payment_intent_id": intent.id,
        "client_secret": intent.client_secret,
        "status": intent.status,
        "amount_cents": intent.amount,
        "currency": intent.currency,
        "booking_id": metadata.get("booking_id"),
    }


class StripeClient:
    """PaymentIntent create/retrieve with the secret key from STRIPE_SECRET_KEY."""

    def __init__(self, api_key: str | None = None) -> None:
        api_key = api_key or os.environ.get("STRIPE_SECRET_KEY")
        if not api_key:
            raise RuntimeError("STRIPE_SECRET_KEY is not set")
        self._sdk = stripe.StripeClient(api_key)

    def _log(self, message: str, intent: Any, correlation_id: str | None) -> None:
        logger.info(
            message,
            extra={
                "extra_fields": safe_log_context(
                    payment_intent_id=intent.id,
                    status=intent.status,
                    correlationId=correlation_id,
                )
            },
        )

    def create_payment_intent(
        self,
        *,
        amount_cents: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Create a PaymentIntent for ``amount_cents``.

        Retrying with the same ``idempotency_key`` returns the intent Stripe
        created the first time.
        """
        params: dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency.lower(),
            "automatic_payment_methods": {"enabled": True},
            "metadata": dict(metadata or {}),
        }
        intent = self._sdk.v1.payment_intents.create(
            params=params,
            options={"idempotency_key": idempotency_key},
        )
        self._log("stripe payment intent created", intent, correlation_id)
        return _intent_to_dict(intent)

    def retrieve_payment_intent(
        self,
        payment_intent_id: str,
        *,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Fetch an intent; its status is the authoritative payment state."""
        intent = self._sdk.v1.payment_intents.retrieve(payment_intent_id)
        self._log("stripe payment intent retrieved", intent, correlation_id)
        return _intent_to_dict(intent)

    def cancel_payment_intent(
        self,
        payment_intent_id: str,
        *,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Cancel an intent so no later charge can succeed on it.

        Stripe refuses to cancel an intent that already succeeded or was
        already cancelled; the intent is then re-read and returned as-is, so
        callers must check ``status`` for ``"canceled"``.
        """
        try:
            intent = self._sdk.v1.payment_intents.cancel(
                payment_intent_id,
                options={"idempotency_key": f"{payment_intent_id}:cancel"},
            )
        except stripe.InvalidRequestError:
            intent = self._sdk.v1.payment_intents.retrieve(payment_intent_id)
            if intent.status not in ("canceled", "succeeded"):
                raise
        self._log("stripe payment intent cancel", intent, correlation_id)
        return _intent_to_dict(intent)
