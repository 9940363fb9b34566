"""Tests for the Stripe wrapper and webhook verification."""

from __future__ import annotations

import json
import time
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import stripe

from castlestay.stripe.client import StripeClient
from castlestay.stripe.webhook import (
    PAYMENT_SUCCEEDED,
    InvalidPayloadError,
    InvalidSignatureError,
    verify_and_extract,
)
from helpers import sign_stripe_payload

WEBHOOK_SECRET = "whsec_test_secret"


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    return sign_stripe_payload(payload, secret, timestamp)


def _event(event_type=PAYMENT_SUCCEEDED, **obj) -> bytes:
    body = {
        "id": "evt_1",
        "type": event_type,
        "data": {
            "object": {
                "id": "pi_123",
                "amount": 50000,
                "amount_received": 50000,
                "metadata": {"booking_id": "bk-1"},
                **obj,
            }
        },
    }
    return json.dumps(body).encode()


class TestVerifyAndExtract:
    def test_valid_event(self):
        payload = _event()
        event = verify_and_extract(payload, sign_payload(payload), WEBHOOK_SECRET)

        assert event.event_id == "evt_1"
        assert event.event_type == PAYMENT_SUCCEEDED
        assert event.object_id == "pi_123"
        assert event.amount_cents == 50000
        assert event.booking_id == "bk-1"

    def test_wrong_secret(self):
        payload = _event()
        with pytest.raises(InvalidSignatureError):
            verify_and_extract(payload, sign_payload(payload, secret="whsec_other"), WEBHOOK_SECRET)

    def test_tampered_payload(self):
        payload = _event()
        header = sign_payload(payload)
        with pytest.raises(InvalidSignatureError):
            verify_and_extract(_event(amount=1), header, WEBHOOK_SECRET)

    def test_stale_timestamp(self):
        payload = _event()
        header = sign_payload(payload, timestamp=int(time.time()) - 3600)
        with pytest.raises(InvalidSignatureError):
            verify_and_extract(payload, header, WEBHOOK_SECRET)

    def test_missing_event_id(self):
        payload = json.dumps({"type": PAYMENT_SUCCEEDED, "data": {"object": {}}}).encode()
        with pytest.raises(InvalidPayloadError):
            verify_and_extract(payload, sign_payload(payload), WEBHOOK_SECRET)

    def test_not_json(self):
        payload = b"not json"
        with pytest.raises(InvalidPayloadError):
            verify_and_extract(payload, sign_payload(payload), WEBHOOK_SECRET)


def _intent(**overrides):
    values = dict(
        id="pi_123",
        client_secret="pi_123_secret_abc",
        status="requires_payment_method",
        amount=50000,
        currency="eur",
        metadata={"booking_id": "bk-1"},
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestStripeClient:
    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
        with pytest.raises(RuntimeError):
            StripeClient()

    def test_create_passes_idempotency_key(self):
        sdk = MagicMock()
        sdk.v1.payment_intents.create.return_value = _intent()

        with patch("castlestay.stripe.client.stripe.StripeClient", return_value=sdk):
            result = StripeClient(api_key="sk_test").create_payment_intent(
                amount_cents=50000,
                currency="EUR",
                idempotency_key="booking:bk-1:payment_intent",
                metadata={"booking_id": "bk-1"},
            )

        kwargs = sdk.v1.payment_intents.create.call_args.kwargs
        assert kwargs["options"] == {"idempotency_key": "booking:bk-1:payment_intent"}
        assert kwargs["params"]["amount"] == 50000
        assert kwargs["params"]["currency"] == "eur"
        assert kwargs["params"]["metadata"] == {"booking_id": "bk-1"}
        assert result["payment_intent_id"] == "pi_123"
        assert result["booking_id"] == "bk-1"

    def test_retrieve(self):
        sdk = MagicMock()
        sdk.v1.payment_intents.retrieve.return_value = _intent(status="succeeded", metadata=None)

        with patch("castlestay.stripe.client.stripe.StripeClient", return_value=sdk):
            result = StripeClient(api_key="sk_test").retrieve_payment_intent("pi_123")

        sdk.v1.payment_intents.retrieve.assert_called_once_with("pi_123")
        assert result["status"] == "succeeded"
        assert result["booking_id"] is None

    def test_cancel_payment_intent(self):
        sdk = MagicMock()
        sdk.v1.payment_intents.cancel.return_value = _intent(status="canceled")

        with patch("castlestay.stripe.client.stripe.StripeClient", return_value=sdk):
            result = StripeClient(api_key="sk_test").cancel_payment_intent("pi_123")

        assert sdk.v1.payment_intents.cancel.call_args.args == ("pi_123",)
        assert sdk.v1.payment_intents.cancel.call_args.kwargs["options"] == {
            "idempotency_key": "pi_123:cancel"
        }
        assert result["status"] == "canceled"

    def test_cancel_after_success_reports_succeeded(self):
        sdk = MagicMock()
        sdk.v1.payment_intents.cancel.side_effect = stripe.InvalidRequestError(
            "This PaymentIntent's status is succeeded", None
        )
        sdk.v1.payment_intents.retrieve.return_value = _intent(status="succeeded")

        with patch("castlestay.stripe.client.stripe.StripeClient", return_value=sdk):
            result = StripeClient(api_key="sk_test").cancel_payment_intent("pi_123")

        assert result["status"] == "succeeded"

    def test_cancel_unexpected_error_propagates(self):
        sdk = MagicMock()
        sdk.v1.payment_intents.cancel.side_effect = stripe.InvalidRequestError(
            "No such payment_intent", None
        )
        sdk.v1.payment_intents.retrieve.return_value = _intent(status="processing")

        with patch("castlestay.stripe.client.stripe.StripeClient", return_value=sdk):
            with pytest.raises(stripe.InvalidRequestError):
                StripeClient(api_key="sk_test").cancel_payment_intent("pi_123")
