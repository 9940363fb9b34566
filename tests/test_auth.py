"""Tests for OIDC JWT authentication."""

from __future__ import annotations

import time
from unittest.mock import MagicMock, patch

import pytest
import requests
from fastapi import HTTPException
from fastapi.testclient import TestClient

from castlestay.api.auth import verify_token
from castlestay.api.factory import create_app
from castlestay.api.routes import bookings as bookings_routes
from helpers import (
    _create_jwks,
    _create_token,
    _generate_rsa_keypair,
    mock_txn_factory,
    oidc_env,
)


@pytest.fixture(scope="module")
def rsa_keypair():
    return _generate_rsa_keypair()


@pytest.fixture
def jwks(rsa_keypair):
    _, public_key = rsa_keypair
    return _create_jwks(public_key)


@pytest.fixture
def configured(monkeypatch):
    for name, value in oidc_env().items():
        monkeypatch.setenv(name, value)


@pytest.fixture
def mock_jwks_fetch(jwks):
    with patch("castlestay.api.auth._fetch_jwks", return_value=jwks) as mock:
        yield mock


class TestVerifyToken:
    def test_valid_token(self, configured, mock_jwks_fetch, rsa_keypair):
        private_key, _ = rsa_keypair
        claims = verify_token(_create_token(private_key, sub="user-42", email="g@example.com"))
        assert claims["sub"] == "user-42"
        assert claims["email"] == "g@example.com"

    def test_jwks_is_cached(self, configured, mock_jwks_fetch, rsa_keypair):
        private_key, _ = rsa_keypair
        verify_token(_create_token(private_key))
        verify_token(_create_token(private_key))
        assert mock_jwks_fetch.call_count == 1

    def test_expired(self, configured, mock_jwks_fetch, rsa_keypair):
        private_key, _ = rsa_keypair
        token = _create_token(private_key, exp=int(time.time()) - 60)
        with pytest.raises(HTTPException) as exc_info:
            verify_token(token)
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Token expired"

    def test_wrong_audience(self, configured, mock_jwks_fetch, rsa_keypair):
        private_key, _ = rsa_keypair
        with pytest.raises(HTTPException) as exc_info:
            verify_token(_create_token(private_key, aud="someone-else"))
        assert exc_info.value.status_code == 401

    def test_wrong_issuer(self, configured, mock_jwks_fetch, rsa_keypair):
        private_key, _ = rsa_keypair
        with pytest.raises(HTTPException):
            verify_token(_create_token(private_key, iss="https://evil.example"))

    def test_unknown_kid_refreshes_once(self, configured, mock_jwks_fetch, rsa_keypair):
        private_key, _ = rsa_keypair
        with pytest.raises(HTTPException):
            verify_token(_create_token(private_key, kid="rotated"))
        assert mock_jwks_fetch.call_count == 2

    def test_signed_with_other_key(self, configured, mock_jwks_fetch):
        other_private, _ = _generate_rsa_keypair()
        with pytest.raises(HTTPException) as exc_info:
            verify_token(_create_token(other_private))
        assert exc_info.value.status_code == 401

    def test_garbage_token(self, configured, mock_jwks_fetch):
        with pytest.raises(HTTPException):
            verify_token("not-a-jwt")

    def test_not_configured(self, monkeypatch, rsa_keypair):
        monkeypatch.delenv("OIDC_ISSUER", raising=False)
        private_key, _ = rsa_keypair
        with pytest.raises(HTTPException) as exc_info:
            verify_token(_create_token(private_key))
        assert exc_info.value.detail == "OIDC not configured"

    def test_jwks_unreachable_is_503(self, configured, rsa_keypair):
        private_key, _ = rsa_keypair
        with patch(
            "castlestay.api.auth._fetch_jwks", side_effect=requests.ConnectionError("down")
        ):
            with pytest.raises(HTTPException) as exc_info:
                verify_token(_create_token(private_key))
        assert exc_info.value.status_code == 503


class TestBearerOverHttp:
    def _booking(self, user_id):
        from datetime import date
        from decimal import Decimal

        return {
            "id": "bk-1",
            "accommodation_id": "acc-1",
            "user_id": user_id,
            "status": "pending",
            "check_in": date(2026, 7, 1),
            "check_out": date(2026, 7, 8),
            "total_price_cents": 70000,
            "base_cost_cents": 70000,
            "seasonal_discount_pct": Decimal("0"),
            "duration_discount_pct": Decimal("0"),
            "seasonal_discount_cents": 0,
            "duration_discount_cents": 0,
            "credits_applied_cents": 0,
            "payment_ref": None,
            "cancel_reason": None,
        }

    def test_subject_is_the_user_id(self, configured, mock_jwks_fetch, rsa_keypair):
        private_key, _ = rsa_keypair
        client = TestClient(create_app(role="public"))
        with patch.object(bookings_routes, "txn", mock_txn_factory(MagicMock())), \
             patch.object(bookings_routes, "get_booking", return_value=self._booking("user-123")):
            response = client.get(
                "/bookings/bk-1",
                headers={"Authorization": f"Bearer {_create_token(private_key)}"},
            )
        assert response.status_code == 200

    def test_missing_header(self, configured):
        response = TestClient(create_app(role="public")).get("/bookings/bk-1")
        assert response.status_code == 401
        assert "Missing authorization header" in response.json()["detail"]

    def test_malformed_header(self, configured):
        response = TestClient(create_app(role="public")).get(
            "/bookings/bk-1", headers={"Authorization": "Token abc"}
        )
        assert response.status_code == 401
