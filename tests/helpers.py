"""Shared test helpers (plain functions, not fixtures)."""

from __future__ import annotations

import base64
import hashlib
import hmac
import time
from contextlib import contextmanager
from unittest.mock import MagicMock

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

OIDC_ISSUER = "https://id.castlestay.example"
OIDC_AUDIENCE = "castlestay-api"
OIDC_JWKS_URL = "https://id.castlestay.example/.well-known/jwks.json"


def oidc_env() -> dict[str, str]:
    return {
        "OIDC_ISSUER": OIDC_ISSUER,
        "OIDC_AUDIENCE": OIDC_AUDIENCE,
        "OIDC_JWKS_URL": OIDC_JWKS_URL,
    }


def _generate_rsa_keypair():
    """Generate RSA key pair for test JWT signing."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )
    return private_key, private_key.public_key()


def _create_jwks(public_key, kid: str = "test-key-1") -> dict:
    """Create JWKS from public key."""
    public_numbers = public_key.public_numbers()

    def int_to_base64(n: int) -> str:
        byte_length = (n.bit_length() + 7) // 8
        return (
            base64.urlsafe_b64encode(n.to_bytes(byte_length, "big"))
            .rstrip(b"=")
            .decode()
        )

    return {
        "keys": [
            {
                "kty": "RSA",
                "use": "sig",
                "alg": "RS256",
                "kid": kid,
                "n": int_to_base64(public_numbers.n),
                "e": int_to_base64(public_numbers.e),
            }
        ]
    }


def _create_token(
    private_key,
    kid: str = "test-key-1",
    sub: str = "user-123",
    iss: str = OIDC_ISSUER,
    aud: str = OIDC_AUDIENCE,
    exp: int | None = None,
    email: str | None = None,
) -> str:
    """Create signed JWT for testing."""
    now = int(time.time())
    payload = {
        "sub": sub,
        "iss": iss,
        "aud": aud,
        "exp": exp if exp is not None else now + 3600,
        "iat": now,
    }
    if email:
        payload["email"] = email

    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": kid})


def mock_txn_factory(cur: MagicMock):
    """Build a txn() replacement that yields the given mock cursor."""

    @contextmanager
    def _txn(conn=None):
        yield cur

    return _txn


def sign_stripe_payload(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header (t=...,v1=HMAC-SHA256) for a payload."""
    ts = timestamp if timestamp is not None else int(time.time())
    signed = f"{ts}.".encode() + payload
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"
