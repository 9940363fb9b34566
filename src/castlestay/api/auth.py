"""Bearer-token authentication for guest routes.

Tokens are RS256 JWTs issued by the upstream identity provider, which also
owns whitelist gating. The booking core checks signature, issuer, audience
and expiry against the provider's JWKS and trusts ``sub`` as the user id.
"""

from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass
from typing import Any

import jwt
import requests
from fastapi import HTTPException, Request

_JWKS_CACHE_TTL = 600  # seconds

_jwks_cache: dict[str, Any] | None = None
_jwks_cache_time: float = 0
_jwks_cache_lock = threading.Lock()


@dataclass(frozen=True)
class OidcSettings:
    issuer: str
    audience: str
    jwks_url: str


@dataclass
class CurrentUser:
    """Authenticated caller. ``id`` is the token's ``sub``."""

    id: str
    email: str | None
    name: str | None


def _unauthorized(detail: str = "Invalid token") -> HTTPException:
    return HTTPException(status_code=401, detail=detail)


def _load_settings() -> OidcSettings | None:
    issuer = os.environ.get("OIDC_ISSUER")
    audience = os.environ.get("OIDC_AUDIENCE")
    jwks_url = os.environ.get("OIDC_JWKS_URL")
    if not (issuer and audience and jwks_url):
        return None
    return OidcSettings(issuer=issuer, audience=audience, jwks_url=jwks_url)


def _fetch_jwks(jwks_url: str) -> dict[str, Any]:
    resp = requests.get(jwks_url, timeout=10)
    resp.raise_for_status()
    return resp.json()


def _signing_key(jwks_url: str, kid: str) -> jwt.PyJWK | None:
    """Look up ``kid`` in the cached JWKS, refetching once if it is missing.

    Raises:
        HTTPException: 503 if the JWKS endpoint cannot be reached.
    """
    global _jwks_cache, _jwks_cache_time

    for force in (False, True):
        with _jwks_cache_lock:
            stale = time.time() - _jwks_cache_time >= _JWKS_CACHE_TTL
            if force or stale or _jwks_cache is None:
                try:
                    _jwks_cache = _fetch_jwks(jwks_url)
                except requests.RequestException:
                    raise HTTPException(
                        status_code=503, detail="Auth temporarily unavailable"
                    )
                _jwks_cache_time = time.time()
            keys = _jwks_cache.get("keys", [])

        match = next((k for k in keys if k.get("kid") == kid), None)
        if match is not None:
            try:
                return jwt.PyJWK(match)
            except jwt.PyJWKError:
                return None
    return None


def verify_token(token: str) -> dict[str, Any]:
    """Validate a bearer JWT and return its claims.

    Raises:
        HTTPException: 401 on any validation failure, 503 if the JWKS
            cannot be fetched.
    """
    settings = _load_settings()
    if settings is None:
        raise _unauthorized("OIDC not configured")

    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except jwt.DecodeError:
        raise _unauthorized()
    if not kid:
        raise _unauthorized()

    key = _signing_key(settings.jwks_url, kid)
    if key is None:
        raise _unauthorized()

    try:
        claims = jwt.decode(
            token,
            key.key,
            algorithms=["RS256"],
            issuer=settings.issuer,
            audience=settings.audience,
            options={"require": ["exp", "iss", "aud", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise _unauthorized()

    if not claims.get("sub"):
        raise _unauthorized()
    return claims


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization")
    if not header:
        raise _unauthorized("Missing authorization header")

    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token or " " in token.strip():
        raise _unauthorized("Invalid authorization header")
    return token.strip()


def get_current_user(request: Request) -> CurrentUser:
    """FastAPI dependency resolving the caller from the Authorization header."""
    claims = verify_token(_bearer_token(request))
    return CurrentUser(
        id=claims["sub"],
        email=claims.get("email"),
        name=claims.get("name"),
    )

