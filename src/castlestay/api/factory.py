"""Builds the FastAPI app for one deployment role.

``public`` serves guests and the Stripe webhook; ``worker`` additionally
mounts the internal /tasks routes. Both share one image and differ only by
APP_ROLE.
"""

import os
from typing import Literal

from fastapi import FastAPI, Request, Response

from castlestay.observability.correlation import CORRELATION_ID_HEADER, correlation_scope

from .routers import public, worker

AppRole = Literal["public", "worker"]

_ROLES = ("public", "worker")


def _resolve_role(role: str | None) -> AppRole:
    value = (role or os.environ.get("APP_ROLE") or "public").strip().lower()
    if value not in _ROLES:
        raise ValueError(f"APP_ROLE must be one of {_ROLES}, got {value!r}")
    return value  # type: ignore[return-value]


def create_app(role: AppRole | None = None) -> FastAPI:
    """Create the app; ``role`` overrides APP_ROLE (default "public").

    Raises:
        ValueError: If the role is not recognised.
    """
    resolved = _resolve_role(role)

    app = FastAPI(title=f"castlestay ({resolved})", docs_url=None, redoc_url=None)

    @app.middleware("http")
    async def bind_correlation_id(request: Request, call_next) -> Response:
        with correlation_scope(request.headers.get(CORRELATION_ID_HEADER)) as cid:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response

    app.include_router(public.router)
    if resolved == "worker":
        app.include_router(worker.router)

    return app
