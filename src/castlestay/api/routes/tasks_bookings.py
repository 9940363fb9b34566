"""Worker routes for booking expiry and reconciliation."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from castlestay.api.task_auth import require_task_auth
from castlestay.domain.reconciliation import (
    PaymentSucceededBookingFailedError,
    expire_stale_pending_bookings,
    reconcile_pending_booking,
)
from castlestay.infra.settings import get_booking_settings
from castlestay.observability.correlation import get_correlation_id
from castlestay.observability.logging import get_logger
from castlestay.observability.redaction import id_prefix, safe_log_context

router = APIRouter(
    prefix="/tasks/bookings",
    tags=["tasks"],
    dependencies=[Depends(require_task_auth)],
)

logger = get_logger(__name__)


class ExpireStaleRequest(BaseModel):
    limit: int = Field(default=100, ge=1, le=1000)


class ExpireBookingRequest(BaseModel):
    booking_id: str
    task_id: str | None = None
    correlation_id: str | None = None


@router.post("/expire-stale")
def handle_expire_stale(body: ExpireStaleRequest | None = None) -> JSONResponse:
    """Periodic sweep: expire pending bookings past the grace window.

    Paid-but-pending bookings found by the sweep are finalized instead.
    """
    limit = body.limit if body is not None else 100
    counts = expire_stale_pending_bookings(
        grace=get_booking_settings().pending_grace,
        limit=limit,
        correlation_id=get_correlation_id(),
    )
    return JSONResponse(status_code=200, content={"ok": True, **counts})


@router.post("/expire")
def handle_expire(body: ExpireBookingRequest) -> JSONResponse:
    """Expire (or finalize) a single pending booking at its grace deadline."""
    correlation_id = body.correlation_id or get_correlation_id()

    logger.info(
        "expire-booking task received",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                task_id_prefix=id_prefix(body.task_id, 16),
                booking_id_prefix=id_prefix(body.booking_id),
            )
        },
    )

    try:
        result = reconcile_pending_booking(
            body.booking_id,
            grace=get_booking_settings().pending_grace,
            correlation_id=correlation_id,
        )
    except PaymentSucceededBookingFailedError as e:
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": e.error_code},
        )

    return JSONResponse(status_code=200, content={"ok": True, **result})
