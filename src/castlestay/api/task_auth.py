"""Authentication for worker task endpoints (shared internal secret)."""

from __future__ import annotations

import hmac
import os

from fastapi import HTTPException, Request

from castlestay.observability.correlation import get_correlation_id
from castlestay.observability.logging import get_logger
from castlestay.observability.redaction import safe_log_context

logger = get_logger(__name__)

INTERNAL_TASK_SECRET_HEADER = "X-Internal-Task-Secret"


def verify_task_auth(request: Request) -> bool:
    """Verify the X-Internal-Task-Secret header.

    Fail-closed: returns False if INTERNAL_TASK_SECRET is not configured.
    """
    expected = os.environ.get("INTERNAL_TASK_SECRET", "")
    if not expected:
        logger.error(
            "INTERNAL_TASK_SECRET not configured - fail closed",
            extra={"extra_fields": safe_log_context(reason="missing_secret_env")},
        )
        return False

    provided = request.headers.get(INTERNAL_TASK_SECRET_HEADER, "")
    if not provided:
        logger.warning(
            "task auth failed: missing secret header",
            extra={"extra_fields": safe_log_context(reason="missing_header")},
        )
        return False

    return hmac.compare_digest(provided.encode(), expected.encode())


def require_task_auth(request: Request) -> None:
    """FastAPI dependency: 401 unless the task secret matches."""
    if not verify_task_auth(request):
        logger.warning(
            "task auth failed",
            extra={"extra_fields": safe_log_context(correlationId=get_correlation_id())},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")
