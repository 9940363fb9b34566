"""HTTP backend for tasks - sends tasks to worker via HTTP POST.

Used where api and worker run as separate containers on the same network.
Authenticates with the shared internal task secret.
"""

import os
from datetime import datetime

import requests

from castlestay.observability.logging import get_logger
from castlestay.observability.redaction import safe_log_context

logger = get_logger(__name__)

INTERNAL_TASK_SECRET_HEADER = "X-Internal-Task-Secret"


def _worker_base_url() -> str:
    return os.environ.get("WORKER_BASE_URL", "http://worker:8000")


def _timeout() -> int:
    return int(os.environ.get("TASKS_HTTP_TIMEOUT", "30"))


def enqueue_http(
    task_id: str,
    url_path: str,
    payload: dict,
    correlation_id: str | None = None,
    schedule_time: datetime | None = None,
) -> bool:
    """Enqueue task via HTTP POST to worker.

    Args:
        task_id: Unique task identifier (for logging/tracing).
        url_path: Worker endpoint path (e.g., "/tasks/bookings/expire").
        payload: Task payload (must be PII-free).
        correlation_id: Optional correlation ID for tracing.
        schedule_time: HTTP delivery is immediate; scheduled tasks are left
            to the periodic expire-stale sweep.

    Returns:
        True if request succeeded (2xx), False otherwise.
    """
    if schedule_time is not None:
        logger.info(
            "HTTP backend defers scheduled task to sweep",
            extra={"extra_fields": safe_log_context(task_id=task_id)},
        )
        return True

    url = f"{_worker_base_url()}{url_path}"
    headers = {
        "Content-Type": "application/json",
        "X-Correlation-ID": correlation_id or "",
        "X-Task-Id": task_id,
    }
    secret = os.environ.get("INTERNAL_TASK_SECRET", "")
    if secret:
        headers[INTERNAL_TASK_SECRET_HEADER] = secret

    try:
        response = requests.post(
            url,
            json=payload,
            headers=headers,
            timeout=_timeout(),
        )
        response.raise_for_status()
        logger.info(
            "HTTP task enqueued successfully",
            extra={"extra_fields": safe_log_context(task_id=task_id, url_path=url_path)},
        )
        return True
    except requests.RequestException as e:
        logger.error(
            "HTTP task enqueue failed",
            extra={
                "extra_fields": safe_log_context(
                    task_id=task_id, url_path=url_path, error=str(e)
                )
            },
        )
        return False
