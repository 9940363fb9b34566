"""Redaction helpers for safe logging. External data must pass through these."""

import re
from typing import Any

_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
# Stripe client secrets (pi_..._secret_...) and raw card-like digit runs
_CLIENT_SECRET_PATTERN = re.compile(r"\b\w+_secret_\w+\b")
_CARD_PATTERN = re.compile(r"\b(?:\d[ -]?){13,19}\b")

_REDACTED = "[REDACTED]"


def redact_string(value: str) -> str:
    """Redact PII and payment secrets from a string."""
    result = _CLIENT_SECRET_PATTERN.sub(_REDACTED, value)
    result = _EMAIL_PATTERN.sub(_REDACTED, result)
    result = _CARD_PATTERN.sub(_REDACTED, result)
    return result


def redact_value(value: Any) -> str:
    """Redact any value for safe logging. Returns string representation."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        # For dicts, only log keys (structure), never values
        return f"dict(keys={list(value.keys())})"
    if isinstance(value, (list, tuple)):
        return f"list(len={len(value)})"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return f"<{type(value).__name__}>"


def id_prefix(value: str | None, length: int = 8) -> str | None:
    """Shorten an identifier for logs."""
    if value is None:
        return None
    return value[:length] if len(value) >= length else value


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build a context dict safe for logging. All values are redacted."""
    return {k: redact_value(v) for k, v in kwargs.items()}
