"""Operational settings for the booking core.

All values come from environment variables and are read at call time so
tests can override them with monkeypatch.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta

DEFAULT_PENDING_GRACE_MINUTES = 5
DEFAULT_RECONCILE_MAX_ATTEMPTS = 3
DEFAULT_CURRENCY = "eur"


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")
    if value < 1:
        raise RuntimeError(f"{name} must be >= 1, got {value}")
    return value


@dataclass(frozen=True)
class BookingSettings:
    """Tunable knobs of the reservation lifecycle.

    Attributes:
        pending_grace: How long a pending (unpaid) booking is shown as
            holding capacity before the sweep may cancel it.
        reconcile_max_attempts: Bounded retries when finalizing a paid booking.
        currency: ISO currency code used for payment intents.
    """

    pending_grace: timedelta = timedelta(minutes=DEFAULT_PENDING_GRACE_MINUTES)
    reconcile_max_attempts: int = DEFAULT_RECONCILE_MAX_ATTEMPTS
    currency: str = DEFAULT_CURRENCY


def get_booking_settings() -> BookingSettings:
    """Load BookingSettings from the environment."""
    return BookingSettings(
        pending_grace=timedelta(
            minutes=_int_env("PENDING_GRACE_MINUTES", DEFAULT_PENDING_GRACE_MINUTES)
        ),
        reconcile_max_attempts=_int_env(
            "RECONCILE_MAX_ATTEMPTS", DEFAULT_RECONCILE_MAX_ATTEMPTS
        ),
        currency=os.environ.get("BOOKING_CURRENCY", DEFAULT_CURRENCY).lower(),
    )
