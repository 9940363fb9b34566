"""Tests for booking settings loaded from the environment."""

from datetime import timedelta

import pytest

from castlestay.infra.settings import get_booking_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("PENDING_GRACE_MINUTES", "RECONCILE_MAX_ATTEMPTS", "BOOKING_CURRENCY"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = get_booking_settings()
    assert settings.pending_grace == timedelta(minutes=5)
    assert settings.reconcile_max_attempts == 3
    assert settings.currency == "eur"


def test_overrides(monkeypatch):
    monkeypatch.setenv("PENDING_GRACE_MINUTES", "15")
    monkeypatch.setenv("RECONCILE_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("BOOKING_CURRENCY", "GBP")
    settings = get_booking_settings()
    assert settings.pending_grace == timedelta(minutes=15)
    assert settings.reconcile_max_attempts == 5
    assert settings.currency == "gbp"


@pytest.mark.parametrize("raw", ["abc", "0", "-3"])
def test_invalid_values_rejected(monkeypatch, raw):
    monkeypatch.setenv("PENDING_GRACE_MINUTES", raw)
    with pytest.raises(RuntimeError, match="PENDING_GRACE_MINUTES"):
        get_booking_settings()
