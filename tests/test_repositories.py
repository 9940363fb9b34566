"""Tests for repository guards (mocked cursors, plus Postgres where set)."""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest

from castlestay.infra.repositories.alerts_repository import insert_booking_alert
from castlestay.infra.repositories.bookings_repository import amount_due_cents, mark_confirmed
from castlestay.infra.repositories.credits_repository import (
    InsufficientCreditsError,
    debit_for_booking,
    get_balance,
    pending_credits_cents,
)
from castlestay.infra.repositories.processed_events_repository import record_processed


def _cursor(*rowcounts):
    """Cursor whose rowcount follows the given sequence, one per execute."""
    cur = MagicMock()
    counts = iter(rowcounts)

    def _execute(*args, **kwargs):
        cur.rowcount = next(counts)

    cur.execute.side_effect = _execute
    return cur


class TestDebitForBooking:
    def test_debits_once(self):
        cur = _cursor(1, 1)
        assert debit_for_booking(cur, user_id="u", booking_id="b", amount_cents=500) is True
        assert cur.execute.call_count == 2

    def test_second_debit_is_noop(self):
        cur = _cursor(0)
        assert debit_for_booking(cur, user_id="u", booking_id="b", amount_cents=500) is False
        assert cur.execute.call_count == 1

    def test_balance_never_negative(self):
        cur = _cursor(1, 0)
        with pytest.raises(InsufficientCreditsError):
            debit_for_booking(cur, user_id="u", booking_id="b", amount_cents=500)

    def test_zero_amount_skips_ledger(self):
        cur = _cursor()
        assert debit_for_booking(cur, user_id="u", booking_id="b", amount_cents=0) is False
        cur.execute.assert_not_called()


class TestBalanceLock:
    def test_locked_read_uses_for_update(self):
        cur = MagicMock()
        cur.fetchone.return_value = (2500,)
        assert get_balance(cur, "u", lock=True) == 2500
        assert cur.execute.call_args[0][0].endswith("FOR UPDATE")

    def test_missing_row_is_zero(self):
        cur = MagicMock()
        cur.fetchone.return_value = None
        assert get_balance(cur, "u") == 0
        assert "FOR UPDATE" not in cur.execute.call_args[0][0]

    def test_pending_credits_sums_pending_bookings(self):
        cur = MagicMock()
        cur.fetchone.return_value = (1500,)
        assert pending_credits_cents(cur, "u") == 1500
        sql, params = cur.execute.call_args[0]
        assert "status = 'pending'" in sql
        assert params == ("u",)


class TestGuards:
    def test_mark_confirmed_only_from_pending(self):
        cur = _cursor(0)
        assert mark_confirmed(cur, booking_id="b", payment_ref="pi_1") is False
        assert "status = 'pending'" in cur.execute.call_args[0][0]

    def test_processed_event_dedupe(self):
        assert record_processed(_cursor(1), source="stripe", external_id="evt_1") is True
        assert record_processed(_cursor(0), source="stripe", external_id="evt_1") is False

    def test_open_alert_exists(self):
        cur = MagicMock()
        cur.fetchone.return_value = None
        alert_id = insert_booking_alert(
            cur,
            booking_id="b",
            payment_ref="pi_1",
            amount_cents=100,
            error_class="OperationalError",
            detail=None,
            attempts=3,
        )
        assert alert_id is None

    def test_amount_due_never_negative(self):
        assert amount_due_cents({"total_price_cents": 100, "credits_applied_cents": 300}) == 0
        assert amount_due_cents({"total_price_cents": 300, "credits_applied_cents": 100}) == 200


_skip_no_db = pytest.mark.skipif(
    not os.environ.get("DATABASE_URL"),
    reason="DATABASE_URL not set - skipping DB integration tests",
)


@_skip_no_db
class TestCreditsIntegration:
    @pytest.fixture
    def booking(self):
        from castlestay.infra.db import txn

        with txn() as cur:
            cur.execute(
                """
                INSERT INTO bookings (user_id, check_in, check_out, total_price_cents, credits_applied_cents)
                VALUES ('credit-user', '2031-01-01', '2031-01-08', 10000, 3000)
                RETURNING id
                """
            )
            booking_id = str(cur.fetchone()[0])
            cur.execute(
                """
                INSERT INTO user_credits (user_id, balance_cents) VALUES ('credit-user', 5000)
                ON CONFLICT (user_id) DO UPDATE SET balance_cents = 5000
                """
            )
        yield booking_id
        with txn() as cur:
            cur.execute("DELETE FROM credit_transactions WHERE booking_id = %s", (booking_id,))
            cur.execute("DELETE FROM user_credits WHERE user_id = 'credit-user'")
            cur.execute("DELETE FROM bookings WHERE id = %s", (booking_id,))

    def test_double_debit_takes_credits_once(self, booking):
        from castlestay.infra.db import txn
        from castlestay.infra.repositories.credits_repository import get_balance

        with txn() as cur:
            assert debit_for_booking(cur, user_id="credit-user", booking_id=booking, amount_cents=3000)
        with txn() as cur:
            assert not debit_for_booking(cur, user_id="credit-user", booking_id=booking, amount_cents=3000)
        with txn() as cur:
            assert get_balance(cur, "credit-user") == 2000
