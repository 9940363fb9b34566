"""Tests for the pricing engine."""

from datetime import date
from decimal import Decimal

import pytest

from castlestay.domain.pricing import (
    TEST_SENTINEL_CENTS,
    average_seasonal_discount,
    combine_discounts,
    complete_weeks,
    compute_pricing,
    duration_discount_for,
    season_breakdown,
    seasonal_discount_for,
)


class TestSeasonalDiscount:
    @pytest.mark.parametrize(
        "night,expected",
        [
            (date(2026, 7, 15), Decimal("0")),
            (date(2026, 9, 30), Decimal("0")),
            (date(2026, 5, 1), Decimal("0.15")),
            (date(2026, 10, 31), Decimal("0.15")),
            (date(2026, 1, 10), Decimal("0.40")),
            (date(2026, 12, 24), Decimal("0.40")),
        ],
    )
    def test_per_night(self, night, expected):
        assert seasonal_discount_for(night) == expected

    def test_dorm_never_discounted(self):
        assert seasonal_discount_for(date(2026, 1, 10), "Tower Dorm") == Decimal("0")

    def test_night_weighted_average_is_rounded(self):
        # 3 summer nights + 4 medium nights -> 0.6/7 = 0.0857 -> 0.09
        result = average_seasonal_discount(date(2026, 9, 28), date(2026, 10, 5))
        assert result == Decimal("0.09")

    def test_breakdown_counts_nights_per_season(self):
        breakdown = season_breakdown(date(2026, 9, 28), date(2026, 10, 5))
        assert [(s["season"], s["nights"]) for s in breakdown] == [
            ("summer", 3),
            ("medium", 4),
        ]


class TestDurationDiscount:
    @pytest.mark.parametrize(
        "weeks,expected",
        [
            (0, Decimal("0")),
            (2, Decimal("0")),
            (3, Decimal("0.10")),
            (4, Decimal("0.13")),
            (12, Decimal("0.35")),
            (30, Decimal("0.35")),
        ],
    )
    def test_curve(self, weeks, expected):
        assert duration_discount_for(weeks) == expected

    def test_partial_week_does_not_count(self):
        assert complete_weeks(date(2026, 7, 1), date(2026, 7, 21)) == 2
        assert complete_weeks(date(2026, 7, 1), date(2026, 7, 22)) == 3


class TestCombineDiscounts:
    def test_multiplicative_not_additive(self):
        assert combine_discounts(Decimal("0.20"), Decimal("0.10")) == Decimal("0.28")

    def test_zero_plus_zero(self):
        assert combine_discounts(Decimal("0"), Decimal("0")) == Decimal("0")


class TestComputePricing:
    def test_summer_single_week(self):
        quote = compute_pricing(70000, date(2026, 7, 1), date(2026, 7, 8))
        assert quote.total_cents == 70000
        assert quote.nights == 7
        assert quote.nightly_rate_cents == 10000

    def test_low_season_week(self):
        quote = compute_pricing(70000, date(2026, 1, 5), date(2026, 1, 12))
        assert quote.seasonal_discount_pct == Decimal("0.40")
        assert quote.seasonal_discount_cents == 28000
        assert quote.total_cents == 42000

    def test_three_week_summer_stay_gets_duration_discount(self):
        quote = compute_pricing(70000, date(2026, 7, 1), date(2026, 7, 22))
        assert quote.complete_weeks == 3
        assert quote.duration_discount_pct == Decimal("0.10")
        assert quote.base_cost_cents == 210000
        assert quote.duration_discount_cents == 21000
        assert quote.total_cents == 189000
        assert quote.weekly_price_cents == 63000

    def test_breakdown_sums_to_total(self):
        quote = compute_pricing(83333, date(2026, 9, 20), date(2026, 10, 25))
        assert (
            quote.base_cost_cents
            - quote.seasonal_discount_cents
            - quote.duration_discount_cents
            == quote.total_cents
        )

    def test_seasonal_and_duration_stack_multiplicatively(self):
        # 21 January nights: seasonal 40%, duration 10% -> combined 46%
        quote = compute_pricing(70000, date(2026, 1, 5), date(2026, 1, 26))
        assert quote.combined_discount_pct == Decimal("0.46")
        assert quote.total_cents == 113400

    def test_test_category_short_circuits(self):
        quote = compute_pricing(
            70000, date(2026, 1, 5), date(2026, 2, 26), category="test"
        )
        assert quote.total_cents == TEST_SENTINEL_CENTS
        assert quote.seasonal_discount_cents == 0

    def test_free_accommodation(self):
        quote = compute_pricing(0, date(2026, 7, 1), date(2026, 7, 8))
        assert quote.total_cents == 0
        assert quote.nights == 7

    def test_inverted_range_is_zero(self):
        quote = compute_pricing(70000, date(2026, 7, 8), date(2026, 7, 1))
        assert quote.total_cents == 0
        assert quote.nights == 0

    def test_as_dict_serializes_percentages_as_strings(self):
        data = compute_pricing(70000, date(2026, 1, 5), date(2026, 1, 12)).as_dict()
        assert data["seasonal_discount_pct"] == "0.40"
        assert data["total_cents"] == 42000
