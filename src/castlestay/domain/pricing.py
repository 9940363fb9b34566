"""Pricing engine - seasonal and duration discounts for weekly rates.

Pure functions, no I/O. Money is integer cents; intermediate math uses
Decimal and is quantized half-up to whole cents.

Rounding contract: the night-weighted seasonal discount is rounded to 2
decimals BEFORE it is multiplied into any price. The rounded value is the
one persisted on the booking and the one shown in breakdowns, so a displayed
breakdown always matches the charged amount to the cent.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

TEST_CATEGORY = "test"
# Smallest chargeable amount, used for payment smoke tests
TEST_SENTINEL_CENTS = 50

NIGHTS_PER_WEEK = 7

SUMMER_DISCOUNT = Decimal("0")
MEDIUM_DISCOUNT = Decimal("0.15")
LOW_DISCOUNT = Decimal("0.40")

_SUMMER_MONTHS = frozenset({6, 7, 8, 9})
_MEDIUM_MONTHS = frozenset({5, 10})

DURATION_MIN_WEEKS = 3
DURATION_BASE_DISCOUNT = Decimal("0.10")
DURATION_STEP_PER_WEEK = Decimal("0.0278")
DURATION_MAX_DISCOUNT = Decimal("0.35")

_TWO_PLACES = Decimal("0.01")
_ONE_CENT = Decimal("1")


class InvalidPriceError(ValueError):
    """Raised when a caller-supplied price is unusable (e.g. negative credits)."""


def round_pct(value: Decimal) -> Decimal:
    """Round a discount fraction to 2 decimals, half-up."""
    return value.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


def to_cents(value: Decimal) -> int:
    """Quantize a Decimal amount of cents to a whole cent, half-up."""
    return int(value.quantize(_ONE_CENT, rounding=ROUND_HALF_UP))


def is_dorm(title: str | None) -> bool:
    return bool(title) and "dorm" in title.lower()


def season_name(discount: Decimal) -> str:
    if discount == SUMMER_DISCOUNT:
        return "summer"
    if discount == MEDIUM_DISCOUNT:
        return "medium"
    return "low"


def seasonal_discount_for(night: date, title: str | None = None) -> Decimal:
    """Seasonal discount fraction for a single night."""
    if is_dorm(title):
        return Decimal("0")
    if night.month in _SUMMER_MONTHS:
        return SUMMER_DISCOUNT
    if night.month in _MEDIUM_MONTHS:
        return MEDIUM_DISCOUNT
    return LOW_DISCOUNT


def _nights(check_in: date, check_out: date):
    current = check_in
    while current < check_out:
        yield current
        current += timedelta(days=1)


def season_breakdown(
    check_in: date, check_out: date, title: str | None = None
) -> list[dict]:
    """Night counts per season for a stay, in calendar order of first night.

    Returns:
        List of {"season", "discount", "nights"} dicts.
    """
    seasons: dict[str, dict] = {}
    for night in _nights(check_in, check_out):
        discount = seasonal_discount_for(night, title)
        name = season_name(discount)
        entry = seasons.setdefault(
            name, {"season": name, "discount": discount, "nights": 0}
        )
        entry["nights"] += 1
    return list(seasons.values())


def average_seasonal_discount(
    check_in: date, check_out: date, title: str | None = None
) -> Decimal:
    """Night-weighted seasonal discount, rounded to 2 decimals."""
    breakdown = season_breakdown(check_in, check_out, title)
    total_nights = sum(s["nights"] for s in breakdown)
    if total_nights == 0:
        return Decimal("0")
    weighted = sum(s["discount"] * s["nights"] for s in breakdown)
    return round_pct(weighted / total_nights)


def complete_weeks(check_in: date, check_out: date) -> int:
    """Complete weeks in a stay; trailing partial days do not count."""
    nights = (check_out - check_in).days
    return max(nights, 0) // NIGHTS_PER_WEEK


def duration_discount_for(weeks: int) -> Decimal:
    """Duration discount fraction for a number of complete weeks."""
    if weeks < DURATION_MIN_WEEKS:
        return Decimal("0")
    raw = DURATION_BASE_DISCOUNT + DURATION_STEP_PER_WEEK * (weeks - DURATION_MIN_WEEKS)
    return round_pct(min(raw, DURATION_MAX_DISCOUNT))


def combine_discounts(seasonal: Decimal, duration: Decimal) -> Decimal:
    """Multiplicative stacking: 1 - (1 - s)(1 - d)."""
    return 1 - (1 - seasonal) * (1 - duration)


@dataclass(frozen=True)
class PriceQuote:
    """Price of a stay plus the breakdown persisted on the booking.

    Percentages are fractions (0.28 == 28%). Amounts are cents and satisfy
    base_cost_cents - seasonal_discount_cents - duration_discount_cents
    == total_cents.
    """

    total_cents: int
    base_cost_cents: int
    seasonal_discount_pct: Decimal
    duration_discount_pct: Decimal
    combined_discount_pct: Decimal
    seasonal_discount_cents: int
    duration_discount_cents: int
    weekly_price_cents: int
    nightly_rate_cents: int
    nights: int
    complete_weeks: int

    def as_dict(self) -> dict:
        return {
            "total_cents": self.total_cents,
            "base_cost_cents": self.base_cost_cents,
            "seasonal_discount_pct": str(self.seasonal_discount_pct),
            "duration_discount_pct": str(self.duration_discount_pct),
            "combined_discount_pct": str(self.combined_discount_pct),
            "seasonal_discount_cents": self.seasonal_discount_cents,
            "duration_discount_cents": self.duration_discount_cents,
            "weekly_price_cents": self.weekly_price_cents,
            "nightly_rate_cents": self.nightly_rate_cents,
            "nights": self.nights,
            "complete_weeks": self.complete_weeks,
        }


def _zero_quote(nights: int) -> PriceQuote:
    return PriceQuote(
        total_cents=0,
        base_cost_cents=0,
        seasonal_discount_pct=Decimal("0"),
        duration_discount_pct=Decimal("0"),
        combined_discount_pct=Decimal("0"),
        seasonal_discount_cents=0,
        duration_discount_cents=0,
        weekly_price_cents=0,
        nightly_rate_cents=0,
        nights=nights,
        complete_weeks=max(nights, 0) // NIGHTS_PER_WEEK,
    )


def _sentinel_quote(nights: int) -> PriceQuote:
    return PriceQuote(
        total_cents=TEST_SENTINEL_CENTS,
        base_cost_cents=TEST_SENTINEL_CENTS,
        seasonal_discount_pct=Decimal("0"),
        duration_discount_pct=Decimal("0"),
        combined_discount_pct=Decimal("0"),
        seasonal_discount_cents=0,
        duration_discount_cents=0,
        weekly_price_cents=TEST_SENTINEL_CENTS,
        nightly_rate_cents=TEST_SENTINEL_CENTS,
        nights=max(nights, 0),
        complete_weeks=max(nights, 0) // NIGHTS_PER_WEEK,
    )


def compute_pricing(
    base_weekly_cents: int,
    check_in: date,
    check_out: date,
    *,
    title: str | None = None,
    category: str | None = None,
) -> PriceQuote:
    """Price a stay from a weekly base rate.

    Args:
        base_weekly_cents: Undiscounted price of one week, in cents.
        check_in: First night (inclusive).
        check_out: Departure day (exclusive).
        title: Accommodation title (dorm detection).
        category: Accommodation category; "test" returns the sentinel price.

    Returns:
        PriceQuote. Free accommodations and empty/inverted ranges yield a
        zero-cost quote rather than an error.
    """
    nights = (check_out - check_in).days

    if category == TEST_CATEGORY:
        return _sentinel_quote(nights)

    if base_weekly_cents <= 0 or nights <= 0:
        return _zero_quote(max(nights, 0))

    weeks = nights // NIGHTS_PER_WEEK
    seasonal = average_seasonal_discount(check_in, check_out, title)
    duration = duration_discount_for(weeks)
    combined = combine_discounts(seasonal, duration)

    base_weekly = Decimal(base_weekly_cents)
    base_cost = base_weekly * nights / NIGHTS_PER_WEEK

    base_cost_cents = to_cents(base_cost)
    seasonal_cents = to_cents(base_cost * seasonal)
    after_seasonal = base_cost * (1 - seasonal)
    duration_cents = to_cents(after_seasonal * duration)
    total_cents = base_cost_cents - seasonal_cents - duration_cents

    weekly_price_cents = to_cents(base_weekly * (1 - combined))

    return PriceQuote(
        total_cents=total_cents,
        base_cost_cents=base_cost_cents,
        seasonal_discount_pct=seasonal,
        duration_discount_pct=duration,
        combined_discount_pct=combined,
        seasonal_discount_cents=seasonal_cents,
        duration_discount_cents=duration_cents,
        weekly_price_cents=weekly_price_cents,
        nightly_rate_cents=to_cents(Decimal(total_cents) / nights),
        nights=nights,
        complete_weeks=weeks,
    )
