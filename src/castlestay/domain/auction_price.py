"""Dutch auction price calculator.

Pure functions of (start price, floor price, auction config, clock).
The price is recomputed on every read; any stored current-price column is
only a display cache.

Algorithm:
    now < start            -> start price
    now >= end             -> floor price
    otherwise              -> start - drops * (start - floor) / total_drops,
                              clamped to [floor, start]
where drops and total_drops count whole drop intervals (whole hours,
truncated, floored by the interval).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from castlestay.infra.time import as_utc, whole_hours_between


class ConfigurationError(ValueError):
    """Auction configuration is unusable (zero interval, inverted window)."""


@dataclass(frozen=True)
class AuctionConfig:
    """Schedule shared by every auction tier."""

    start_time: datetime
    end_time: datetime
    price_drop_interval_hours: int
    is_active: bool = True

    @property
    def total_hours(self) -> int:
        return whole_hours_between(self.start_time, self.end_time)

    @property
    def total_drops(self) -> int:
        """Number of scheduled drops, 0 when the schedule is degenerate."""
        if self.price_drop_interval_hours <= 0 or self.total_hours <= 0:
            return 0
        return self.total_hours // self.price_drop_interval_hours


def validate_auction_config(config: AuctionConfig) -> None:
    """Strict validation for admin tooling.

    The price calculator itself never raises on a bad config; it degrades
    to a single drop from start to floor at end_time.

    Raises:
        ConfigurationError: If the schedule cannot produce a drop.
    """
    if as_utc(config.end_time) <= as_utc(config.start_time):
        raise ConfigurationError("auction end_time must be after start_time")
    if config.price_drop_interval_hours <= 0:
        raise ConfigurationError("price_drop_interval_hours must be positive")
    if config.total_drops == 0:
        raise ConfigurationError(
            "price_drop_interval_hours exceeds the auction window"
        )


def current_auction_price(
    start_price_cents: int,
    floor_price_cents: int,
    config: AuctionConfig,
    now: datetime,
) -> int:
    """Current auction price in cents.

    Args:
        start_price_cents: Opening price.
        floor_price_cents: Reserve price the auction never goes below.
        config: Auction schedule.
        now: Clock reading; injected so the result is deterministic.

    Returns:
        Price in cents, within [floor, start].
    """
    now = as_utc(now)
    start = as_utc(config.start_time)
    end = as_utc(config.end_time)
    ceiling = max(start_price_cents, floor_price_cents)

    if now < start:
        return ceiling
    if now >= end:
        return floor_price_cents

    total_drops = config.total_drops
    if total_drops == 0:
        # Degenerate schedule: single drop to floor at end_time
        return ceiling

    drops = whole_hours_between(start, now) // config.price_drop_interval_hours
    spread = Decimal(ceiling - floor_price_cents)
    reduction = Decimal(drops) * spread / Decimal(total_drops)
    price = Decimal(ceiling) - reduction
    price = max(price, Decimal(floor_price_cents))
    price = min(price, Decimal(ceiling))
    return int(price.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def next_price_drop_at(config: AuctionConfig, now: datetime) -> datetime | None:
    """Timestamp of the next scheduled drop, or None if no drop is ahead."""
    if not config.is_active or config.total_drops == 0:
        return None

    now = as_utc(now)
    start = as_utc(config.start_time)
    end = as_utc(config.end_time)
    interval = timedelta(hours=config.price_drop_interval_hours)

    if now < start:
        return start + interval
    if now >= end:
        return None

    drops_so_far = whole_hours_between(start, now) // config.price_drop_interval_hours
    next_drop = start + interval * (drops_so_far + 1)
    if next_drop > end:
        return None
    return next_drop
