"""Tests for the Dutch auction price calculator."""

from datetime import datetime, timedelta, timezone

import pytest

from castlestay.domain.auction_price import (
    AuctionConfig,
    ConfigurationError,
    current_auction_price,
    next_price_drop_at,
    validate_auction_config,
)

START = datetime(2026, 3, 1, 0, 0, tzinfo=timezone.utc)


def _config(days=30, interval=1, active=True):
    return AuctionConfig(
        start_time=START,
        end_time=START + timedelta(days=days),
        price_drop_interval_hours=interval,
        is_active=active,
    )


class TestCurrentAuctionPrice:
    def test_halfway_through_thirty_day_window(self):
        price = current_auction_price(15000, 3000, _config(), START + timedelta(days=15))
        assert price == 9000

    def test_before_start_is_start_price(self):
        assert current_auction_price(15000, 3000, _config(), START - timedelta(hours=5)) == 15000

    def test_at_start_is_start_price(self):
        assert current_auction_price(15000, 3000, _config(), START) == 15000

    def test_at_and_after_end_is_floor(self):
        config = _config()
        assert current_auction_price(15000, 3000, config, config.end_time) == 3000
        assert current_auction_price(
            15000, 3000, config, config.end_time + timedelta(days=2)
        ) == 3000

    def test_partial_interval_does_not_drop(self):
        config = _config(interval=6)
        early = current_auction_price(15000, 3000, config, START + timedelta(hours=5, minutes=59))
        assert early == 15000

    def test_never_increases(self):
        config = _config()
        prices = [
            current_auction_price(15000, 3000, config, START + timedelta(hours=h))
            for h in range(0, 30 * 24 + 1, 7)
        ]
        assert all(a >= b for a, b in zip(prices, prices[1:]))
        assert all(3000 <= p <= 15000 for p in prices)

    def test_naive_now_is_treated_as_utc(self):
        naive = (START + timedelta(days=15)).replace(tzinfo=None)
        assert current_auction_price(15000, 3000, _config(), naive) == 9000

    def test_zero_interval_degrades_to_single_drop(self):
        config = _config(interval=0)
        assert current_auction_price(15000, 3000, config, START + timedelta(days=15)) == 15000
        assert current_auction_price(15000, 3000, config, config.end_time) == 3000

    def test_interval_longer_than_window_degrades(self):
        config = _config(days=1, interval=48)
        assert current_auction_price(15000, 3000, config, START + timedelta(hours=12)) == 15000


class TestValidateAuctionConfig:
    def test_valid(self):
        validate_auction_config(_config())

    def test_zero_interval(self):
        with pytest.raises(ConfigurationError):
            validate_auction_config(_config(interval=0))

    def test_inverted_window(self):
        config = AuctionConfig(
            start_time=START, end_time=START - timedelta(days=1), price_drop_interval_hours=1
        )
        with pytest.raises(ConfigurationError):
            validate_auction_config(config)

    def test_interval_exceeds_window(self):
        with pytest.raises(ConfigurationError):
            validate_auction_config(_config(days=1, interval=48))


class TestNextPriceDrop:
    def test_before_start(self):
        assert next_price_drop_at(_config(interval=2), START - timedelta(hours=1)) == (
            START + timedelta(hours=2)
        )

    def test_mid_interval(self):
        assert next_price_drop_at(_config(), START + timedelta(minutes=30)) == (
            START + timedelta(hours=1)
        )

    def test_after_end(self):
        config = _config()
        assert next_price_drop_at(config, config.end_time) is None

    def test_inactive(self):
        assert next_price_drop_at(_config(active=False), START) is None
