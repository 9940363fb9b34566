"""Single-winner purchase coordinator for auctioned accommodations.

An auction item is one unit, so no quantity is tracked: the purchase is a
single conditional UPDATE ... WHERE auction_buyer_id IS NULL. The first
writer matches the row; every later writer matches zero rows and gets
AlreadySoldError. The sale price is recomputed from the active schedule at
transaction time; the cached price column is display-only.

auction_buyer_id is write-once. Cancelling a purchase marks it cancelled
and appends history; it never clears the buyer.
"""

from __future__ import annotations

from datetime import datetime

from castlestay.domain.auction_price import current_auction_price, next_price_drop_at
from castlestay.infra.db import db_now, txn
from castlestay.infra.repositories.accommodations_repository import get_accommodation
from castlestay.infra.repositories.auction_repository import (
    claim_auction_item,
    get_active_auction_config,
    insert_auction_history,
    list_unsold_auction_items,
    mark_purchase_cancelled,
    update_cached_price,
)
from castlestay.infra.repositories.outbox_repository import emit_event
from castlestay.infra.time import as_utc
from castlestay.observability.logging import get_logger
from castlestay.observability.redaction import safe_log_context

logger = get_logger(__name__)

ACTION_PURCHASE = "purchase"
ACTION_CANCELLATION = "cancellation"


class AuctionItemNotFoundError(Exception):
    """Item does not exist or is not in the auction."""


class AuctionNotActiveError(Exception):
    """No active auction schedule."""


class AlreadySoldError(Exception):
    """Another buyer already won the item."""

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Auction item {item_id} is already sold")


class AuctionPurchaseNotFoundError(Exception):
    """The user holds no purchase of this item."""


def _load_item(cur, item_id: str, *, lock: bool = False) -> dict:
    item = get_accommodation(cur, item_id, lock=lock)
    if item is None or not item["is_in_auction"]:
        raise AuctionItemNotFoundError(f"Auction item not found: {item_id}")
    return item


def purchase_auction_item(
    *,
    item_id: str,
    user_id: str,
    now: datetime | None = None,
    correlation_id: str | None = None,
) -> dict:
    """Buy an auction item at its current price.

    For N concurrent callers on a never-sold item exactly one succeeds.

    Args:
        item_id: Accommodation UUID of the auction item.
        user_id: Buyer (auth subject).
        now: Clock override; defaults to the database transaction time.
        correlation_id: Optional correlation ID for tracing.

    Returns:
        Dict with item_id, buyer_id, purchase_price_cents, purchased_at.

    Raises:
        AuctionItemNotFoundError: If the item is not an auction item.
        AuctionNotActiveError: If no auction schedule is active.
        AlreadySoldError: If another buyer already won the item.
    """
    with txn() as cur:
        item = _load_item(cur, item_id)

        config = get_active_auction_config(cur)
        if config is None or not config.is_active:
            raise AuctionNotActiveError("No active auction")

        if item["auction_buyer_id"] is not None:
            raise AlreadySoldError(item_id)

        at = as_utc(now) if now is not None else db_now(cur)
        price = current_auction_price(
            item["auction_start_price_cents"],
            item["auction_floor_price_cents"],
            config,
            at,
        )

        if not claim_auction_item(
            cur, item_id=item_id, user_id=user_id, price_cents=price, purchased_at=at
        ):
            raise AlreadySoldError(item_id)

        insert_auction_history(
            cur,
            item_id=item_id,
            user_id=user_id,
            action_type=ACTION_PURCHASE,
            price_cents=price,
        )
        emit_event(
            cur,
            event_type="AUCTION_ITEM_PURCHASED",
            aggregate_type="auction_item",
            aggregate_id=item_id,
            payload={"price_cents": price, "tier": item["auction_tier"]},
            correlation_id=correlation_id,
        )

    logger.info(
        "auction item purchased",
        extra={
            "extra_fields": safe_log_context(
                item_id=item_id,
                price_cents=price,
                tier=item["auction_tier"],
            )
        },
    )
    return {
        "item_id": item_id,
        "buyer_id": user_id,
        "purchase_price_cents": price,
        "purchased_at": at,
    }


def get_auction_price(item_id: str, at_time: datetime | None = None) -> dict:
    """Current (or at_time) price of an auction item.

    Sold items report their frozen purchase price. Without an active
    schedule the start price is reported.

    Raises:
        AuctionItemNotFoundError: If the item is not an auction item.
    """
    with txn() as cur:
        item = _load_item(cur, item_id)
        config = get_active_auction_config(cur)
        at = as_utc(at_time) if at_time is not None else db_now(cur)

    start = item["auction_start_price_cents"]
    floor = item["auction_floor_price_cents"]
    is_sold = item["auction_buyer_id"] is not None
    active = config is not None and config.is_active

    if is_sold:
        price = item["auction_purchase_price_cents"]
    elif active:
        price = current_auction_price(start, floor, config, at)
    else:
        price = start

    return {
        "item_id": item_id,
        "tier": item["auction_tier"],
        "price_cents": price,
        "start_price_cents": start,
        "floor_price_cents": floor,
        "is_sold": is_sold,
        "auction_active": active,
        "next_drop_at": next_price_drop_at(config, at) if active and not is_sold else None,
        "at": at,
    }


def cancel_auction_purchase(
    *,
    item_id: str,
    user_id: str,
    reason: str,
    now: datetime | None = None,
    correlation_id: str | None = None,
) -> dict:
    """Cancel a purchase. The buyer stays recorded; history gets a row.

    Returns:
        {"status": "cancelled", ...} or {"status": "noop"} if already cancelled.

    Raises:
        AuctionItemNotFoundError: If the item is not an auction item.
        AuctionPurchaseNotFoundError: If user_id is not the buyer.
    """
    with txn() as cur:
        item = _load_item(cur, item_id, lock=True)
        if item["auction_buyer_id"] != user_id:
            raise AuctionPurchaseNotFoundError(
                f"No purchase of {item_id} by this user"
            )
        if item["auction_purchase_cancelled_at"] is not None:
            return {"status": "noop", "item_id": item_id}

        at = as_utc(now) if now is not None else db_now(cur)
        config = get_active_auction_config(cur)
        if config is not None and config.is_active:
            price = current_auction_price(
                item["auction_start_price_cents"],
                item["auction_floor_price_cents"],
                config,
                at,
            )
        else:
            price = item["auction_purchase_price_cents"]

        mark_purchase_cancelled(cur, item_id=item_id, user_id=user_id)
        insert_auction_history(
            cur,
            item_id=item_id,
            user_id=user_id,
            action_type=ACTION_CANCELLATION,
            price_cents=price,
            notes=reason,
        )
        emit_event(
            cur,
            event_type="AUCTION_PURCHASE_CANCELLED",
            aggregate_type="auction_item",
            aggregate_id=item_id,
            payload={
                "price_cents": price,
                "purchase_price_cents": item["auction_purchase_price_cents"],
            },
            correlation_id=correlation_id,
        )

    logger.info(
        "auction purchase cancelled",
        extra={"extra_fields": safe_log_context(item_id=item_id, price_cents=price)},
    )
    return {
        "status": "cancelled",
        "item_id": item_id,
        "price_at_cancellation_cents": price,
    }


def refresh_cached_auction_prices(now: datetime | None = None) -> int:
    """Rewrite the display cache of every unsold auction item.

    Returns:
        Number of items whose cached price changed.
    """
    updated = 0
    with txn() as cur:
        config = get_active_auction_config(cur)
        if config is None or not config.is_active:
            return 0
        at = as_utc(now) if now is not None else db_now(cur)

        for item in list_unsold_auction_items(cur):
            price = current_auction_price(
                item["auction_start_price_cents"],
                item["auction_floor_price_cents"],
                config,
                at,
            )
            if price == item["auction_current_price_cents"]:
                continue
            if update_cached_price(cur, item_id=item["id"], price_cents=price, updated_at=at):
                updated += 1

    logger.info(
        "auction prices refreshed",
        extra={"extra_fields": safe_log_context(updated=updated, at=at)},
    )
    return updated
