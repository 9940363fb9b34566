"""Dutch auction endpoints: price polling, purchase, purchase cancellation."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from castlestay.api.auth import CurrentUser, get_current_user
from castlestay.domain.auction import (
    AlreadySoldError,
    AuctionItemNotFoundError,
    AuctionNotActiveError,
    AuctionPurchaseNotFoundError,
    cancel_auction_purchase,
    get_auction_price,
    purchase_auction_item,
)
from castlestay.observability.correlation import get_correlation_id

router = APIRouter(prefix="/auction/items", tags=["auction"])


class CancelPurchaseRequest(BaseModel):
    reason: str


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@router.get("/{item_id}/price")
def read_price(item_id: str, at: datetime | None = None) -> dict:
    """Current price; the UI polls this and treats it as a prediction."""
    try:
        result = get_auction_price(item_id, at_time=at)
    except AuctionItemNotFoundError:
        raise HTTPException(status_code=404, detail="Auction item not found")

    return {
        **result,
        "next_drop_at": _iso(result["next_drop_at"]),
        "at": _iso(result["at"]),
    }


@router.post("/{item_id}/purchase", status_code=201)
def purchase(
    item_id: str,
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Buy the item at the price computed inside the purchase transaction."""
    try:
        result = purchase_auction_item(
            item_id=item_id,
            user_id=user.id,
            correlation_id=get_correlation_id(),
        )
    except AuctionItemNotFoundError:
        raise HTTPException(status_code=404, detail="Auction item not found")
    except AuctionNotActiveError:
        raise HTTPException(status_code=409, detail="auction_not_active")
    except AlreadySoldError:
        raise HTTPException(status_code=409, detail="already_sold")

    return {**result, "purchased_at": _iso(result["purchased_at"])}


@router.post("/{item_id}/cancel")
def cancel_purchase(
    item_id: str,
    body: CancelPurchaseRequest,
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    try:
        return cancel_auction_purchase(
            item_id=item_id,
            user_id=user.id,
            reason=body.reason,
            correlation_id=get_correlation_id(),
        )
    except (AuctionItemNotFoundError, AuctionPurchaseNotFoundError):
        raise HTTPException(status_code=404, detail="Purchase not found")
