"""Worker route for refreshing cached auction prices."""

from fastapi import APIRouter, Depends

from castlestay.api.task_auth import require_task_auth
from castlestay.domain.auction import refresh_cached_auction_prices

router = APIRouter(
    prefix="/tasks/auction",
    tags=["tasks"],
    dependencies=[Depends(require_task_auth)],
)


@router.post("/refresh-prices")
def handle_refresh_prices() -> dict:
    """Recompute the display price column of unsold auction items."""
    return {"ok": True, "updated": refresh_cached_auction_prices()}
