"""Public-facing routes (APP_ROLE=public)."""

from fastapi import APIRouter

from castlestay.api.routes import auction, availability, bookings, webhooks_stripe

router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


router.include_router(availability.router)
router.include_router(bookings.router)
router.include_router(auction.router)
router.include_router(webhooks_stripe.router)
