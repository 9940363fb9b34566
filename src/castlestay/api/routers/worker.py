"""Worker/internal routes (APP_ROLE=worker)."""

from fastapi import APIRouter

from castlestay.api.routes import tasks_auction, tasks_bookings, tasks_stripe

router = APIRouter()


@router.get("/tasks/health")
def tasks_health() -> dict:
    """Tasks subsystem health check."""
    return {"status": "ok", "subsystem": "tasks"}


router.include_router(tasks_bookings.router)
router.include_router(tasks_stripe.router)
router.include_router(tasks_auction.router)
