"""Availability and price quote endpoints (read-only)."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from castlestay.domain.availability import InvalidDateRangeError, get_availability
from castlestay.domain.pricing import compute_pricing, season_breakdown
from castlestay.infra.db import txn
from castlestay.infra.repositories.accommodations_repository import get_accommodation

router = APIRouter(tags=["availability"])


class QuoteRequest(BaseModel):
    """Either accommodation_id or base_weekly_cents must be given."""

    check_in: date
    check_out: date
    accommodation_id: str | None = None
    base_weekly_cents: int | None = Field(default=None, ge=0)
    title: str | None = None
    category: str | None = None


@router.get("/availability")
def availability(
    check_in: date,
    check_out: date,
    accommodation_id: list[str] = Query(...),
) -> dict:
    """Display availability for one or more accommodations."""
    try:
        items = get_availability(accommodation_id, check_in, check_out)
    except InvalidDateRangeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "check_in": check_in.isoformat(),
        "check_out": check_out.isoformat(),
        "items": items,
    }


@router.post("/pricing/quote")
def quote(body: QuoteRequest) -> dict:
    """Price a stay from an accommodation or an explicit weekly base rate."""
    title, category = body.title, body.category

    if body.accommodation_id is not None:
        with txn() as cur:
            acc = get_accommodation(cur, body.accommodation_id)
        if acc is None:
            raise HTTPException(status_code=404, detail="Accommodation not found")
        base_weekly_cents = acc["base_price_cents"]
        title, category = acc["title"], acc["category"]
    elif body.base_weekly_cents is not None:
        base_weekly_cents = body.base_weekly_cents
    else:
        raise HTTPException(
            status_code=422,
            detail="accommodation_id or base_weekly_cents is required",
        )

    result = compute_pricing(
        base_weekly_cents,
        body.check_in,
        body.check_out,
        title=title,
        category=category,
    )
    seasons = season_breakdown(body.check_in, body.check_out, title)

    return {
        **result.as_dict(),
        "seasons": [
            {"season": s["season"], "discount": str(s["discount"]), "nights": s["nights"]}
            for s in seasons
        ],
    }
