from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db, require_capability
from backend.app.db.models.core_types import Period
from backend.app.schemas.statistics import StatisticsOut, UnfulfilledOut
from backend.services.statistics import aggregate_consumption, period_range, unfulfilled_items

router = APIRouter(
    prefix="/statistics",
    dependencies=[Depends(require_capability("view_statistics"))],
)


def _resolve_anchor(period: Period, anchor: date | None, year: int | None, month: int | None) -> date:
    """anchor=YYYY-MM-DD, ou year(+month) comme l'écran de stats les envoie."""
    if anchor is not None:
        return anchor
    try:
        if period == Period.monthly and year and month:
            return date(year, month, 1)
        if period == Period.annual and year:
            return date(year, 1, 1)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    raise HTTPException(status_code=400, detail="Invalid period parameters")


@router.get("/unfulfilled/{period}", response_model=UnfulfilledOut)
def get_unfulfilled(
    period: Period,
    anchor: date | None = None,
    year: int | None = None,
    month: int | None = None,
    db: Session = Depends(get_db),
):
    rng = period_range(period, _resolve_anchor(period, anchor, year, month))
    return {
        "period": period,
        "start": rng.start,
        "end": rng.end,
        "items": unfulfilled_items(db, rng.start, rng.end),
    }


@router.get("/{period}", response_model=StatisticsOut)
def get_statistics(
    period: Period,
    anchor: date | None = None,
    year: int | None = None,
    month: int | None = None,
    db: Session = Depends(get_db),
):
    rng = period_range(period, _resolve_anchor(period, anchor, year, month))
    return {
        "period": period,
        "start": rng.start,
        "end": rng.end,
        "items": aggregate_consumption(db, rng.start, rng.end),
    }
