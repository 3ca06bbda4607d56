from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import Item, SupplyRequest, SupplyRequestLine
from backend.app.db.models.core_types import Period
from backend.services.errors import ValidationError
from backend.services.transaction import reading


@dataclass(frozen=True)
class PeriodRange:
    start: date
    end: date


@dataclass
class ItemConsumption:
    item_id: str
    item: str
    total_requested: int
    total_supplied: int


@dataclass
class UnfulfilledItem:
    item_id: str
    item: str
    total_requested: int


def period_range(kind: Period | str, anchor: date) -> PeriodRange:
    """
    Bornes calendaires (incluses) de la période contenant `anchor`.
    weekly = semaine ISO (lundi -> dimanche).
    """
    try:
        kind = Period(kind)
    except ValueError:
        raise ValidationError(f"Unknown period {kind!r}") from None

    if kind == Period.weekly:
        start = anchor - timedelta(days=anchor.weekday())
        return PeriodRange(start, start + timedelta(days=6))

    if kind == Period.monthly:
        last_day = calendar.monthrange(anchor.year, anchor.month)[1]
        return PeriodRange(anchor.replace(day=1), anchor.replace(day=last_day))

    return PeriodRange(date(anchor.year, 1, 1), date(anchor.year, 12, 31))


def _window(start: date, end: date) -> tuple[datetime, datetime]:
    # [start 00:00, end+1 00:00) : le dernier jour est compté en entier
    if end < start:
        raise ValidationError("end date is before start date")
    lower = datetime.combine(start, time.min, tzinfo=timezone.utc)
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return lower, upper


def aggregate_consumption(db: Session, start: date, end: date) -> list[ItemConsumption]:
    lower, upper = _window(start, end)

    requested = func.coalesce(func.sum(SupplyRequestLine.quantity_requested), 0).label("requested")
    supplied = func.coalesce(func.sum(SupplyRequestLine.quantity_supplied), 0).label("supplied")

    with reading(db, "aggregate_consumption"):
        rows = db.execute(
            select(Item.id, Item.name, requested, supplied)
            .join(SupplyRequestLine, SupplyRequestLine.item_id == Item.id)
            .join(SupplyRequest, SupplyRequest.id == SupplyRequestLine.request_id)
            .where(SupplyRequest.created_at >= lower)
            .where(SupplyRequest.created_at < upper)
            .group_by(Item.id, Item.name)
            .order_by(requested.desc(), Item.id.asc())
        ).all()

    return [
        ItemConsumption(item_id=iid, item=name, total_requested=int(req), total_supplied=int(sup))
        for iid, name, req, sup in rows
    ]


def unfulfilled_items(db: Session, start: date, end: date) -> list[UnfulfilledItem]:
    """Même fenêtre, uniquement les lignes jamais servies (quantity_supplied = 0)."""
    lower, upper = _window(start, end)

    requested = func.coalesce(func.sum(SupplyRequestLine.quantity_requested), 0).label("requested")

    with reading(db, "unfulfilled_items"):
        rows = db.execute(
            select(Item.id, Item.name, requested)
            .join(SupplyRequestLine, SupplyRequestLine.item_id == Item.id)
            .join(SupplyRequest, SupplyRequest.id == SupplyRequestLine.request_id)
            .where(SupplyRequest.created_at >= lower)
            .where(SupplyRequest.created_at < upper)
            .where(SupplyRequestLine.quantity_supplied == 0)
            .group_by(Item.id, Item.name)
            .order_by(requested.desc(), Item.id.asc())
        ).all()

    return [UnfulfilledItem(item_id=iid, item=name, total_requested=int(req)) for iid, name, req in rows]
