from __future__ import annotations

from datetime import date

from pydantic import BaseModel

from backend.app.db.models.core_types import Period


class ItemConsumptionOut(BaseModel):
    item_id: str
    item: str
    total_requested: int
    total_supplied: int

    class Config:
        from_attributes = True


class UnfulfilledItemOut(BaseModel):
    item_id: str
    item: str
    total_requested: int

    class Config:
        from_attributes = True


class StatisticsOut(BaseModel):
    period: Period
    start: date
    end: date
    items: list[ItemConsumptionOut]


class UnfulfilledOut(BaseModel):
    period: Period
    start: date
    end: date
    items: list[UnfulfilledItemOut]
