from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field


class RowErrorOut(BaseModel):
    row: int
    message: str

    class Config:
        from_attributes = True


class IngestResultOut(BaseModel):
    imported: int
    skipped: int
    errors: list[RowErrorOut]

    class Config:
        from_attributes = True


class StockRegister(BaseModel):
    item_id: str = Field(min_length=1, max_length=64)
    quantity: int = Field(gt=0)
    name: str | None = Field(default=None, max_length=255)
    presentation: str | None = Field(default=None, max_length=32)
    lot_id: str | None = Field(default=None, max_length=64)
    received_date: date | None = None
    expiration_date: date | None = None


class ItemOut(BaseModel):
    id: str
    name: str
    presentation: str
    quantity: int
    lot_id: str | None = None
    lab_id: int | None = None

    class Config:
        from_attributes = True


class StockAlertOut(BaseModel):
    item_id: str
    name: str
    presentation: str
    quantity: int
    lot_id: str | None = None
    expiration_date: date | None = None
    reasons: list[str]

    class Config:
        from_attributes = True
