from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from backend.app.db.models.core_types import RequestStatus, ServiceType


class PatientIn(BaseModel):
    national_id: str = Field(min_length=1, max_length=18)
    first_name: str = Field(min_length=1, max_length=120)
    paternal_surname: str | None = Field(default=None, max_length=120)
    maternal_surname: str | None = Field(default=None, max_length=120)
    gender: str | None = Field(default=None, max_length=16)
    age: int | None = Field(default=None, ge=0)
    birth_date: date | None = None
    address: str | None = None


class RequestMetaIn(BaseModel):
    service_type: ServiceType
    service_sub_id: int
    requester_name: str = Field(min_length=1, max_length=200)
    diagnosis: str | None = None
    priority: str | None = Field(default=None, max_length=32)


class RequestLineIn(BaseModel):
    item_id: str = Field(min_length=1, max_length=64)
    quantity_requested: int = Field(gt=0)
    presentation: str | None = Field(default=None, max_length=32)


class RequestCreate(BaseModel):
    patient: PatientIn
    request: RequestMetaIn
    lines: list[RequestLineIn] = Field(min_length=1)


class RequestCreated(BaseModel):
    id: int


class FulfillmentLineIn(BaseModel):
    item_id: str = Field(min_length=1, max_length=64)
    quantity_supplied: int = Field(ge=0)
    justification: str | None = None


class FulfillmentIn(BaseModel):
    status: RequestStatus
    lines: list[FulfillmentLineIn] = Field(min_length=1)


class SuppliedLineOut(BaseModel):
    item_id: str
    quantity_supplied: int
    stock_after: int | None = None

    class Config:
        from_attributes = True


class FulfillmentOut(BaseModel):
    request_id: int
    status: RequestStatus
    justification: str
    closed_at: datetime
    lines: list[SuppliedLineOut]

    class Config:
        from_attributes = True
