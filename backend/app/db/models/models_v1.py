from __future__ import annotations

from datetime import datetime, date

from sqlalchemy import (
    String,
    Integer,
    BigInteger,
    DateTime,
    Date,
    ForeignKey,
    Text,
    Enum,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.db.base import Base
from backend.app.db.models.core_types import RequestStatus, ServiceType

# BigInteger en Postgres, INTEGER en SQLite (sinon pas d'autoincrement)
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


# ---------- CATALOGUE ----------
class Lab(Base):
    __tablename__ = "labs"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)


class Lot(Base):
    __tablename__ = "lots"
    # l'id du lot vient du fournisseur (clé naturelle)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    received_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiration_date: Mapped[date] = mapped_column(Date, nullable=False)


class Item(Base):
    __tablename__ = "items"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    presentation: Mapped[str] = mapped_column(String(32), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lot_id: Mapped[str | None] = mapped_column(ForeignKey("lots.id", ondelete="RESTRICT"))
    lab_id: Mapped[int | None] = mapped_column(ForeignKey("labs.id", ondelete="RESTRICT"))

    lot: Mapped[Lot | None] = relationship()
    lab: Mapped[Lab | None] = relationship()

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_item_quantity_nonneg"),
        Index("ix_items_name", "name"),
    )


# ---------- PATIENTS / SERVICES ----------
class Patient(Base):
    __tablename__ = "patients"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    national_id: Mapped[str] = mapped_column(String(18), unique=True, nullable=False)  # CURP
    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    paternal_surname: Mapped[str | None] = mapped_column(String(120))
    maternal_surname: Mapped[str | None] = mapped_column(String(120))
    gender: Mapped[str | None] = mapped_column(String(16))
    age: Mapped[int | None] = mapped_column(Integer)
    birth_date: Mapped[date | None] = mapped_column(Date)
    address: Mapped[str | None] = mapped_column(Text)


class Service(Base):
    __tablename__ = "services"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    type: Mapped[ServiceType] = mapped_column(Enum(ServiceType, name="service_type"), nullable=False)
    sub_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    __table_args__ = (UniqueConstraint("type", "sub_id", name="uq_service_type_sub_id"),)


# ---------- DEMANDES ----------
class SupplyRequest(Base):
    __tablename__ = "supply_requests"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id", ondelete="RESTRICT"), nullable=False)
    service_id: Mapped[int] = mapped_column(ForeignKey("services.id", ondelete="RESTRICT"), nullable=False)
    requester_name: Mapped[str] = mapped_column(String(200), nullable=False)
    diagnosis: Mapped[str | None] = mapped_column(Text)
    priority: Mapped[str | None] = mapped_column(String(32))
    status: Mapped[RequestStatus] = mapped_column(
        Enum(RequestStatus, name="request_status"),
        default=RequestStatus.pending,
        nullable=False,
    )
    justification: Mapped[str] = mapped_column(String(32), default="", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    patient: Mapped[Patient] = relationship()
    service: Mapped[Service] = relationship()
    lines: Mapped[list["SupplyRequestLine"]] = relationship(back_populates="request", cascade="all, delete-orphan")

    __table_args__ = (Index("ix_supply_requests_created_at", "created_at"),)


class SupplyRequestLine(Base):
    __tablename__ = "supply_request_lines"
    request_id: Mapped[int] = mapped_column(ForeignKey("supply_requests.id", ondelete="CASCADE"), primary_key=True)
    item_id: Mapped[str] = mapped_column(ForeignKey("items.id", ondelete="RESTRICT"), primary_key=True)
    presentation: Mapped[str | None] = mapped_column(String(32))
    quantity_requested: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_supplied: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    request: Mapped[SupplyRequest] = relationship(back_populates="lines")
    item: Mapped[Item] = relationship()

    __table_args__ = (
        CheckConstraint("quantity_requested > 0", name="ck_request_line_requested_pos"),
        CheckConstraint("quantity_supplied >= 0", name="ck_request_line_supplied_nonneg"),
    )
