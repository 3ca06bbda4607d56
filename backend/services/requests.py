from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.core.clock import utcnow
from backend.app.db.models.models_v1 import Patient, Service, SupplyRequest, SupplyRequestLine
from backend.app.db.models.core_types import RequestStatus, ServiceType
from backend.services import catalog
from backend.services.errors import InvalidItemError, NotFoundError, ValidationError
from backend.services.transaction import atomic

logger = logging.getLogger(__name__)


@dataclass
class PatientData:
    national_id: str
    first_name: str
    paternal_surname: str | None = None
    maternal_surname: str | None = None
    gender: str | None = None
    age: int | None = None
    birth_date: date | None = None
    address: str | None = None


@dataclass
class RequestMeta:
    service_type: ServiceType
    service_sub_id: int
    requester_name: str
    diagnosis: str | None = None
    priority: str | None = None


@dataclass
class RequestLineData:
    item_id: str
    quantity_requested: int
    presentation: str | None = None


def get_or_create_patient(db: Session, data: PatientData) -> Patient:
    """Recherche par identifiant national ; un patient existant n'est jamais modifié ici."""
    national_id = data.national_id.strip()
    patient = db.execute(
        select(Patient).where(Patient.national_id == national_id)
    ).scalar_one_or_none()
    if patient:
        return patient

    patient = Patient(
        national_id=national_id,
        first_name=data.first_name,
        paternal_surname=data.paternal_surname,
        maternal_surname=data.maternal_surname,
        gender=data.gender,
        age=data.age,
        birth_date=data.birth_date,
        address=data.address,
    )
    db.add(patient)
    db.flush()
    return patient


def resolve_service_id(db: Session, service_type: ServiceType, sub_id: int) -> int:
    service_id = db.execute(
        select(Service.id)
        .where(Service.type == service_type)
        .where(Service.sub_id == sub_id)
    ).scalar_one_or_none()
    if service_id is None:
        raise NotFoundError(f"Service {service_type.value}/{sub_id} not found")
    return int(service_id)


def _validate(patient: PatientData, meta: RequestMeta, lines: Sequence[RequestLineData]) -> None:
    if not patient.national_id or not patient.national_id.strip():
        raise ValidationError("patient national_id is required")
    if not patient.first_name or not patient.first_name.strip():
        raise ValidationError("patient first_name is required")
    if not meta.requester_name or not meta.requester_name.strip():
        raise ValidationError("requester_name is required")
    if not lines:
        raise ValidationError("a request needs at least one line")

    seen = set()
    for ln in lines:
        if ln.quantity_requested is None or ln.quantity_requested <= 0:
            raise ValidationError(f"quantity_requested must be positive (item {ln.item_id})")
        if ln.quantity_requested > catalog.MAX_QUANTITY:
            raise ValidationError(f"quantity_requested out of range (item {ln.item_id})")
        if ln.item_id in seen:
            raise ValidationError(f"item {ln.item_id} appears twice in the request")
        seen.add(ln.item_id)


def create_request(
    db: Session,
    patient: PatientData,
    meta: RequestMeta,
    lines: Sequence[RequestLineData],
    *,
    now: datetime | None = None,
) -> int:
    """
    Crée une demande "pending" et ses lignes.

    Patient, demande et lignes : une seule transaction. Un item inconnu
    (InvalidItemError) ou un service introuvable annule tout.
    """
    _validate(patient, meta, lines)
    now = now or utcnow()

    with atomic(db, "create_request"):
        p = get_or_create_patient(db, patient)
        service_id = resolve_service_id(db, meta.service_type, meta.service_sub_id)

        req = SupplyRequest(
            patient_id=p.id,
            service_id=service_id,
            requester_name=meta.requester_name.strip(),
            diagnosis=meta.diagnosis,
            priority=meta.priority,
            status=RequestStatus.pending,
            justification="",
            created_at=now,
        )
        db.add(req)
        db.flush()  # req.id

        for ln in lines:
            if not catalog.item_exists(db, ln.item_id):
                raise InvalidItemError(ln.item_id)

            db.add(
                SupplyRequestLine(
                    request_id=req.id,
                    item_id=ln.item_id,
                    presentation=ln.presentation,
                    quantity_requested=ln.quantity_requested,
                    quantity_supplied=0,
                )
            )

        db.flush()
        request_id = int(req.id)

    logger.info("supply request %s created with %s line(s)", request_id, len(lines))
    return request_id
