"""
Clôture d'une demande (approbation / rejet) et décrément du stock.

Règles :
- une demande ne se clôture qu'une fois : pending -> approved | rejected
- approbation : Item.quantity -= quantity_supplied, plancher à 0
- rejet : la justification du LOT (celle de la première ligne) doit être
  dans Justification ; elle est stockée sur la demande
- tout dans UNE transaction, garde "status = pending" en compare-and-set
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from backend.app.core.clock import utcnow
from backend.app.db.models.models_v1 import SupplyRequest, SupplyRequestLine
from backend.app.db.models.core_types import Justification, RequestStatus
from backend.services import catalog
from backend.services.errors import (
    InvalidJustificationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from backend.services.transaction import atomic

logger = logging.getLogger(__name__)

VALID_JUSTIFICATIONS = {j.value for j in Justification}
FINAL_STATUSES = {RequestStatus.approved, RequestStatus.rejected}


@dataclass
class FulfillmentLine:
    item_id: str
    quantity_supplied: int
    justification: str | None = None


@dataclass
class SuppliedLine:
    item_id: str
    quantity_supplied: int
    stock_after: int | None


@dataclass
class FulfillmentResult:
    request_id: int
    status: RequestStatus
    justification: str
    closed_at: datetime
    lines: list[SuppliedLine]


def _lock_request(db: Session, request_id: int) -> SupplyRequest:
    req = db.execute(
        select(SupplyRequest).where(SupplyRequest.id == request_id).with_for_update()
    ).scalar_one_or_none()
    if not req:
        raise NotFoundError(f"Request {request_id} not found")
    return req


def fulfill_request(
    db: Session,
    request_id: int,
    lines: Sequence[FulfillmentLine],
    final_status: RequestStatus | str,
    *,
    now: datetime | None = None,
) -> FulfillmentResult:
    try:
        final_status = RequestStatus(final_status)
    except ValueError:
        raise ValidationError(f"Invalid final status {final_status!r}") from None
    if final_status not in FINAL_STATUSES:
        raise ValidationError("final status must be approved or rejected")
    if not lines:
        raise ValidationError("at least one line is required")
    for ln in lines:
        if ln.quantity_supplied is None or ln.quantity_supplied < 0:
            raise ValidationError(f"quantity_supplied must be >= 0 (item {ln.item_id})")
        if ln.quantity_supplied > catalog.MAX_QUANTITY:
            raise ValidationError(f"quantity_supplied out of range (item {ln.item_id})")
    if len({ln.item_id for ln in lines}) != len(lines):
        raise ValidationError("each item can be supplied only once per request")

    now = now or utcnow()
    supplied_by_item: dict[str, SuppliedLine] = {}

    with atomic(db, "fulfill_request"):
        req = _lock_request(db, request_id)
        if req.status != RequestStatus.pending:
            logger.warning("fulfillment refused: request %s already %s", request_id, req.status.value)
            raise InvalidTransitionError(request_id, req.status.value)

        # verrous pris dans l'ordre des item_id : deux clôtures concurrentes
        # (A,B) et (B,A) ne peuvent pas s'interbloquer
        for ln in sorted(lines, key=lambda ln: ln.item_id):
            line = db.execute(
                select(SupplyRequestLine)
                .where(SupplyRequestLine.request_id == request_id)
                .where(SupplyRequestLine.item_id == ln.item_id)
                .with_for_update()
            ).scalar_one_or_none()
            if not line:
                raise ValidationError(f"item {ln.item_id} is not part of request {request_id}")

            line.quantity_supplied = ln.quantity_supplied

            stock_after = None
            if final_status == RequestStatus.approved:
                stock_after = catalog.adjust_quantity(db, ln.item_id, -ln.quantity_supplied)
            supplied_by_item[ln.item_id] = SuppliedLine(ln.item_id, ln.quantity_supplied, stock_after)

        supplied = [supplied_by_item[ln.item_id] for ln in lines]

        # justification de lot, stockée au niveau de la demande
        justification = lines[0].justification or ""
        if final_status == RequestStatus.rejected:
            if justification not in VALID_JUSTIFICATIONS:
                raise InvalidJustificationError(justification)
        else:
            justification = ""

        db.flush()

        # compare-and-set : un second appelant concurrent ne passe pas
        res = db.execute(
            update(SupplyRequest)
            .where(SupplyRequest.id == request_id)
            .where(SupplyRequest.status == RequestStatus.pending)
            .values(status=final_status, justification=justification, closed_at=now)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise InvalidTransitionError(request_id, "closed")

    logger.info("supply request %s %s (%s line(s))", request_id, final_status.value, len(supplied))
    return FulfillmentResult(
        request_id=request_id,
        status=final_status,
        justification=justification,
        closed_at=now,
        lines=supplied,
    )
