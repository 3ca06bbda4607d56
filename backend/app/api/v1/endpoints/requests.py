from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.api.deps import get_clock, get_db, require_capability
from backend.app.core.clock import Clock
from backend.app.schemas.requests import (
    FulfillmentIn,
    FulfillmentOut,
    RequestCreate,
    RequestCreated,
)
from backend.services.fulfillment import FulfillmentLine, fulfill_request
from backend.services.requests import (
    PatientData,
    RequestLineData,
    RequestMeta,
    create_request,
)

router = APIRouter(prefix="/requests")


@router.post(
    "",
    status_code=201,
    response_model=RequestCreated,
    dependencies=[Depends(require_capability("create_request"))],
)
def create_supply_request(
    payload: RequestCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    request_id = create_request(
        db,
        PatientData(**payload.patient.model_dump()),
        RequestMeta(**payload.request.model_dump()),
        [RequestLineData(**ln.model_dump()) for ln in payload.lines],
        now=clock(),
    )
    return {"id": request_id}


@router.put(
    "/{request_id}/fulfillment",
    response_model=FulfillmentOut,
    dependencies=[Depends(require_capability("fulfill_request"))],
)
def fulfill_supply_request(
    request_id: int,
    payload: FulfillmentIn,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Clôture la demande (approved / rejected).
    409 si la demande n'est plus "pending" : aucune écriture.
    """
    return fulfill_request(
        db,
        request_id,
        [FulfillmentLine(**ln.model_dump()) for ln in payload.lines],
        payload.status,
        now=clock(),
    )
