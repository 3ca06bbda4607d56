from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from backend.app.api.deps import get_clock, get_db, require_capability
from backend.app.api.spreadsheet import SpreadsheetError, read_first_sheet
from backend.app.core.clock import Clock
from backend.app.core.config import settings
from backend.app.schemas.stock import (
    IngestResultOut,
    ItemOut,
    StockAlertOut,
    StockRegister,
)
from backend.services.catalog import register_stock, stock_alerts
from backend.services.ingestion import RawRow, ingest_stock, ingest_stock_best_effort
from backend.services.presentation import presentation_categories

router = APIRouter(prefix="/stock")

IngestMode = Literal["atomic", "best_effort"]


def _run_ingest(db: Session, rows: list[RawRow], mode: IngestMode, clock: Clock):
    if mode == "best_effort":
        return ingest_stock_best_effort(db, rows, now=clock())
    return ingest_stock(db, rows, now=clock(), chunk_size=settings.INGEST_CHUNK_SIZE)


@router.post(
    "/batches",
    response_model=IngestResultOut,
    dependencies=[Depends(require_capability("ingest_stock"))],
)
def ingest_stock_rows(
    rows: list[dict],
    mode: IngestMode = "atomic",
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Lignes déjà décodées (JSON), mêmes en-têtes que le tableur."""
    return _run_ingest(db, rows, mode, clock)


@router.post(
    "/upload-excel",
    response_model=IngestResultOut,
    dependencies=[Depends(require_capability("ingest_stock"))],
)
def upload_stock_spreadsheet(
    file: UploadFile = File(...),
    mode: IngestMode = "atomic",
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    content = file.file.read()
    try:
        rows = read_first_sheet(content)
    except SpreadsheetError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _run_ingest(db, rows, mode, clock)


@router.post(
    "/items",
    response_model=ItemOut,
    dependencies=[Depends(require_capability("ingest_stock"))],
)
def register_stock_item(payload: StockRegister, db: Session = Depends(get_db)):
    return register_stock(db, **payload.model_dump())


@router.get("/alerts", response_model=list[StockAlertOut])
def get_stock_alerts(
    threshold: int | None = None,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Stock bas (< seuil) ou lot expiré."""
    return stock_alerts(
        db,
        today=clock().date(),
        threshold=settings.LOW_STOCK_THRESHOLD if threshold is None else threshold,
        warning_days=settings.EXPIRY_WARNING_DAYS,
    )


@router.get("/presentations", response_model=list[str])
def get_presentations():
    return presentation_categories()
