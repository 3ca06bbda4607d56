"""
Réconciliation d'un flux tabulaire de stock entrant (export tableur).

Le cœur ne lit aucun format de fichier : il reçoit des lignes "dict" faiblement
typées (une clé par en-tête de colonne) et les applique au catalogue.

Deux modes, volontairement distincts :
- ingest_stock              : tout-ou-rien, UNE transaction pour tout le lot
- ingest_stock_best_effort  : une SAVEPOINT par ligne, les lignes saines restent
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.clock import utcnow
from backend.app.db.models.models_v1 import Item, Lab, Lot
from backend.services import catalog
from backend.services.errors import ValidationError
from backend.services.presentation import classify_presentation
from backend.services.transaction import atomic

logger = logging.getLogger(__name__)

# En-têtes du tableur fournisseur
COL_LOT = "Lote"
COL_LAB = "Laboratorio"
COL_EXPIRATION = "Caducidad"
COL_ITEM_ID = "Clave CLIENTE"
COL_ITEM_NAME = "Medicamento"
COL_QUANTITY = "Existencia total"

# Numéro de série tableur : jours depuis le 1899-12-30
SPREADSHEET_EPOCH = date(1899, 12, 30)

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%Y/%m/%d")
_LEADING_INT = re.compile(r"^\s*([-+]?\d+)")
# série en texte : au moins 5 chiffres ("2025" est une année, pas une série)
_SERIAL_TEXT = re.compile(r"^\d{5,}(\.\d+)?$")
_YEAR_TEXT = re.compile(r"^[1-9]\d{3}$")

# longueur max des colonnes cibles
_MAX_LENGTHS = (
    (COL_LOT, Lot.__table__.c.id.type.length),
    (COL_LAB, Lab.__table__.c.name.type.length),
    (COL_ITEM_ID, Item.__table__.c.id.type.length),
    (COL_ITEM_NAME, Item.__table__.c.name.type.length),
)

RawRow = Mapping[str, Any]


@dataclass
class StockRow:
    row_num: int
    lot_id: str
    lab_name: str
    expiration_date: date
    item_id: str
    item_name: str
    presentation: str
    quantity: int


@dataclass
class RowError:
    row: int
    message: str


@dataclass
class IngestResult:
    imported: int = 0
    skipped: int = 0
    errors: list[RowError] = field(default_factory=list)


# ---------- Normalisation ----------
def _text(value: Any) -> str:
    if value is None:
        return ""
    # 12345.0 (cellule numérique) -> "12345"
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def parse_expiration(raw: Any) -> date:
    """
    Date d'expiration : numéro de série tableur ou date texte.
    Série <= 0 ou hors calendrier -> ValidationError (on ne devine pas).
    """
    if raw is None or isinstance(raw, bool):
        raise ValidationError("missing expiration date")

    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw

    if isinstance(raw, (int, float)):
        return _from_serial(raw)

    text = str(raw).strip()
    if not text:
        raise ValidationError("missing expiration date")

    if _SERIAL_TEXT.match(text):
        return _from_serial(float(text))
    if _YEAR_TEXT.match(text):
        return date(int(text), 1, 1)

    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    raise ValidationError(f"unparseable expiration date {text!r}")


def _from_serial(serial: float) -> date:
    if serial != serial or serial <= 0:  # NaN ou négatif
        raise ValidationError(f"implausible spreadsheet date serial {serial}")
    try:
        return SPREADSHEET_EPOCH + timedelta(days=int(serial))
    except OverflowError as exc:
        raise ValidationError(f"implausible spreadsheet date serial {serial}") from exc


def parse_quantity(raw: Any) -> int:
    """Entier en tête de valeur, 0 si illisible."""
    if raw is None or isinstance(raw, bool):
        return 0
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if raw == raw else 0
    match = _LEADING_INT.match(str(raw))
    return int(match.group(1)) if match else 0


def normalize_row(raw: RawRow, row_num: int) -> StockRow:
    """Une ligne brute -> StockRow, ou ValidationError si la ligne est à ignorer."""
    lot_id = _text(raw.get(COL_LOT))
    lab_name = _text(raw.get(COL_LAB))
    item_id = _text(raw.get(COL_ITEM_ID))
    raw_name = _text(raw.get(COL_ITEM_NAME))

    missing = [
        col
        for col, value in (
            (COL_LOT, lot_id),
            (COL_LAB, lab_name),
            (COL_ITEM_NAME, raw_name),
            (COL_ITEM_ID, item_id),
        )
        if not value
    ]
    if missing:
        raise ValidationError(f"missing {', '.join(missing)}")

    expiration = parse_expiration(raw.get(COL_EXPIRATION))

    quantity = parse_quantity(raw.get(COL_QUANTITY))
    if quantity < 0:
        raise ValidationError(f"negative quantity {quantity}")
    if quantity > catalog.MAX_QUANTITY:
        raise ValidationError(f"quantity {quantity} out of range")

    name = catalog.normalize_item_name(raw_name)
    if not name:
        raise ValidationError("item name is empty after normalization")

    values = {COL_LOT: lot_id, COL_LAB: lab_name, COL_ITEM_ID: item_id, COL_ITEM_NAME: name}
    too_long = [col for col, length in _MAX_LENGTHS if len(values[col]) > length]
    if too_long:
        raise ValidationError(f"value too long for {', '.join(too_long)}")

    return StockRow(
        row_num=row_num,
        lot_id=lot_id,
        lab_name=lab_name,
        expiration_date=expiration,
        item_id=item_id,
        item_name=name,
        presentation=classify_presentation(raw_name),
        quantity=quantity,
    )


def _apply_row(db: Session, row: StockRow, received: date) -> None:
    lab = catalog.get_or_create_lab(db, row.lab_name)
    catalog.upsert_lot(
        db,
        row.lot_id,
        expiration_date=row.expiration_date,
        received_date=received,
    )
    catalog.upsert_item(
        db,
        item_id=row.item_id,
        name=row.item_name,
        presentation=row.presentation,
        quantity=row.quantity,
        lot_id=row.lot_id,
        lab_id=lab.id,
    )


def _skip(result: IngestResult, row_num: int, message: str) -> None:
    logger.warning("stock feed row %s skipped: %s", row_num, message)
    result.skipped += 1
    result.errors.append(RowError(row=row_num, message=message))


# ---------- Opérations ----------
def ingest_stock(
    db: Session,
    rows: Iterable[RawRow],
    *,
    now: datetime | None = None,
    chunk_size: int = 500,
) -> IngestResult:
    """
    Import tout-ou-rien.

    Lignes mal formées : ignorées (skipped), le lot continue.
    Erreur SQL : ROLLBACK complet + StorageFailure, rien n'est écrit.
    Les flush par paquet de `chunk_size` restent dans la même transaction.
    """
    received = (now or utcnow()).date()
    result = IngestResult()

    with atomic(db, "ingest_stock"):
        # numéro de ligne tableur : l'en-tête est la ligne 1
        for row_num, raw in enumerate(rows, start=2):
            try:
                row = normalize_row(raw, row_num)
            except ValidationError as exc:
                _skip(result, row_num, exc.message)
                continue

            # SAVEPOINT : une ligne refusée (ex. cumul hors plage) n'y laisse ni lot ni labo ;
            # une erreur SQL remonte et annule tout le lot
            try:
                with db.begin_nested():
                    _apply_row(db, row, received)
            except ValidationError as exc:
                _skip(result, row_num, exc.message)
                continue
            result.imported += 1

            if chunk_size and result.imported % chunk_size == 0:
                db.flush()
                logger.debug("ingest_stock: %s rows staged", result.imported)

    logger.info("stock feed ingested: imported=%s skipped=%s", result.imported, result.skipped)
    return result


def ingest_stock_best_effort(
    db: Session,
    rows: Iterable[RawRow],
    *,
    now: datetime | None = None,
) -> IngestResult:
    """
    Import ligne par ligne (BEST EFFORT, non atomique sur l'ensemble).

    Chaque ligne s'exécute dans sa SAVEPOINT : une erreur SQL annule cette
    ligne seulement, elle est comptée dans skipped/errors.
    """
    received = (now or utcnow()).date()
    result = IngestResult()

    with atomic(db, "ingest_stock_best_effort"):
        for row_num, raw in enumerate(rows, start=2):
            try:
                row = normalize_row(raw, row_num)
            except ValidationError as exc:
                _skip(result, row_num, exc.message)
                continue

            try:
                with db.begin_nested():
                    _apply_row(db, row, received)
            except ValidationError as exc:
                _skip(result, row_num, exc.message)
                continue
            except SQLAlchemyError as exc:
                _skip(result, row_num, f"storage error: {getattr(exc, 'orig', None) or exc}")
                continue

            result.imported += 1

    logger.info(
        "stock feed ingested (best effort): imported=%s skipped=%s",
        result.imported,
        result.skipped,
    )
    return result
