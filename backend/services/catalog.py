from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy import select, or_
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import Item, Lab, Lot
from backend.services.errors import InvalidItemError, ValidationError
from backend.services.presentation import classify_presentation, strip_accents
from backend.services.transaction import atomic, reading

logger = logging.getLogger(__name__)

# borne de la colonne items.quantity (INTEGER signé 32 bits)
MAX_QUANTITY = 2**31 - 1


# ---------- Primitives (aucun commit ici : l'appelant porte la transaction) ----------
def get_or_create_lab(db: Session, name: str) -> Lab:
    """Le nom est la clé naturelle ; l'id est attribué à la création."""
    lab = db.execute(select(Lab).where(Lab.name == name)).scalar_one_or_none()
    if lab:
        return lab

    lab = Lab(name=name)
    db.add(lab)
    db.flush()
    return lab


def upsert_lot(
    db: Session,
    lot_id: str,
    *,
    expiration_date: date,
    received_date: date,
    overwrite_received: bool = False,
) -> Lot:
    """
    INSERT si absent, sinon on ne corrige que la date d'expiration
    (dernière écriture gagne). received_date n'est posé qu'à l'insertion,
    sauf saisie manuelle (overwrite_received=True).
    """
    lot = db.execute(select(Lot).where(Lot.id == lot_id).with_for_update()).scalar_one_or_none()
    if not lot:
        lot = Lot(id=lot_id, received_date=received_date, expiration_date=expiration_date)
        db.add(lot)
        db.flush()
        return lot

    lot.expiration_date = expiration_date
    if overwrite_received:
        lot.received_date = received_date
    return lot


def item_exists(db: Session, item_id: str) -> bool:
    return db.execute(select(Item.id).where(Item.id == item_id)).first() is not None


def _lock_item(db: Session, item_id: str) -> Item | None:
    return db.execute(select(Item).where(Item.id == item_id).with_for_update()).scalar_one_or_none()


def adjust_quantity(db: Session, item_id: str, delta: int) -> int:
    """
    Seul chemin de mutation de Item.quantity après création.
    Verrouille la ligne (FOR UPDATE) et plancher à 0 : jamais de stock négatif.
    """
    item = _lock_item(db, item_id)
    if not item:
        raise InvalidItemError(item_id)

    new_qty = item.quantity + delta
    if new_qty > MAX_QUANTITY:
        raise ValidationError(f"item {item_id}: quantity {new_qty} out of range")
    if new_qty < 0:
        logger.info("item %s: decrement of %s clamped at 0 (had %s)", item_id, -delta, item.quantity)
        new_qty = 0

    item.quantity = new_qty
    db.flush()
    return new_qty


def upsert_item(
    db: Session,
    *,
    item_id: str,
    name: str,
    presentation: str,
    quantity: int,
    lot_id: str | None,
    lab_id: int | None,
) -> tuple[Item, bool]:
    """
    Item existant : la quantité s'accumule, les autres champs ne bougent pas.
    Item absent : création complète.
    Retourne (item, created).
    """
    if item_exists(db, item_id):
        adjust_quantity(db, item_id, quantity)
        return db.get(Item, item_id), False

    item = Item(
        id=item_id,
        name=name,
        presentation=presentation,
        quantity=quantity,
        lot_id=lot_id,
        lab_id=lab_id,
    )
    db.add(item)
    db.flush()
    return item, True


def normalize_item_name(raw: str) -> str:
    """Sans accents, majuscules, uniquement lettres/chiffres/espace et , . : ( ) -"""
    upper = strip_accents(raw)
    kept = "".join(ch for ch in upper if (ch.isascii() and ch.isalnum()) or ch in " ,.:()-")
    return kept.strip()


# ---------- Saisie manuelle ----------
def register_stock(
    db: Session,
    *,
    item_id: str,
    quantity: int,
    name: str | None = None,
    presentation: str | None = None,
    lot_id: str | None = None,
    received_date: date | None = None,
    expiration_date: date | None = None,
) -> Item:
    """
    Entrée de stock manuelle.

    - item connu : quantity += quantity (le reste est ignoré)
    - item inconnu : name, lot_id, received_date, expiration_date obligatoires ;
      la présentation par défaut est déduite du nom.
    """
    item_id = (item_id or "").strip()
    if not item_id:
        raise ValidationError("item_id is required")
    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"quantity {quantity} out of range")

    with atomic(db, "register_stock"):
        if item_exists(db, item_id):
            adjust_quantity(db, item_id, quantity)
            item = db.get(Item, item_id)
        else:
            missing = []
            clean_name = normalize_item_name(name) if name else ""
            if not clean_name:
                missing.append("name")
            if not lot_id:
                missing.append("lot_id")
            if received_date is None:
                missing.append("received_date")
            if expiration_date is None:
                missing.append("expiration_date")
            if missing:
                raise ValidationError(f"Missing or malformed fields: {', '.join(missing)}")

            upsert_lot(
                db,
                lot_id,
                expiration_date=expiration_date,
                received_date=received_date,
                overwrite_received=True,
            )
            item = Item(
                id=item_id,
                name=clean_name,
                presentation=presentation or classify_presentation(clean_name),
                quantity=quantity,
                lot_id=lot_id,
                lab_id=None,
            )
            db.add(item)
            db.flush()

    logger.info("stock registered: item=%s +%s -> %s", item_id, quantity, item.quantity)
    return item


# ---------- Alertes ----------
@dataclass
class StockAlert:
    item_id: str
    name: str
    presentation: str
    quantity: int
    lot_id: str | None
    expiration_date: date | None
    reasons: list[str] = field(default_factory=list)


def stock_alerts(
    db: Session,
    *,
    today: date,
    threshold: int,
    warning_days: int = 0,
) -> list[StockAlert]:
    """
    Items sous le seuil de stock ou dont le lot expire avant today + warning_days.
    Raisons : low_stock, expired (déjà périmé), expiring (dans la fenêtre d'alerte).
    """
    limit = today + timedelta(days=warning_days)

    with reading(db, "stock_alerts"):
        rows = db.execute(
            select(Item, Lot.expiration_date)
            .outerjoin(Lot, Lot.id == Item.lot_id)
            .where(or_(Item.quantity < threshold, Lot.expiration_date < limit))
            .order_by(Item.quantity.asc(), Item.id.asc())
        ).all()

    alerts = []
    for item, expiration in rows:
        reasons = []
        if item.quantity < threshold:
            reasons.append("low_stock")
        if expiration is not None and expiration < limit:
            reasons.append("expired" if expiration < today else "expiring")
        alerts.append(
            StockAlert(
                item_id=item.id,
                name=item.name,
                presentation=item.presentation,
                quantity=item.quantity,
                lot_id=item.lot_id,
                expiration_date=expiration,
                reasons=reasons,
            )
        )
    return alerts
