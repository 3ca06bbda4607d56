from datetime import date, datetime

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from backend.app.db.models.models_v1 import Item, Lab, Lot
from backend.services import catalog
from backend.services.errors import StorageFailure, ValidationError
from backend.services.ingestion import (
    ingest_stock,
    ingest_stock_best_effort,
    parse_expiration,
    parse_quantity,
)
from factories import FIXED_NOW


def feed_row(item_id, name="Paracetamol tableta 500 mg", qty=10, lot="L-1", lab="PISA", exp="2026-05-31"):
    return {
        "Lote": lot,
        "Laboratorio": lab,
        "Caducidad": exp,
        "Clave CLIENTE": item_id,
        "Medicamento": name,
        "Existencia total": qty,
    }


def count(db, model):
    return db.scalar(select(func.count()).select_from(model))


# ---------- Parsing ----------
def test_parse_expiration_spreadsheet_serial():
    assert parse_expiration(45000) == date(2023, 3, 15)
    # la fraction de jour (heure) est ignorée
    assert parse_expiration(45000.75) == date(2023, 3, 15)
    assert parse_expiration("45000") == date(2023, 3, 15)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2025-06-30", date(2025, 6, 30)),
        ("2025-06-30T00:00:00", date(2025, 6, 30)),
        ("30/06/2025", date(2025, 6, 30)),
        ("30-06-2025", date(2025, 6, 30)),
        (datetime(2025, 6, 30, 12, 0), date(2025, 6, 30)),
        (date(2025, 6, 30), date(2025, 6, 30)),
        # année seule : 1er janvier, pas une série
        ("2025", date(2025, 1, 1)),
    ],
)
def test_parse_expiration_date_forms(raw, expected):
    assert parse_expiration(raw) == expected


@pytest.mark.parametrize("raw", [0, -3, "-3", "123", "0000", "not a date", "", None, True, 10**9])
def test_parse_expiration_rejects_implausible(raw):
    with pytest.raises(ValidationError):
        parse_expiration(raw)


def test_parse_quantity_defaults_to_zero():
    assert parse_quantity("12 cajas") == 12
    assert parse_quantity(7.9) == 7
    assert parse_quantity("abc") == 0
    assert parse_quantity(None) == 0


# ---------- Import atomique ----------
def test_ingest_imports_valid_rows_and_skips_malformed(db_session):
    """
    GIVEN 5 lignes dont 2 mal formées (laboratoire absent, date illisible)
    THEN 3 importées, 2 ignorées, aucune trace des lignes ignorées
    """
    rows = [
        feed_row("010.000.0104.00", name="Paracetamol tableta 500 mg", lot="L-1"),
        feed_row("010.000.0105.00", name="Ámpula de ketorolaco", lot="L-2"),
        feed_row("BAD-LAB", lab=""),
        feed_row("BAD-DATE", exp="31 de mayo"),
        feed_row("010.000.0106.00", name="Cápsula omeprazol", lot="L-3", lab="AMSA", exp=46000),
    ]

    result = ingest_stock(db_session, rows, now=FIXED_NOW)

    assert result.imported == 3
    assert result.skipped == 2
    assert [e.row for e in result.errors] == [4, 5]

    assert count(db_session, Item) == 3
    assert db_session.get(Item, "BAD-LAB") is None
    assert db_session.get(Item, "BAD-DATE") is None
    assert count(db_session, Lab) == 2

    item = db_session.get(Item, "010.000.0104.00")
    assert item.name == "PARACETAMOL TABLETA 500 MG"
    assert item.presentation == "Tableta"
    assert item.quantity == 10
    assert item.lab.name == "PISA"

    lot = db_session.get(Lot, "L-1")
    assert lot.received_date == FIXED_NOW.date()
    assert lot.expiration_date == date(2026, 5, 31)

    assert db_session.get(Item, "010.000.0106.00").presentation == "Capsula"


def test_ingest_existing_item_accumulates_and_keeps_fields(db_session, make_item):
    make_item("A", 10, name="NOMBRE ORIGINAL", lot_id="L-OLD")

    result = ingest_stock(db_session, [feed_row("A", name="Otro nombre jarabe", qty=5, lot="L-NEW")], now=FIXED_NOW)

    assert result.imported == 1
    item = db_session.get(Item, "A")
    assert item.quantity == 15
    assert item.name == "NOMBRE ORIGINAL"
    assert item.presentation == "Tableta"
    assert item.lot_id == "L-OLD"


def test_ingest_same_item_twice_in_batch(db_session):
    rows = [feed_row("A", qty=4), feed_row("A", qty=6)]

    result = ingest_stock(db_session, rows, now=FIXED_NOW)

    assert result.imported == 2
    assert db_session.get(Item, "A").quantity == 10


def test_ingest_known_lot_only_updates_expiration(db_session, make_item):
    make_item("A", 1, lot_id="L-9", expiration=date(2025, 1, 1))

    ingest_stock(db_session, [feed_row("B", lot="L-9", exp="2027-01-01")], now=FIXED_NOW)

    lot = db_session.get(Lot, "L-9")
    assert lot.expiration_date == date(2027, 1, 1)
    assert lot.received_date == date(2024, 1, 2)


def test_ingest_negative_quantity_is_skipped(db_session):
    result = ingest_stock(db_session, [feed_row("A", qty="-5")], now=FIXED_NOW)

    assert result.imported == 0
    assert result.skipped == 1
    assert count(db_session, Item) == 0


def test_ingest_out_of_range_quantity_is_skipped(db_session):
    """
    GIVEN une quantité au-delà de la colonne INTEGER
    THEN la ligne est ignorée, la ligne valide est importée
    """
    rows = [feed_row("A", qty=4), feed_row("B", qty="99999999999999999999")]

    result = ingest_stock(db_session, rows, now=FIXED_NOW)

    assert result.imported == 1
    assert result.skipped == 1
    assert result.errors[0].row == 3
    assert db_session.get(Item, "A").quantity == 4
    assert db_session.get(Item, "B") is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"item_id": "X" * (Item.__table__.c.id.type.length + 1)},
        {"lot": "L" * (Lot.__table__.c.id.type.length + 1)},
        {"lab": "P" * (Lab.__table__.c.name.type.length + 1)},
        {"name": "N" * (Item.__table__.c.name.type.length + 1)},
    ],
)
def test_ingest_value_longer_than_column_is_skipped(db_session, overrides):
    row = feed_row(**{"item_id": "LONG", **overrides})

    result = ingest_stock(db_session, [feed_row("A"), row], now=FIXED_NOW)

    assert result.imported == 1
    assert result.skipped == 1
    assert "too long" in result.errors[0].message
    assert count(db_session, Item) == 1


def test_ingest_accumulation_out_of_range_skips_row_only(db_session, make_item):
    """
    GIVEN un item déjà proche de la borne INTEGER
    THEN la ligne qui ferait déborder est ignorée sans laisser son lot,
    les autres lignes du lot passent
    """
    make_item("FULL", catalog.MAX_QUANTITY - 1)

    rows = [feed_row("FULL", qty=5, lot="L-OVER"), feed_row("C", qty=2, lot="L-C")]
    result = ingest_stock(db_session, rows, now=FIXED_NOW)

    assert result.imported == 1
    assert result.skipped == 1
    assert db_session.get(Item, "FULL").quantity == catalog.MAX_QUANTITY - 1
    assert db_session.get(Lot, "L-OVER") is None
    assert db_session.get(Item, "C").quantity == 2


def test_ingest_storage_error_rolls_back_whole_batch(db_session, monkeypatch):
    """
    GIVEN une erreur SQL sur la 2e ligne
    THEN StorageFailure et rien n'est écrit (même la 1re ligne)
    """
    real_upsert = catalog.upsert_item
    calls = {"n": 0}

    def flaky_upsert(db, **kwargs):
        calls["n"] += 1
        if calls["n"] == 2:
            raise OperationalError("UPDATE items", {}, Exception("connection lost"))
        return real_upsert(db, **kwargs)

    monkeypatch.setattr(catalog, "upsert_item", flaky_upsert)

    with pytest.raises(StorageFailure) as exc:
        ingest_stock(db_session, [feed_row("A"), feed_row("B", lab="AMSA")], now=FIXED_NOW)

    assert exc.value.retryable
    assert count(db_session, Item) == 0
    assert count(db_session, Lab) == 0
    assert count(db_session, Lot) == 0


# ---------- Import best effort ----------
def test_best_effort_keeps_good_rows(db_session, monkeypatch):
    real_upsert = catalog.upsert_item

    def flaky_upsert(db, **kwargs):
        if kwargs["item_id"] == "B":
            raise OperationalError("INSERT items", {}, Exception("constraint"))
        return real_upsert(db, **kwargs)

    monkeypatch.setattr(catalog, "upsert_item", flaky_upsert)

    rows = [
        feed_row("A", lot="L-A"),
        feed_row("B", lot="L-B", lab="ONLY-B"),
        feed_row("C", lot="L-C"),
        feed_row("D", exp=""),
    ]
    result = ingest_stock_best_effort(db_session, rows, now=FIXED_NOW)

    assert result.imported == 2
    assert result.skipped == 2
    assert {e.row for e in result.errors} == {3, 5}

    assert db_session.get(Item, "A") is not None
    assert db_session.get(Item, "C") is not None
    assert db_session.get(Item, "B") is None
    # la SAVEPOINT de la ligne B a aussi annulé son lot et son labo
    assert db_session.get(Lot, "L-B") is None
    assert db_session.scalar(select(Lab).where(Lab.name == "ONLY-B")) is None
