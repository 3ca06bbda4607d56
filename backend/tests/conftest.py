import os

# aucun serveur Postgres requis pour la suite de tests
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

from datetime import date

import pytest
from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.db.base import Base
from backend.app.db.models.models_v1 import Item, Lab, Lot
from backend.app.db.seed import seed_services


@pytest.fixture(scope="function")
def engine():
    """
    SQLite en mémoire, une connexion partagée (StaticPool).

    Recette SQLAlchemy pysqlite : on laisse SQLAlchemy émettre BEGIN
    pour que les SAVEPOINT (begin_nested) se comportent comme en Postgres.
    """
    eng = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(eng, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(eng, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Session:
    """Session DB isolée par test (base neuve à chaque test)."""
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def services(db_session):
    seed_services(db_session)


@pytest.fixture
def make_item(db_session):
    """Crée lab + lot + item, committé, et retourne l'id de l'item."""

    def _make(item_id, quantity, name=None, lot_id=None, expiration=date(2026, 12, 31)):
        lab = db_session.execute(select(Lab).where(Lab.name == "LAB TEST")).scalar_one_or_none()
        if not lab:
            lab = Lab(name="LAB TEST")
            db_session.add(lab)
            db_session.flush()

        lot_id = lot_id or f"LOT-{item_id}"
        if not db_session.get(Lot, lot_id):
            db_session.add(Lot(id=lot_id, received_date=date(2024, 1, 2), expiration_date=expiration))
            db_session.flush()

        db_session.add(
            Item(
                id=item_id,
                name=name or f"PRODUCTO {item_id}",
                presentation="Tableta",
                quantity=quantity,
                lot_id=lot_id,
                lab_id=lab.id,
            )
        )
        db_session.commit()
        return item_id

    return _make
