from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.services.errors import StorageFailure, SupplyError

logger = logging.getLogger(__name__)


@contextmanager
def atomic(db: Session, operation: str) -> Iterator[Session]:
    """
    Une opération = une transaction.

    - succès : COMMIT
    - erreur métier (SupplyError) : ROLLBACK puis on relance telle quelle
    - erreur SQL : ROLLBACK puis StorageFailure (jamais l'exception brute)
    """
    try:
        yield db
        db.commit()
    except SupplyError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("%s rolled back after storage error", operation, exc_info=True)
        reason = str(getattr(exc, "orig", None) or exc)
        raise StorageFailure(operation, reason) from exc
    except Exception:
        db.rollback()
        raise


@contextmanager
def reading(db: Session, operation: str) -> Iterator[Session]:
    """
    Lecture seule : pas de COMMIT, mais une erreur SQL devient StorageFailure
    (ROLLBACK pour rendre la session réutilisable).
    """
    try:
        yield db
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("%s failed after storage error", operation, exc_info=True)
        reason = str(getattr(exc, "orig", None) or exc)
        raise StorageFailure(operation, reason) from exc
