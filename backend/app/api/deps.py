from __future__ import annotations

from typing import Callable, Generator

from fastapi import Header, HTTPException

from backend.app.core.clock import Clock, utcnow
from backend.app.db.models.core_types import Role
from backend.app.db.session import SessionLocal

# Table unique des capacités. Le rôle arrive déjà vérifié (X-Role) depuis
# la couche d'authentification ; le cœur, lui, ne voit jamais de rôle.
CAPABILITIES: dict[str, set[Role]] = {
    "create_request": {Role.administrator, Role.clinician},
    "fulfill_request": {Role.administrator, Role.coordinator},
    "ingest_stock": {Role.administrator, Role.coordinator},
    "view_statistics": {Role.administrator, Role.coordinator, Role.clinician},
}


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_clock() -> Clock:
    return utcnow


def require_capability(capability: str) -> Callable[..., Role]:
    allowed = CAPABILITIES[capability]

    def _check(x_role: str | None = Header(default=None, alias="X-Role")) -> Role:
        if not x_role or not x_role.strip():
            raise HTTPException(status_code=401, detail="Missing X-Role header")
        try:
            role = Role(x_role.strip())
        except ValueError:
            raise HTTPException(status_code=403, detail=f"Unknown role {x_role!r}") from None
        if role not in allowed:
            raise HTTPException(status_code=403, detail=f"Role {role.value} cannot {capability}")
        return role

    return _check
