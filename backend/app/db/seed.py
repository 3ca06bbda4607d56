from __future__ import annotations

from sqlalchemy import select

from backend.app.db.session import SessionLocal
from backend.app.db.models.models_v1 import Service
from backend.app.db.models.core_types import ServiceType

# (type, sub_id, nom) : catalogue des services de l'établissement
SERVICES = [
    (ServiceType.ambulatory, 1, "Consulta Externa"),
    (ServiceType.ambulatory, 2, "Urgencias"),
    (ServiceType.ambulatory, 3, "Curaciones"),
    (ServiceType.hospital, 1, "Medicina Interna"),
    (ServiceType.hospital, 2, "Cirugia General"),
    (ServiceType.hospital, 3, "Pediatria"),
    (ServiceType.hospital, 4, "Ginecologia y Obstetricia"),
]


def seed_services(db) -> int:
    created = 0
    for service_type, sub_id, name in SERVICES:
        exists = db.scalar(
            select(Service)
            .where(Service.type == service_type)
            .where(Service.sub_id == sub_id)
        )
        if not exists:
            db.add(Service(type=service_type, sub_id=sub_id, name=name))
            created += 1
    db.commit()
    return created


def run_seed():
    db = SessionLocal()
    try:
        created = seed_services(db)
        print(f"SEED OK: services created={created}")
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
