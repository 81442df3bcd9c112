from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy import text
from sqlalchemy.orm import Session

from bedwatch.schemas import Patient, PatientIn

log = structlog.get_logger("bedwatch-patients")

def upsert_patient(db: Session, p: PatientIn) -> Patient:
    db.execute(text("""
        INSERT INTO patients (room, bed, name, address, sex, age)
        VALUES (:room, :bed, :name, :address, :sex, :age)
        ON CONFLICT (room, bed) DO UPDATE SET
            name=EXCLUDED.name,
            address=EXCLUDED.address,
            sex=EXCLUDED.sex,
            age=EXCLUDED.age
    """), p.model_dump())
    log.info("patient_upserted", room=p.room, bed=p.bed)
    return Patient(**p.model_dump())

def get_patient(db: Session, room: str, bed: str) -> Optional[Patient]:
    row = db.execute(text("""
        SELECT room, bed, name, address, sex, age
        FROM patients
        WHERE room=:room AND bed=:bed
        LIMIT 1
    """), {"room": room, "bed": bed}).mappings().first()
    return Patient(**dict(row)) if row else None

def count_patients(db: Session) -> int:
    return int(db.execute(text("SELECT COUNT(*) FROM patients")).scalar() or 0)

def count_distinct_rooms(db: Session) -> int:
    return int(db.execute(text("SELECT COUNT(DISTINCT room) FROM patients")).scalar() or 0)
