"""Bounded reading ledger.

Every (room, bed) pair keeps only its most recent ``retention_depth``
readings. Admission inserts and commits first, then trims in a separate unit
of work, so a failed trim never loses the new reading; the next admission for
the same pair trims again.

Ranking is by ``timestamp`` with ``id`` as the tie-break, so coincident
timestamps still leave exactly ``retention_depth`` rows behind.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import DateTime, Integer, bindparam, text
from sqlalchemy.orm import Session

from bedwatch.broker import READINGS_TOPIC, Broker
from bedwatch.config import settings
from bedwatch.db import SessionFactory, db_session
from bedwatch.observability import BROADCAST_FAILURES, READINGS_ADMITTED, READINGS_TRIMMED, TRIM_FAILURES
from bedwatch.schemas import Reading

log = structlog.get_logger("bedwatch-ledger")

_TS = DateTime(timezone=True)

_INSERT = text("""
    INSERT INTO readings (weight, timestamp, room, bed)
    VALUES (:weight, :ts, :room, :bed)
    RETURNING id
""").bindparams(bindparam("ts", type_=_TS))

_CUTOFF = text("""
    SELECT id, timestamp
    FROM readings
    WHERE room=:room AND bed=:bed
    ORDER BY timestamp DESC, id DESC
    LIMIT 1 OFFSET :depth
""").columns(id=Integer, timestamp=_TS)

_TRIM = text("""
    DELETE FROM readings
    WHERE room=:room AND bed=:bed
      AND (timestamp < :ts OR (timestamp = :ts AND id <= :cid))
""").bindparams(bindparam("ts", type_=_TS))


class LedgerError(Exception):
    pass

class RetentionTrimError(LedgerError):
    """The reading was stored but the pair could not be trimmed."""

    def __init__(self, reading: Reading, cause: BaseException):
        super().__init__(f"retention trim failed for {reading.room}/{reading.bed}: {cause}")
        self.reading = reading
        self.cause = cause


def _now() -> datetime:
    return datetime.now(timezone.utc)

def insert_reading(db: Session, room: str, bed: str, weight: float, ts: datetime) -> Reading:
    rid = db.execute(_INSERT, {"weight": weight, "ts": ts, "room": room, "bed": bed}).scalar_one()
    return Reading(id=rid, weight=weight, timestamp=ts, room=room, bed=bed)

def trim_readings(db: Session, room: str, bed: str, depth: int) -> int:
    """Delete everything ranked below the ``depth`` newest readings of one pair."""
    cutoff = db.execute(_CUTOFF, {"room": room, "bed": bed, "depth": depth}).mappings().first()
    if not cutoff:
        return 0
    res = db.execute(_TRIM, {"room": room, "bed": bed, "ts": cutoff["timestamp"], "cid": cutoff["id"]})
    return res.rowcount or 0

def recent_readings(db: Session, limit: int = 10, room: Optional[str] = None, bed: Optional[str] = None) -> list[Reading]:
    if limit < 1:
        # LIMIT -1 means "no limit" on SQLite.
        return []
    clauses, params = [], {"lim": int(limit)}
    if room is not None:
        clauses.append("room=:room")
        params["room"] = room
    if bed is not None:
        clauses.append("bed=:bed")
        params["bed"] = bed
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    q = text(f"""
        SELECT id, weight, timestamp, room, bed
        FROM readings
        {where}
        ORDER BY timestamp DESC, id DESC
        LIMIT :lim
    """).columns(timestamp=_TS)
    rows = db.execute(q, params).mappings().all()
    return [Reading(**dict(r)) for r in rows]

def announce(broker: Broker | None, room: str, bed: str, weight: float, received_at: datetime) -> None:
    if broker is None:
        return
    try:
        broker.publish(READINGS_TOPIC, {
            "room": room,
            "bed": bed,
            "weight": weight,
            "received_at": received_at.isoformat(),
        })
    except Exception as e:
        BROADCAST_FAILURES.inc()
        log.warning("reading_broadcast_failed", room=room, bed=bed, error=str(e))

def admit(room: str, bed: str, weight: float, *, sessions: SessionFactory = db_session,
          broker: Broker | None = None, depth: int | None = None) -> Reading:
    """Store one reading and enforce retention for its pair.

    Raises whatever the storage layer raises if the insert fails, and
    ``RetentionTrimError`` if only the trim fails.
    """
    depth = settings.retention_depth if depth is None else depth
    ts = _now()
    announce(broker, room, bed, weight, ts)

    with sessions() as db:
        reading = insert_reading(db, room, bed, weight, ts)
    READINGS_ADMITTED.inc()

    try:
        with sessions() as db:
            removed = trim_readings(db, room, bed, depth)
    except Exception as e:
        TRIM_FAILURES.inc()
        log.error("retention_trim_failed", room=room, bed=bed, reading_id=reading.id, error=str(e))
        raise RetentionTrimError(reading, e) from e

    if removed:
        READINGS_TRIMMED.inc(removed)
    log.info("reading_admitted", room=room, bed=bed, weight=weight, reading_id=reading.id, trimmed=removed)
    return reading
