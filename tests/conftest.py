from __future__ import annotations

import os
from collections.abc import Iterator

# Must be set before bedwatch.config / bedwatch.app are imported.
os.environ.setdefault("OTEL_ENABLED", "false")
os.environ.setdefault("BROKER_TYPE", "direct")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from sqlalchemy import text
from sqlalchemy.engine import Engine

from bedwatch import db
from bedwatch.config import settings
from bedwatch.tables import metadata


@pytest.fixture
def engine(tmp_path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Engine]:
    """Fresh SQLite database per test, laid out from the table metadata."""
    monkeypatch.setattr(settings, "database_url_app", f"sqlite:///{tmp_path / 'bedwatch.db'}")
    db.dispose_engine()
    eng = db.engine()
    metadata.create_all(eng)
    yield eng
    db.dispose_engine()


@pytest.fixture
def count_readings(engine: Engine):
    def _count(room: str | None = None, bed: str | None = None) -> int:
        sql, params = "SELECT COUNT(*) FROM readings", {}
        if room is not None:
            sql += " WHERE room=:room AND bed=:bed"
            params = {"room": room, "bed": bed}
        with db.db_session() as s:
            return s.execute(text(sql), params).scalar_one()
    return _count
