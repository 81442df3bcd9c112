from __future__ import annotations

from bedwatch.db import db_session
from bedwatch.patients import count_distinct_rooms, count_patients, get_patient, upsert_patient
from bedwatch.schemas import PatientIn


def _upsert(**kw):
    with db_session() as s:
        return upsert_patient(s, PatientIn(**kw))


def _get(room, bed):
    with db_session() as s:
        return get_patient(s, room, bed)


def test_upsert_then_get(engine) -> None:
    _upsert(room="room1", bed="bed1", name="Alice", address="1 Main St", sex="Female", age=70)

    p = _get("room1", "bed1")
    assert p is not None
    assert (p.room, p.bed, p.name, p.address, p.sex, p.age) == ("room1", "bed1", "Alice", "1 Main St", "Female", 70)


def test_second_upsert_replaces_fields(engine) -> None:
    _upsert(room="room1", bed="bed1", name="Alice", address="1 Main St", sex="Female", age=70)
    _upsert(room="room1", bed="bed1", name="Alice", address="1 Main St", sex="Female", age=71)

    p = _get("room1", "bed1")
    assert p.age == 71
    assert p.name == "Alice" and p.address == "1 Main St" and p.sex == "Female"
    with db_session() as s:
        assert count_patients(s) == 1


def test_upsert_is_idempotent(engine) -> None:
    kw = dict(room="room2", bed="bed1", name="Bob", address="", sex="Male", age=44)
    _upsert(**kw)
    _upsert(**kw)

    with db_session() as s:
        assert count_patients(s) == 1
    assert _get("room2", "bed1").name == "Bob"


def test_non_key_fields_may_be_empty(engine) -> None:
    _upsert(room="room1", bed="bed2")
    p = _get("room1", "bed2")
    assert p.name is None and p.age is None


def test_missing_patient_is_none(engine) -> None:
    assert _get("room9", "bed9") is None


def test_counts(engine) -> None:
    _upsert(room="room1", bed="bed1", name="A")
    _upsert(room="room1", bed="bed2", name="B")
    _upsert(room="room2", bed="bed1", name="C")

    with db_session() as s:
        assert count_patients(s) == 3
        assert count_distinct_rooms(s) == 2


def test_counts_empty(engine) -> None:
    with db_session() as s:
        assert count_patients(s) == 0
        assert count_distinct_rooms(s) == 0
