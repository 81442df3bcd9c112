"""Table metadata shared by Alembic autogenerate and test fixtures.

Queries are written as plain SQL in the ledger and patient modules; this
module only describes the layout they expect.
"""
from __future__ import annotations

import sqlalchemy as sa

metadata = sa.MetaData()

readings = sa.Table(
    "readings",
    metadata,
    sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("weight", sa.Float(), nullable=False),
    sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    sa.Column("room", sa.String(20), nullable=False),
    sa.Column("bed", sa.String(20), nullable=False),
    sa.Index("ix_readings_room_bed_timestamp", "room", "bed", "timestamp"),
    sa.Index("ix_readings_timestamp", "timestamp"),
)

patients = sa.Table(
    "patients",
    metadata,
    sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("room", sa.String(20), nullable=False),
    sa.Column("bed", sa.String(20), nullable=False),
    sa.Column("name", sa.String(100), nullable=True),
    sa.Column("address", sa.String(200), nullable=True),
    sa.Column("sex", sa.String(10), nullable=True),
    sa.Column("age", sa.Integer(), nullable=True),
    sa.UniqueConstraint("room", "bed", name="uq_patients_room_bed"),
)
