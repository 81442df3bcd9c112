from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "readings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("weight", sa.Float(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("room", sa.String(20), nullable=False),
        sa.Column("bed", sa.String(20), nullable=False),
    )
    op.create_index("ix_readings_room_bed_timestamp", "readings", ["room", "bed", "timestamp"])
    op.create_index("ix_readings_timestamp", "readings", ["timestamp"])

    op.create_table(
        "patients",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("room", sa.String(20), nullable=False),
        sa.Column("bed", sa.String(20), nullable=False),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("address", sa.String(200), nullable=True),
        sa.Column("sex", sa.String(10), nullable=True),
        sa.Column("age", sa.Integer(), nullable=True),
        sa.UniqueConstraint("room", "bed", name="uq_patients_room_bed"),
    )

def downgrade():
    op.drop_table("patients")
    op.drop_index("ix_readings_timestamp", table_name="readings")
    op.drop_index("ix_readings_room_bed_timestamp", table_name="readings")
    op.drop_table("readings")
