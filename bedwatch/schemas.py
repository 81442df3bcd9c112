from __future__ import annotations
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator

class Problem(BaseModel):
    type: str = "about:blank"
    title: str
    status: int
    detail: str | None = None
    code: str = "unknown_error"
    instance: str | None = None

class ReadingIn(BaseModel):
    room: str = Field(..., min_length=1, max_length=20)
    bed: str = Field(..., min_length=1, max_length=20)
    weight: float = Field(..., allow_inf_nan=False)

class Reading(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    weight: float
    timestamp: datetime
    room: str
    bed: str

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        # SQLite hands back naive values; everything stored is UTC.
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

class PatientIn(BaseModel):
    room: str = Field(..., min_length=1, max_length=20)
    bed: str = Field(..., min_length=1, max_length=20)
    name: str | None = Field(None, max_length=100)
    address: str | None = Field(None, max_length=200)
    sex: str | None = Field(None, max_length=10)
    age: int | None = None

class Patient(BaseModel):
    room: str
    bed: str
    name: str | None = None
    address: str | None = None
    sex: str | None = None
    age: int | None = None

class CountOut(BaseModel):
    count: int

class AlertOut(BaseModel):
    alert: Reading | None = None
    raise_alert: bool = False
    state: str
    band: str | None = None

class DashboardSummary(BaseModel):
    patients: int
    rooms: int
    alert: Reading | None = None
