from __future__ import annotations
import asyncio, contextlib, time, uuid
from datetime import datetime, timezone
from typing import Callable

import structlog
from bedwatch.observability import REQ_COUNT, REQ_LAT, init_logging, init_otel, otel_enabled

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.exc import SQLAlchemyError

from bedwatch import __version__
from bedwatch.config import settings
from bedwatch.db import SessionFactory, db_session
init_logging("bedwatch-api")
init_otel("bedwatch-api")
log = structlog.get_logger("bedwatch-api")

from bedwatch import ledger, patients
from bedwatch.alerts import AlertSessions, AlertState, derive_alert, status_band
from bedwatch.broker import READINGS_TOPIC, FanoutBroker, get_broker
from bedwatch.schemas import AlertOut, CountOut, DashboardSummary, Patient, PatientIn, Problem, Reading, ReadingIn

broker = get_broker()
alert_sessions = AlertSessions()

def problem(status_code: int, title: str, code: str, detail: str | None = None, instance: str | None = None) -> JSONResponse:
    p = Problem(title=title, status=status_code, code=code, detail=detail, instance=instance)
    return JSONResponse(status_code=status_code, content=p.model_dump())

def get_sessions() -> SessionFactory:
    return db_session

def get_broker_dep() -> FanoutBroker:
    return broker

def get_alert_sessions() -> AlertSessions:
    return alert_sessions

app = FastAPI(title="Bedwatch API", version=__version__, redirect_slashes=False)

if otel_enabled():
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    try:
        FastAPIInstrumentor.instrument_app(app)
    except Exception as e:
        log.warning("otel_fastapi_instrumentation_failed", error=str(e))

@app.middleware("http")
async def request_mw(request: Request, call_next: Callable):
    rid = request.headers.get("X-Request-Id") or str(uuid.uuid4())
    start = time.time()
    structlog.contextvars.bind_contextvars(request_id=rid)
    try:
        response: Response = await call_next(request)
    finally:
        dur = time.time() - start
        REQ_LAT.labels(path=request.url.path).observe(dur)
        structlog.contextvars.unbind_contextvars("request_id")
    response.headers["X-Request-Id"] = rid
    REQ_COUNT.labels(method=request.method, path=request.url.path, status=str(response.status_code)).inc()
    return response

@app.exception_handler(StarletteHTTPException)
async def http_exc(request: Request, exc: StarletteHTTPException):
    code = "http_error"
    if exc.status_code == 400: code = "bad_request"
    if exc.status_code == 404:
        code = exc.detail if str(exc.detail).endswith("_not_found") else "not_found"
    if exc.status_code == 405: code = "method_not_allowed"
    return problem(exc.status_code, "Request failed", code, str(exc.detail), request.url.path)

@app.exception_handler(RequestValidationError)
async def validation_exc(request: Request, exc: RequestValidationError):
    fields = [".".join(str(x) for x in e.get("loc", ())) for e in exc.errors()]
    return problem(422, "Invalid request", "validation_error", "invalid fields: " + ", ".join(fields), request.url.path)

@app.exception_handler(ledger.RetentionTrimError)
async def trim_exc(request: Request, exc: ledger.RetentionTrimError):
    return problem(500, "Reading stored but retention trim failed", "retention_trim_failed",
                   f"reading {exc.reading.id} kept; retention will be retried on the next reading", request.url.path)

@app.exception_handler(SQLAlchemyError)
async def storage_exc(request: Request, exc: SQLAlchemyError):
    log.error("storage_error", path=request.url.path, error=str(exc))
    return problem(503, "Storage unavailable", "storage_unavailable", exc.__class__.__name__, request.url.path)

@app.get("/v1/health")
def health():
    return {"status": "ok", "service": "bedwatch_api", "time": datetime.now(timezone.utc).isoformat()}

@app.get("/v1/metrics")
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

@app.post("/v1/readings", response_model=Reading)
def ingest_reading(payload: ReadingIn, sessions: SessionFactory = Depends(get_sessions),
                   b: FanoutBroker = Depends(get_broker_dep)):
    return ledger.admit(payload.room, payload.bed, payload.weight, sessions=sessions, broker=b)

@app.get("/v1/update")
def ingest_reading_query(room: str = Query(..., min_length=1, max_length=20),
                         bed: str = Query(..., min_length=1, max_length=20),
                         weight: float = Query(..., allow_inf_nan=False),
                         sessions: SessionFactory = Depends(get_sessions),
                         b: FanoutBroker = Depends(get_broker_dep)):
    # Sensor firmware issues a plain GET with query parameters.
    ledger.admit(room, bed, weight, sessions=sessions, broker=b)
    return {"status": "ok"}

@app.get("/v1/readings", response_model=list[Reading])
def list_readings(limit: int | None = Query(None, ge=1, le=settings.max_recent_limit),
                  room: str | None = None, bed: str | None = None,
                  sessions: SessionFactory = Depends(get_sessions)):
    lim = settings.recent_default_limit if limit is None else limit
    with sessions() as db:
        return ledger.recent_readings(db, lim, room=room, bed=bed)

@app.websocket("/v1/readings/stream")
async def reading_stream(ws: WebSocket, b: FanoutBroker = Depends(get_broker_dep)):
    # Subscribe before accepting so nothing published after the handshake is missed.
    sub = b.subscribe(READINGS_TOPIC)

    async def pump():
        while True:
            await ws.send_json(await sub.get())

    sender = None
    try:
        await ws.accept()
        sender = asyncio.create_task(pump())
        # Clients never send anything; reading only surfaces the disconnect.
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        if sender is not None:
            sender.cancel()
            # A send on a closed socket may already have failed the pump.
            with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
                await sender
        b.unsubscribe(sub)
        if sub.dropped:
            log.info("subscriber_dropped_messages", dropped=sub.dropped)

def _current_alert(sessions: SessionFactory) -> Reading | None:
    with sessions() as db:
        readings = ledger.recent_readings(db, settings.recent_default_limit)
    return derive_alert(readings)

@app.get("/v1/alerts/current", response_model=AlertOut)
def current_alert(session: str | None = None, sessions: SessionFactory = Depends(get_sessions),
                  monitors: AlertSessions = Depends(get_alert_sessions)):
    alert = _current_alert(sessions)
    band = status_band(alert.weight) if alert else None
    if not session:
        state = AlertState.ALERTING if alert else AlertState.IDLE
        return AlertOut(alert=alert, raise_alert=alert is not None, state=state.value, band=band)
    raised, state = monitors.observe(session, alert)
    if raised:
        log.warning("critical_weight_alert", room=raised.room, bed=raised.bed, weight=raised.weight, session=session)
    return AlertOut(alert=alert, raise_alert=raised is not None, state=state.value, band=band)

@app.post("/v1/patients", response_model=Patient)
def save_patient(payload: PatientIn, sessions: SessionFactory = Depends(get_sessions)):
    with sessions() as db:
        return patients.upsert_patient(db, payload)

@app.get("/v1/patients/count", response_model=CountOut)
def patient_count(sessions: SessionFactory = Depends(get_sessions)):
    with sessions() as db:
        return CountOut(count=patients.count_patients(db))

@app.get("/v1/patients/{room}/{bed}", response_model=Patient)
def read_patient(room: str, bed: str, sessions: SessionFactory = Depends(get_sessions)):
    with sessions() as db:
        p = patients.get_patient(db, room, bed)
    if p is None:
        raise HTTPException(status_code=404, detail="patient_not_found")
    return p

@app.get("/v1/rooms/count", response_model=CountOut)
def room_count(sessions: SessionFactory = Depends(get_sessions)):
    with sessions() as db:
        return CountOut(count=patients.count_distinct_rooms(db))

@app.get("/v1/dashboard/summary", response_model=DashboardSummary)
def dashboard_summary(sessions: SessionFactory = Depends(get_sessions)):
    with sessions() as db:
        n_patients = patients.count_patients(db)
        n_rooms = patients.count_distinct_rooms(db)
    return DashboardSummary(patients=n_patients, rooms=n_rooms, alert=_current_alert(sessions))
