from __future__ import annotations

import logging
import os
import sys

import structlog
from prometheus_client import Counter, Histogram

REQ_COUNT = Counter("bedwatch_http_requests_total", "HTTP requests", ["method", "path", "status"])
REQ_LAT = Histogram("bedwatch_http_request_seconds", "Request latency", ["path"])
READINGS_ADMITTED = Counter("bedwatch_readings_admitted_total", "Readings persisted by the ledger")
READINGS_TRIMMED = Counter("bedwatch_readings_trimmed_total", "Readings removed by retention trim")
TRIM_FAILURES = Counter("bedwatch_retention_trim_failures_total", "Retention trims that failed after insert")
BROADCAST_FAILURES = Counter("bedwatch_broadcast_failures_total", "Reading broadcasts that could not be published")

def init_logging(service_name: str) -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level, logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)

    logging.getLogger("uvicorn.access").handlers = []
    logging.getLogger("uvicorn.access").propagate = True
    logging.getLogger("uvicorn.error").propagate = True

def otel_enabled() -> bool:
    return os.getenv("OTEL_ENABLED", "true").lower() in ("1", "true", "yes")

def init_otel(service_name: str) -> None:
    if not otel_enabled():
        return
    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.requests import RequestsInstrumentor
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

        resource = Resource.create({
            "service.name": service_name,
            "deployment.environment": os.getenv("BEDWATCH_ENV", "dev"),
        })
        provider = TracerProvider(resource=resource)
        exporter = OTLPSpanExporter()  # uses OTEL_EXPORTER_OTLP_ENDPOINT etc.
        provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(provider)

        RequestsInstrumentor().instrument()
        SQLAlchemyInstrumentor().instrument()
    except Exception as e:
        structlog.get_logger(__name__).warning("otel_init_failed", error=str(e))
