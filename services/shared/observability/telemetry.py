"""
Telemetry bootstrap for the expense services.

Logging is always JSON (python-json-logger) and every record carries the
service name, the inbound request id, and, when tracing is enabled, the
current trace/span ids. Tracing itself is opt-in via `ENABLE_TELEMETRY` and
exports spans over OTLP/HTTP with FastAPI, httpx, and logging instrumentation.
"""

from __future__ import annotations

import logging
import os
from contextvars import ContextVar, Token
from dataclasses import dataclass
from uuid import uuid4

from fastapi import FastAPI, Request
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from pythonjsonlogger import jsonlogger

CORRELATION_ID_HEADER = "x-request-id"
DEFAULT_OTLP_ENDPOINT = "http://localhost:4318/v1/traces"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(service_name)s %(request_id)s %(trace_id)s %(span_id)s"
TRUTHY = frozenset({"1", "true", "yes", "on"})

RequestContextToken = Token

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)
_logging_ready = False
_httpx_instrumented = False


@dataclass(frozen=True, slots=True)
class TelemetrySettings:
    service_name: str
    log_level: int = logging.INFO
    traces_enabled: bool = False
    console_export: bool = False
    otlp_endpoint: str = DEFAULT_OTLP_ENDPOINT


def load_telemetry_settings(default_service_name: str) -> TelemetrySettings:
    """Read OTEL_SERVICE_NAME, LOG_LEVEL, ENABLE_TELEMETRY, OTEL_CONSOLE_EXPORT and the OTLP endpoint."""

    level = logging.getLevelName((os.getenv("LOG_LEVEL") or "INFO").strip().upper())
    return TelemetrySettings(
        service_name=(os.getenv("OTEL_SERVICE_NAME") or "").strip() or default_service_name,
        log_level=level if isinstance(level, int) else logging.INFO,
        traces_enabled=_flag("ENABLE_TELEMETRY"),
        console_export=_flag("OTEL_CONSOLE_EXPORT"),
        otlp_endpoint=(os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT") or "").strip() or DEFAULT_OTLP_ENDPOINT,
    )


def setup_telemetry(app: FastAPI, service_name: str) -> TelemetrySettings:
    """
    Install JSON logging and, when enabled, OpenTelemetry tracing for `app`.

    Safe to call more than once per process; logging handlers and the global
    tracer provider are only installed the first time.
    """

    settings = load_telemetry_settings(service_name)
    configure_json_logging(settings)

    if settings.traces_enabled:
        configure_tracing(settings)
        FastAPIInstrumentor.instrument_app(app)
        _instrument_httpx()
        LoggingInstrumentor().instrument(set_logging_format=False)
    return settings


def configure_json_logging(settings: TelemetrySettings) -> None:
    global _logging_ready
    if _logging_ready:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT))
    handler.addFilter(RequestContextFilter(settings.service_name, settings.traces_enabled))
    logging.basicConfig(level=settings.log_level, handlers=[handler], force=True)
    _logging_ready = True


def configure_tracing(settings: TelemetrySettings) -> None:
    if isinstance(trace.get_tracer_provider(), TracerProvider):
        return

    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: settings.service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))
    if settings.console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)


def install_request_context(app: FastAPI, header_name: str = CORRELATION_ID_HEADER) -> None:
    """Bind each request's id to the logging context and echo it on the response."""

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        request_id = ensure_request_id(request, header_name)
        token = bind_request_context(request_id)
        try:
            response = await call_next(request)
        finally:
            reset_request_context(token)
        response.headers.setdefault(header_name, request_id)
        return response


def ensure_request_id(request: Request, header_name: str = CORRELATION_ID_HEADER) -> str:
    """Reuse the caller's request id when present, otherwise mint a UUID4."""

    request_id = (request.headers.get(header_name) or "").strip()
    if not request_id:
        request_id = os.getenv("REQUEST_ID_PREFIX", "") + str(uuid4())
    request.state.request_id = request_id
    return request_id


def bind_request_context(request_id: str | None) -> RequestContextToken:
    return _request_id.set(request_id)


def reset_request_context(token: RequestContextToken | None) -> None:
    if token is not None:
        _request_id.reset(token)


def current_request_id() -> str | None:
    return _request_id.get()


class RequestContextFilter(logging.Filter):
    """Stamp service, request and trace identifiers onto every record."""

    def __init__(self, service_name: str, traces_enabled: bool) -> None:
        super().__init__()
        self._service_name = service_name
        self._traces_enabled = traces_enabled

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = self._service_name
        record.request_id = _request_id.get()
        record.trace_id = None
        record.span_id = None

        if self._traces_enabled:
            span_context = trace.get_current_span().get_span_context()
            if span_context.is_valid:
                record.trace_id = format(span_context.trace_id, "032x")
                record.span_id = format(span_context.span_id, "016x")
        return True


def _instrument_httpx() -> None:
    global _httpx_instrumented
    if not _httpx_instrumented:
        HTTPXClientInstrumentor().instrument()
        _httpx_instrumented = True


def _flag(key: str) -> bool:
    return (os.getenv(key) or "").strip().lower() in TRUTHY
