"""
Shared observability helpers (telemetry, privacy utilities, etc.).

Services import from this package to enable consistent instrumentation and
logging guardrails.
"""

from .privacy import hash_payload, redact_fields, truncate_text
from .telemetry import (
    CORRELATION_ID_HEADER,
    RequestContextFilter,
    RequestContextToken,
    TelemetrySettings,
    bind_request_context,
    current_request_id,
    ensure_request_id,
    install_request_context,
    load_telemetry_settings,
    reset_request_context,
    setup_telemetry,
)

__all__ = [
    "hash_payload",
    "redact_fields",
    "truncate_text",
    "CORRELATION_ID_HEADER",
    "RequestContextFilter",
    "RequestContextToken",
    "TelemetrySettings",
    "bind_request_context",
    "current_request_id",
    "ensure_request_id",
    "install_request_context",
    "load_telemetry_settings",
    "reset_request_context",
    "setup_telemetry",
]
