"""
Logging guardrails for untrusted or sensitive payloads.

Receipt images, model answers, and reference lists never reach the logs
verbatim: callers hash them, redact them down to an allow-list of keys, or
truncate echoed text to a short prefix.
"""

import hashlib
import json
from collections.abc import Iterable, Mapping
from typing import Any

REDACTED = "[REDACTED]"
DEFAULT_TRUNCATE_CHARS = 300


def hash_payload(value: Any) -> str:
    """SHA-256 hex digest of `value`; equal payloads always hash the same."""

    return hashlib.sha256(_canonical_bytes(value)).hexdigest()


def _canonical_bytes(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode("utf-8")
    try:
        return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")
    except (TypeError, ValueError):
        # Non-string keys or circular references.
        return repr(value).encode("utf-8")


def redact_fields(payload: Mapping[str, Any], allowed_keys: Iterable[str]) -> dict[str, Any]:
    """Shallow copy of `payload` in which every key outside `allowed_keys` is masked."""

    keep = frozenset(allowed_keys)
    return {key: value if key in keep else REDACTED for key, value in payload.items()}


def truncate_text(value: str, limit: int = DEFAULT_TRUNCATE_CHARS) -> str:
    """Return at most `limit` characters of `value` for diagnostics."""

    return value[: max(limit, 0)]
