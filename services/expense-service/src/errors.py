"""
Failure taxonomy for the receipt draft pipeline.

Every error is terminal for the call; the HTTP layer renders them through a
single exception handler using `status_code` and `to_payload`.
"""

from __future__ import annotations

from typing import Any, Iterable


class DraftExtractionError(Exception):
    """Base class for failures that abort draft extraction."""

    status_code = 500
    kind = "draft_extraction_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message}


class InvalidInput(DraftExtractionError):
    status_code = 400
    kind = "invalid_input"


class ConfigurationError(DraftExtractionError):
    kind = "configuration_error"


class UpstreamError(DraftExtractionError):
    """The inference provider answered with a non-success status or could not be reached."""

    kind = "upstream_error"

    def __init__(self, status: int | None, body: str):
        self.status = status
        self.body = body
        if status is None:
            message = f"OpenAI request failed: {body}"
        else:
            message = f"OpenAI error ({status}): {body}"
        super().__init__(message)


class EmptyModelOutput(DraftExtractionError):
    kind = "empty_model_output"

    def __init__(self, received_keys: Iterable[str]):
        self.received_keys = list(received_keys)
        keys = ", ".join(self.received_keys) if self.received_keys else "not-an-object"
        super().__init__(f"OpenAI returned no readable text. Response keys: {keys}")


class MalformedModelJSON(DraftExtractionError):
    kind = "malformed_model_json"

    def __init__(self, raw_prefix: str):
        self.raw_prefix = raw_prefix
        super().__init__(f"Model did not return valid JSON. Got: {raw_prefix}")

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message, "raw": self.raw_prefix}


class InvalidDraftShape(DraftExtractionError):
    kind = "invalid_draft_shape"

    def __init__(self, received_type: str):
        self.received_type = received_type
        super().__init__(f"Draft JSON is invalid: expected an object, got {received_type}")
