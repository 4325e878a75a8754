from __future__ import annotations

"""
Provider abstraction for receipt draft inference.

This module defines the request contract plus the Protocol that concrete
implementations (OpenAI vision adapter, fixture-replaying mock) must satisfy.
Providers return the raw response payload of the inference call as a plain
mapping; locating the answer text, parsing it, and normalizing it are the
extraction service's job so every provider gets the same guardrails.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from draft_model import ReferenceAccount, ReferenceCategory
from errors import ConfigurationError
from receipt_inputs import ReceiptImage


@dataclass(slots=True)
class ReceiptDraftRequest:
    """
    Contract for receipt inference inputs.

    Attributes:
        image: Validated embedded receipt image.
        categories: Categories the model may choose from for this call.
        accounts: Accounts the model may choose from for this call.
    """

    image: ReceiptImage
    categories: List[ReferenceCategory] = field(default_factory=list)
    accounts: List[ReferenceAccount] = field(default_factory=list)


@runtime_checkable
class ReceiptDraftProvider(Protocol):
    """
    Pluggable interface for vision inference backends.

    Providers expose a human-readable `name` (used for logging and
    configuration), an `infer` method returning the raw response payload, and a
    `close` method releasing any held connection.
    """

    name: str

    def infer(self, request: ReceiptDraftRequest) -> Dict[str, Any]:
        """Run one inference call for the receipt and return the response payload."""
        ...

    def close(self) -> None:
        ...


class MockReceiptDraftProvider:
    """
    Fixture-driven provider used for tests and offline development.

    Reads a JSON document shaped like an inference response and replays it
    verbatim so the full parsing and guardrail path runs without a live model.
    """

    name = "mock"

    def __init__(self, fixture_path: str | Path | None = None):
        env_override = os.getenv("RECEIPT_DRAFT_PROVIDER_FIXTURE")
        candidate = fixture_path or env_override
        if candidate is None:
            candidate = _default_fixture_path()

        self._fixture_path = Path(candidate)
        if not self._fixture_path.exists():
            raise FileNotFoundError(
                f"Mock receipt draft provider fixture not found at {self._fixture_path}"
            )

    def infer(self, request: ReceiptDraftRequest) -> Dict[str, Any]:
        try:
            return json.loads(self._fixture_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigurationError(
                f"Mock receipt draft provider fixture is not valid JSON: {self._fixture_path}"
            ) from exc

    def close(self) -> None:
        return None


def _default_fixture_path() -> Path:
    service_root = Path(__file__).resolve().parents[1]
    return service_root / "tests" / "fixtures" / "mock_receipt_response.json"


def build_receipt_provider(
    name: str | None,
    *,
    settings: Optional[Any] = None,
) -> ReceiptDraftProvider:
    """
    Factory that instantiates the requested receipt draft provider.

    Args:
        name: Provider identifier supplied via configuration or env vars.
        settings: ProviderSettings forwarded to providers that call out.
    """

    normalized = (name or "").strip().lower()
    if normalized == "mock":
        return MockReceiptDraftProvider()
    if normalized in ("", "openai"):
        from providers.openai_receipt_vision import OpenAIReceiptDraftProvider

        return OpenAIReceiptDraftProvider(settings=settings)

    raise ValueError(f"Unsupported receipt draft provider '{name}'")
