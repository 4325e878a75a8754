"""
Environment-driven configuration for the receipt draft pipeline.

Settings are loaded per request so that a missing credential becomes a request
failure (HTTP 500) instead of preventing the service from starting.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass

from shared.provider_settings import (
    ProviderSettings,
    ProviderSettingsError,
    load_provider_settings,
    parse_float_env,
    parse_int_env,
)

from errors import ConfigurationError

DEFAULT_AMOUNT_CEILING = 500_000.0
DEFAULT_MAX_IMAGE_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True, slots=True)
class DraftGuardrails:
    """Hard limits applied to requests and model output."""

    amount_ceiling: float = DEFAULT_AMOUNT_CEILING
    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES


def load_receipt_provider_settings() -> ProviderSettings:
    try:
        return load_provider_settings(
            provider_env="RECEIPT_DRAFT_PROVIDER",
            timeout_env="RECEIPT_DRAFT_TIMEOUT_SECONDS",
            temperature_env="RECEIPT_DRAFT_TEMPERATURE",
            max_tokens_env="RECEIPT_DRAFT_MAX_TOKENS",
            default_provider="openai",
            default_timeout=45.0,  # vision calls on large photos can be slow
            default_temperature=0.1,
            default_max_tokens=800,
        )
    except ProviderSettingsError as exc:
        raise ConfigurationError(f"Receipt draft provider is not configured: {exc}") from exc


def load_draft_guardrails() -> DraftGuardrails:
    try:
        amount_ceiling = parse_float_env(
            os.getenv("RECEIPT_DRAFT_AMOUNT_CEILING"), DEFAULT_AMOUNT_CEILING, "RECEIPT_DRAFT_AMOUNT_CEILING"
        )
        max_image_bytes = parse_int_env(
            os.getenv("RECEIPT_DRAFT_MAX_IMAGE_BYTES"), DEFAULT_MAX_IMAGE_BYTES, "RECEIPT_DRAFT_MAX_IMAGE_BYTES"
        )
    except ProviderSettingsError as exc:
        raise ConfigurationError(str(exc)) from exc

    if not (math.isfinite(amount_ceiling) and amount_ceiling >= 0):
        raise ConfigurationError(f"RECEIPT_DRAFT_AMOUNT_CEILING must be a finite, non-negative number (received '{amount_ceiling}')")
    if max_image_bytes <= 0:
        raise ConfigurationError(f"RECEIPT_DRAFT_MAX_IMAGE_BYTES must be positive (received '{max_image_bytes}')")
    return DraftGuardrails(amount_ceiling=amount_ceiling, max_image_bytes=max_image_bytes)
