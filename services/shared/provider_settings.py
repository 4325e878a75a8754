from __future__ import annotations

"""
Environment-driven settings for the receipt inference provider.

Settings are read per request rather than at import time, so a missing or
malformed variable becomes a request failure while the service keeps serving
the endpoints that do not call out (health, dashboard summaries).
"""

import os
from dataclasses import dataclass
from typing import Optional

SUPPORTED_PROVIDERS = frozenset({"mock", "openai"})
REQUIRED_OPENAI_ENV_VARS = ("OPENAI_API_KEY",)
DEFAULT_OPENAI_MODEL = "gpt-4.1-mini"
DEFAULT_OPENAI_API_BASE = "https://api.openai.com/v1"
MAX_TEMPERATURE = 2.0


class ProviderSettingsError(RuntimeError):
    """Raised when an env var is missing, unsupported, or out of range."""


@dataclass(frozen=True, slots=True)
class OpenAIConfig:
    api_key: str
    model: str
    api_base: str

    def __repr__(self) -> str:
        # Settings objects end up in log lines and tracebacks.
        return f"OpenAIConfig(api_key='***', model={self.model!r}, api_base={self.api_base!r})"


@dataclass(frozen=True, slots=True)
class ProviderSettings:
    provider_name: str
    timeout_seconds: float
    temperature: float
    max_output_tokens: int
    openai: Optional[OpenAIConfig] = None


def load_provider_settings(
    *,
    provider_env: str,
    timeout_env: str,
    temperature_env: str,
    max_tokens_env: str,
    default_provider: str = "openai",
    default_timeout: float = 45.0,
    default_temperature: float = 0.1,
    default_max_tokens: int = 800,
) -> ProviderSettings:
    """
    Read and validate provider settings from the environment.

    Args:
        provider_env: Env var selecting the provider ("openai" or "mock").
        timeout_env: Env var with the outbound request timeout in seconds.
        temperature_env: Env var with the sampling temperature.
        max_tokens_env: Env var capping the model's answer length.
        default_*: Values used when the matching env var is unset or blank.
    Raises:
        ProviderSettingsError: when a value cannot be parsed or is out of range,
            or when the OpenAI provider is selected without a credential.
    """

    provider_name = (env_value(provider_env) or default_provider).lower()
    if provider_name not in SUPPORTED_PROVIDERS:
        raise ProviderSettingsError(f"Unsupported provider '{provider_name}'")

    timeout_seconds = parse_float_env(env_value(timeout_env), default_timeout, timeout_env)
    if not timeout_seconds > 0:
        raise ProviderSettingsError(f"{timeout_env} must be positive (received '{timeout_seconds}')")

    temperature = parse_float_env(env_value(temperature_env), default_temperature, temperature_env)
    if not 0 <= temperature <= MAX_TEMPERATURE:
        raise ProviderSettingsError(f"{temperature_env} must be between 0 and {MAX_TEMPERATURE} (received '{temperature}')")

    max_output_tokens = parse_int_env(env_value(max_tokens_env), default_max_tokens, max_tokens_env)
    if max_output_tokens <= 0:
        raise ProviderSettingsError(f"{max_tokens_env} must be positive (received '{max_output_tokens}')")

    return ProviderSettings(
        provider_name=provider_name,
        timeout_seconds=timeout_seconds,
        temperature=temperature,
        max_output_tokens=max_output_tokens,
        openai=load_openai_config(provider_env) if provider_name == "openai" else None,
    )


def load_openai_config(provider_env: str = "provider") -> OpenAIConfig:
    missing = [key for key in REQUIRED_OPENAI_ENV_VARS if env_value(key) is None]
    if missing:
        raise ProviderSettingsError(f"{provider_env}=openai requires the following env vars: {', '.join(missing)}")

    return OpenAIConfig(
        api_key=env_value("OPENAI_API_KEY") or "",
        model=env_value("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL,
        api_base=env_value("OPENAI_API_BASE") or DEFAULT_OPENAI_API_BASE,
    )


def env_value(key: str) -> Optional[str]:
    """Return the stripped value of `key`, or None when it is unset or blank."""

    value = (os.getenv(key) or "").strip()
    return value or None


def parse_float_env(raw_value: Optional[str], default: float, env_key: str) -> float:
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return float(raw_value)
    except ValueError as exc:
        raise ProviderSettingsError(f"{env_key} must be numeric (received '{raw_value}')") from exc


def parse_int_env(raw_value: Optional[str], default: int, env_key: str) -> int:
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return int(raw_value)
    except ValueError as exc:
        raise ProviderSettingsError(f"{env_key} must be an integer (received '{raw_value}')") from exc
