"""
Shared utilities for the expense services.

This package contains code shared across service entrypoints and tests:
- provider_settings: Configuration for pluggable AI providers
- observability: Telemetry, logging, and privacy utilities
"""

from .provider_settings import (
    SUPPORTED_PROVIDERS,
    REQUIRED_OPENAI_ENV_VARS,
    ProviderSettingsError,
    OpenAIConfig,
    ProviderSettings,
    env_value,
    load_openai_config,
    load_provider_settings,
    parse_float_env,
    parse_int_env,
)

__all__ = [
    "SUPPORTED_PROVIDERS",
    "REQUIRED_OPENAI_ENV_VARS",
    "ProviderSettingsError",
    "OpenAIConfig",
    "ProviderSettings",
    "env_value",
    "load_openai_config",
    "load_provider_settings",
    "parse_float_env",
    "parse_int_env",
]
