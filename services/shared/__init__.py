"""
Shared utilities for the BOQ services.

- provider_settings: configuration for the pluggable extraction provider
- observability: telemetry, JSON logging and privacy helpers
"""

from .provider_settings import (
    SUPPORTED_PROVIDERS,
    REQUIRED_OPENAI_ENV_VARS,
    ProviderSettingsError,
    OpenAIConfig,
    ProviderSettings,
    load_provider_settings,
)

__all__ = [
    "SUPPORTED_PROVIDERS",
    "REQUIRED_OPENAI_ENV_VARS",
    "ProviderSettingsError",
    "OpenAIConfig",
    "ProviderSettings",
    "load_provider_settings",
]
