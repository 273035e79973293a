from __future__ import annotations

"""
Environment-driven configuration for the document extraction provider.

Free-text BOQ documents are handed to a pluggable provider. Loading and
validating its settings in one place keeps timeouts, temperature, token
limits and the input character budget consistent wherever a provider is
built.
"""

import os
from dataclasses import dataclass
from typing import Optional

SUPPORTED_PROVIDERS = frozenset({"disabled", "mock", "openai"})
REQUIRED_OPENAI_ENV_VARS = ("OPENAI_API_KEY", "OPENAI_MODEL")
DEFAULT_OPENAI_API_BASE = "https://api.openai.com/v1"


class ProviderSettingsError(RuntimeError):
    """Raised when provider configuration cannot be constructed."""


@dataclass(frozen=True, slots=True)
class OpenAIConfig:
    api_key: str
    model: str
    api_base: str


@dataclass(frozen=True, slots=True)
class ProviderSettings:
    provider_name: str
    timeout_seconds: float
    temperature: float
    max_output_tokens: int
    max_input_chars: int
    openai: Optional[OpenAIConfig] = None
    fixture_path: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return self.provider_name != "disabled"


def load_provider_settings(
    *,
    provider_env: str,
    timeout_env: str,
    temperature_env: str,
    max_tokens_env: str,
    max_input_chars_env: str,
    fixture_env: str | None = None,
    default_provider: str = "disabled",
    default_timeout: float = 60.0,
    default_temperature: float = 0.1,
    default_max_tokens: int = 4096,
    default_max_input_chars: int = 15000,
) -> ProviderSettings:
    """
    Construct ProviderSettings from the environment.

    Args:
        provider_env: Env var that selects the provider implementation.
        timeout_env: Env var that overrides outbound request timeouts.
        temperature_env: Env var that tunes generation randomness.
        max_tokens_env: Env var that caps model responses.
        max_input_chars_env: Env var that caps how much document text is sent.
        fixture_env: Env var pointing the mock provider at a JSON fixture.
        default_*: Fallback values when the env var is unset/empty.
    """

    provider_name = _normalize_provider(os.getenv(provider_env, default_provider), default_provider)
    timeout_seconds = _parse_float(os.getenv(timeout_env), default_timeout, timeout_env)
    temperature = _parse_float(os.getenv(temperature_env), default_temperature, temperature_env)
    max_output_tokens = _parse_int(os.getenv(max_tokens_env), default_max_tokens, max_tokens_env)
    max_input_chars = _parse_int(os.getenv(max_input_chars_env), default_max_input_chars, max_input_chars_env)
    if max_input_chars <= 0:
        raise ProviderSettingsError(f"{max_input_chars_env} must be positive (received {max_input_chars})")

    openai_config: Optional[OpenAIConfig] = None
    if provider_name == "openai":
        openai_config = _build_openai_config(provider_env)

    fixture_path = os.getenv(fixture_env) if fixture_env else None

    return ProviderSettings(
        provider_name=provider_name,
        timeout_seconds=timeout_seconds,
        temperature=temperature,
        max_output_tokens=max_output_tokens,
        max_input_chars=max_input_chars,
        openai=openai_config,
        fixture_path=fixture_path or None,
    )


def _normalize_provider(raw_value: Optional[str], default_provider: str) -> str:
    candidate = (raw_value or "").strip().lower() or default_provider

    if candidate not in SUPPORTED_PROVIDERS:
        raise ProviderSettingsError(f"Unsupported provider '{candidate}'")
    return candidate


def _parse_float(raw_value: Optional[str], default: float, env_key: str) -> float:
    if raw_value is None or raw_value.strip() == "":
        return default

    try:
        return float(raw_value)
    except ValueError as exc:
        raise ProviderSettingsError(f"{env_key} must be numeric (received '{raw_value}')") from exc


def _parse_int(raw_value: Optional[str], default: int, env_key: str) -> int:
    if raw_value is None or raw_value.strip() == "":
        return default

    try:
        return int(raw_value)
    except ValueError as exc:
        raise ProviderSettingsError(f"{env_key} must be an integer (received '{raw_value}')") from exc


def _build_openai_config(provider_env: str) -> OpenAIConfig:
    missing = [env_key for env_key in REQUIRED_OPENAI_ENV_VARS if not os.getenv(env_key)]
    if missing:
        formatted_missing = ", ".join(missing)
        raise ProviderSettingsError(
            f"{provider_env}=openai requires the following env vars: {formatted_missing}"
        )

    return OpenAIConfig(
        api_key=os.environ["OPENAI_API_KEY"].strip(),
        model=os.environ["OPENAI_MODEL"].strip(),
        api_base=(os.getenv("OPENAI_API_BASE") or DEFAULT_OPENAI_API_BASE).strip(),
    )
