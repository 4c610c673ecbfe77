"""Configuration for the categorization pipeline.

All defaulting and validation lives in :class:`CategorizerSettings`. Library
code receives a settings instance explicitly; only :meth:`from_env` (and the
CLI that calls it) looks at the process environment.

Recognized environment variables:

- ``AI_API_KEY`` (required)
- ``AI_API_URL`` (default ``https://api.openai.com/v1``)
- ``AI_MODEL`` (default ``gpt-5-mini``)
- ``AI_BATCH_SIZE`` (default 20)
- ``AI_API_TIMEOUT`` in milliseconds (default 30000)
- ``AI_MAX_TOKENS`` (default 4000)
- ``AI_TEMPERATURE`` (unset by default; omitted from requests)
- ``AI_TAXONOMY_TTL`` in seconds (default 300)

Malformed numeric overrides fall back to their defaults instead of failing.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, field_validator

from .errors import ConfigurationError

DEFAULT_API_URL: str = "https://api.openai.com/v1"
DEFAULT_MODEL: str = "gpt-5-mini"
DEFAULT_BATCH_SIZE: int = 20
DEFAULT_TIMEOUT_MS: int = 30_000
DEFAULT_MAX_OUTPUT_TOKENS: int = 4000
DEFAULT_TAXONOMY_TTL_SECONDS: int = 300

_ENV_API_KEY = "AI_API_KEY"
_ENV_VARS: dict[str, str] = {
    "api_url": "AI_API_URL",
    "model": "AI_MODEL",
    "batch_size": "AI_BATCH_SIZE",
    "timeout_ms": "AI_API_TIMEOUT",
    "max_output_tokens": "AI_MAX_TOKENS",
    "temperature": "AI_TEMPERATURE",
    "taxonomy_ttl_seconds": "AI_TAXONOMY_TTL",
}


def _positive_int_or(default: int, raw: Any) -> int:
    if isinstance(raw, bool):
        return default
    try:
        value = int(str(raw).strip()) if isinstance(raw, str) else int(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


class CategorizerSettings(BaseModel):
    """Explicit, immutable configuration for client, cache and orchestrator."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    api_key: str = ""
    api_url: str = DEFAULT_API_URL
    model: str = DEFAULT_MODEL
    batch_size: int = DEFAULT_BATCH_SIZE
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    temperature: float | None = None
    taxonomy_ttl_seconds: int = DEFAULT_TAXONOMY_TTL_SECONDS

    @field_validator("api_key", mode="before")
    @classmethod
    def _api_key_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("api_url", mode="before")
    @classmethod
    def _api_url_or_default(cls, v: Any) -> str:
        s = str(v).strip() if v is not None else ""
        return s or DEFAULT_API_URL

    @field_validator("model", mode="before")
    @classmethod
    def _model_or_default(cls, v: Any) -> str:
        s = str(v).strip() if v is not None else ""
        return s or DEFAULT_MODEL

    @field_validator("batch_size", mode="before")
    @classmethod
    def _batch_size_or_default(cls, v: Any) -> int:
        return _positive_int_or(DEFAULT_BATCH_SIZE, v)

    @field_validator("timeout_ms", mode="before")
    @classmethod
    def _timeout_or_default(cls, v: Any) -> int:
        return _positive_int_or(DEFAULT_TIMEOUT_MS, v)

    @field_validator("max_output_tokens", mode="before")
    @classmethod
    def _max_tokens_or_default(cls, v: Any) -> int:
        return _positive_int_or(DEFAULT_MAX_OUTPUT_TOKENS, v)

    @field_validator("taxonomy_ttl_seconds", mode="before")
    @classmethod
    def _ttl_or_default(cls, v: Any) -> int:
        return _positive_int_or(DEFAULT_TAXONOMY_TTL_SECONDS, v)

    @field_validator("temperature", mode="before")
    @classmethod
    def _temperature_or_none(cls, v: Any) -> float | None:
        if v is None or isinstance(v, bool):
            return None
        try:
            t = float(str(v).strip()) if isinstance(v, str) else float(v)
        except (TypeError, ValueError):
            return None
        return t if 0.0 <= t <= 2.0 else None

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    def require_api_key(self) -> str:
        """Return the API key or raise :class:`ConfigurationError`."""

        if not self.api_key:
            raise ConfigurationError(f"{_ENV_API_KEY} is required for the classification client")
        return self.api_key

    def redacted(self) -> dict[str, Any]:
        """Settings as a dict with the API key replaced by a presence flag."""

        data = self.model_dump(exclude={"api_key"})
        data["has_api_key"] = bool(self.api_key)
        return data

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> CategorizerSettings:
        """Build settings from ``environ`` (defaults to ``os.environ``).

        Raises :class:`ConfigurationError` when ``AI_API_KEY`` is missing or
        blank; every other variable is optional.
        """

        env = os.environ if environ is None else environ
        values: dict[str, Any] = {"api_key": env.get(_ENV_API_KEY, "")}
        for field, var in _ENV_VARS.items():
            raw = env.get(var)
            if raw is not None:
                values[field] = raw
        settings = cls(**values)
        settings.require_api_key()
        return settings


class EnvironmentReport(NamedTuple):
    is_valid: bool
    missing: list[str]
    warnings: list[str]


def validate_environment(environ: Mapping[str, str] | None = None) -> EnvironmentReport:
    """Report missing required variables and defaulted optional ones."""

    env = os.environ if environ is None else environ
    missing: list[str] = []
    warnings: list[str] = []
    if not (env.get(_ENV_API_KEY) or "").strip():
        missing.append(_ENV_API_KEY)
    for var in ("AI_API_URL", "AI_MODEL", "AI_BATCH_SIZE", "AI_API_TIMEOUT"):
        if not env.get(var):
            warnings.append(f"{var} not set, using default")
    return EnvironmentReport(is_valid=not missing, missing=missing, warnings=warnings)


__all__ = [
    "DEFAULT_API_URL",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_MODEL",
    "DEFAULT_TIMEOUT_MS",
    "CategorizerSettings",
    "EnvironmentReport",
    "validate_environment",
]
