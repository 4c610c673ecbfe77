import pytest

from budget_categorizer.config import (
    DEFAULT_API_URL,
    DEFAULT_BATCH_SIZE,
    DEFAULT_MODEL,
    DEFAULT_TIMEOUT_MS,
    CategorizerSettings,
    validate_environment,
)
from budget_categorizer.errors import ConfigurationError


def test_from_env_applies_defaults():
    settings = CategorizerSettings.from_env({"AI_API_KEY": "sk-test"})
    assert settings.api_key == "sk-test"
    assert settings.api_url == DEFAULT_API_URL
    assert settings.model == DEFAULT_MODEL
    assert settings.batch_size == DEFAULT_BATCH_SIZE == 20
    assert settings.timeout_ms == DEFAULT_TIMEOUT_MS == 30000
    assert settings.timeout_seconds == 30.0
    assert settings.temperature is None
    assert settings.taxonomy_ttl_seconds == 300


def test_from_env_reads_overrides():
    settings = CategorizerSettings.from_env(
        {
            "AI_API_KEY": "sk-test",
            "AI_API_URL": "https://llm.internal/v1",
            "AI_MODEL": "small-model",
            "AI_BATCH_SIZE": "50",
            "AI_API_TIMEOUT": "5000",
            "AI_MAX_TOKENS": "800",
            "AI_TEMPERATURE": "0",
            "AI_TAXONOMY_TTL": "60",
        }
    )
    assert settings.api_url == "https://llm.internal/v1"
    assert settings.model == "small-model"
    assert settings.batch_size == 50
    assert settings.timeout_ms == 5000
    assert settings.max_output_tokens == 800
    assert settings.temperature == 0.0
    assert settings.taxonomy_ttl_seconds == 60


def test_from_env_uses_process_environment(monkeypatch):
    monkeypatch.setenv("AI_API_KEY", "sk-env")
    monkeypatch.setenv("AI_BATCH_SIZE", "7")
    settings = CategorizerSettings.from_env()
    assert settings.api_key == "sk-env"
    assert settings.batch_size == 7


@pytest.mark.parametrize("env", [{}, {"AI_API_KEY": ""}, {"AI_API_KEY": "   "}])
def test_missing_api_key_is_a_configuration_error(env):
    with pytest.raises(ConfigurationError, match="AI_API_KEY"):
        CategorizerSettings.from_env(env)


@pytest.mark.parametrize("raw", ["abc", "0", "-5", "", "2.5"])
def test_malformed_batch_size_falls_back_to_default(raw):
    settings = CategorizerSettings.from_env({"AI_API_KEY": "k", "AI_BATCH_SIZE": raw})
    assert settings.batch_size == 20


@pytest.mark.parametrize("raw", ["oops", "0", "-1"])
def test_malformed_timeout_falls_back_to_default(raw):
    settings = CategorizerSettings.from_env({"AI_API_KEY": "k", "AI_API_TIMEOUT": raw})
    assert settings.timeout_ms == 30000


@pytest.mark.parametrize("raw", ["hot", "3.5", "-0.1"])
def test_out_of_range_temperature_is_ignored(raw):
    settings = CategorizerSettings.from_env({"AI_API_KEY": "k", "AI_TEMPERATURE": raw})
    assert settings.temperature is None


def test_blank_url_and_model_use_defaults():
    settings = CategorizerSettings(api_key="k", api_url="  ", model="")
    assert settings.api_url == DEFAULT_API_URL
    assert settings.model == DEFAULT_MODEL


def test_redacted_hides_the_key():
    data = CategorizerSettings(api_key="sk-secret").redacted()
    assert "api_key" not in data
    assert data["has_api_key"] is True
    assert "sk-secret" not in repr(data)


def test_validate_environment_reports_missing_key_and_defaults():
    report = validate_environment({"AI_MODEL": "m"})
    assert not report.is_valid
    assert report.missing == ["AI_API_KEY"]
    assert "AI_API_URL not set, using default" in report.warnings
    assert not any(w.startswith("AI_MODEL") for w in report.warnings)


def test_validate_environment_accepts_full_configuration():
    report = validate_environment(
        {
            "AI_API_KEY": "k",
            "AI_API_URL": "u",
            "AI_MODEL": "m",
            "AI_BATCH_SIZE": "10",
            "AI_API_TIMEOUT": "1000",
        }
    )
    assert report.is_valid
    assert report.missing == []
    assert report.warnings == []
