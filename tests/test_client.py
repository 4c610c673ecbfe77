from types import SimpleNamespace

import httpx
import openai
import pytest

import budget_categorizer.client as client_mod
from budget_categorizer.client import ClassificationClient
from budget_categorizer.config import CategorizerSettings
from budget_categorizer.errors import (
    ClassificationCallError,
    ClassificationTimeoutError,
    ConfigurationError,
)
from tests.helpers.openai_stub import FAKE_REQUEST, OpenAIStub, make_openai_class


def _settings(**overrides) -> CategorizerSettings:
    return CategorizerSettings(api_key="sk-test", **overrides)


def _raising(exc: BaseException):
    def reply(_kwargs):
        raise exc

    return reply


def test_missing_api_key_fails_at_construction():
    with pytest.raises(ConfigurationError, match="AI_API_KEY"):
        ClassificationClient(CategorizerSettings(), client=OpenAIStub("[]"))


def test_request_carries_model_prompts_and_token_limit():
    stub = OpenAIStub('[{"mainCategory": "Shopping", "subCategory": "Clothing"}]')
    client = ClassificationClient(_settings(model="test-model"), client=stub)

    text = client.classify("SYSTEM", "USER")

    assert text == '[{"mainCategory": "Shopping", "subCategory": "Clothing"}]'
    assert stub.calls == [
        {
            "model": "test-model",
            "instructions": "SYSTEM",
            "input": "USER",
            "max_output_tokens": 4000,
        }
    ]


def test_temperature_is_sent_only_when_configured():
    stub = OpenAIStub("[]")
    ClassificationClient(_settings(temperature="0.2"), client=stub).classify("s", "u")
    assert stub.calls[0]["temperature"] == pytest.approx(0.2)


def test_output_text_falls_back_to_first_content_part():
    class _Responses:
        def create(self, **kwargs):
            part = SimpleNamespace(text=SimpleNamespace(value="[]"))
            return SimpleNamespace(output_text=None, output=[SimpleNamespace(content=[part])])

    client = ClassificationClient(_settings(), client=SimpleNamespace(responses=_Responses()))
    assert client.classify("s", "u") == "[]"


@pytest.mark.parametrize("text", [None, ""])
def test_empty_answer_is_a_call_error(text):
    client = ClassificationClient(_settings(), client=OpenAIStub(lambda _kw: text))
    with pytest.raises(ClassificationCallError, match="no content"):
        client.classify("s", "u")


def test_timeout_maps_to_timeout_error():
    stub = OpenAIStub(_raising(openai.APITimeoutError(request=FAKE_REQUEST)))
    client = ClassificationClient(_settings(timeout_ms=1500), client=stub)
    with pytest.raises(ClassificationTimeoutError) as excinfo:
        client.classify("s", "u")
    assert excinfo.value.timeout_ms == 1500
    assert "1500ms" in str(excinfo.value)


def test_http_status_error_keeps_status_code():
    response = httpx.Response(503, request=FAKE_REQUEST)
    exc = openai.APIStatusError("Service Unavailable", response=response, body=None)
    client = ClassificationClient(_settings(), client=OpenAIStub(_raising(exc)))
    with pytest.raises(ClassificationCallError) as excinfo:
        client.classify("s", "u")
    assert excinfo.value.status_code == 503
    assert not isinstance(excinfo.value, ClassificationTimeoutError)


def test_connection_error_maps_to_call_error_without_status():
    exc = openai.APIConnectionError(request=FAKE_REQUEST)
    client = ClassificationClient(_settings(), client=OpenAIStub(_raising(exc)))
    with pytest.raises(ClassificationCallError) as excinfo:
        client.classify("s", "u")
    assert excinfo.value.status_code is None


def test_health_turns_unhealthy_after_repeated_failures_and_recovers():
    state = {"fail": True}

    def reply(_kwargs):
        if state["fail"]:
            raise openai.APIConnectionError(request=FAKE_REQUEST)
        return "[]"

    client = ClassificationClient(_settings(), client=OpenAIStub(reply))
    for _ in range(5):
        with pytest.raises(ClassificationCallError):
            client.classify("s", "u")
    health = client.health()
    assert not health.is_healthy
    assert health.consecutive_failures == 5
    assert health.last_successful_call is None
    assert "api_key" not in health.configuration
    assert health.configuration["has_api_key"] is True

    state["fail"] = False
    client.classify("s", "u")
    health = client.health()
    assert health.is_healthy
    assert health.consecutive_failures == 0
    assert health.last_successful_call is not None


def test_sdk_client_is_built_without_retries_and_with_timeout(monkeypatch):
    stub = OpenAIStub("[]")
    monkeypatch.setattr(client_mod, "OpenAI", make_openai_class(stub))

    ClassificationClient(_settings(api_url="https://llm.internal/v1", timeout_ms=2500))

    assert stub.init_kwargs == {
        "api_key": "sk-test",
        "base_url": "https://llm.internal/v1",
        "timeout": 2.5,
        "max_retries": 0,
    }
