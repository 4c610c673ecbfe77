"""Client for the external text-classification provider.

One non-streaming POST per call to the OpenAI Responses API (or any endpoint
speaking the same protocol at ``settings.api_url``). The system prompt is sent
as ``instructions`` and the user prompt as ``input``; the SDK attaches the
bearer credential.

The SDK is constructed with ``max_retries=0`` and the configured timeout, so a
call never runs past ``settings.timeout_ms``. Retrying a failed chunk is the
caller's decision.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import openai
from openai import OpenAI

from .config import CategorizerSettings
from .errors import ClassificationCallError, ClassificationTimeoutError
from .logging_setup import get_logger

_UNHEALTHY_AFTER_FAILURES = 5

_logger = get_logger("budget_categorizer.client")


def _create_client(settings: CategorizerSettings) -> OpenAI:
    return OpenAI(
        api_key=settings.require_api_key(),
        base_url=settings.api_url,
        timeout=settings.timeout_seconds,
        max_retries=0,
    )


def _extract_output_text(resp: Any) -> str | None:
    """Locate the text output on a Responses SDK result.

    Prefers ``resp.output_text``; falls back to ``resp.output[0].content[0].text``
    (plain string, or an object carrying a ``value`` string).
    """

    text = getattr(resp, "output_text", None)
    if isinstance(text, str) and text:
        return text
    output = getattr(resp, "output", None)
    if not output:
        return None
    content = getattr(output[0], "content", None)
    if not content:
        return None
    txt_obj = getattr(content[0], "text", None)
    if isinstance(txt_obj, str):
        return txt_obj or None
    maybe_val = getattr(txt_obj, "value", None)
    return maybe_val if isinstance(maybe_val, str) and maybe_val else None


@dataclass(frozen=True, slots=True)
class ClientHealth:
    is_healthy: bool
    consecutive_failures: int
    last_successful_call: datetime | None
    configuration: dict[str, Any]


class ClassificationClient:
    """Send prompts to the provider and return its raw text answer.

    Construction fails fast with :class:`~budget_categorizer.errors.ConfigurationError`
    when ``settings.api_key`` is empty. ``client`` may be any object exposing
    ``responses.create(**kwargs)``; tests pass a stub here.
    """

    def __init__(self, settings: CategorizerSettings, *, client: Any | None = None) -> None:
        settings.require_api_key()
        self._settings = settings
        self._client = client if client is not None else _create_client(settings)
        self._consecutive_failures = 0
        self._last_success: datetime | None = None
        _logger.info(
            "client:init api_url=%s model=%s timeout_ms=%d",
            settings.api_url,
            settings.model,
            settings.timeout_ms,
        )

    @property
    def settings(self) -> CategorizerSettings:
        return self._settings

    def _request_kwargs(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._settings.model,
            "instructions": system_prompt,
            "input": user_prompt,
            "max_output_tokens": self._settings.max_output_tokens,
        }
        if self._settings.temperature is not None:
            kwargs["temperature"] = self._settings.temperature
        return kwargs

    def classify(self, system_prompt: str, user_prompt: str) -> str:
        """Return the provider's raw text for one prompt pair.

        Raises
        ------
        ClassificationTimeoutError
            The call exceeded the configured timeout.
        ClassificationCallError
            Network failure, non-success HTTP status, or an empty answer.
        """

        t0 = time.perf_counter()
        try:
            resp = self._client.responses.create(
                **self._request_kwargs(system_prompt, user_prompt)
            )
        except openai.APITimeoutError as e:
            self._record_failure(t0, e)
            raise ClassificationTimeoutError(self._settings.timeout_ms) from e
        except openai.APIStatusError as e:
            self._record_failure(t0, e)
            raise ClassificationCallError(
                f"classification API error: {e.status_code} {e.message}",
                status_code=e.status_code,
            ) from e
        except openai.APIConnectionError as e:
            self._record_failure(t0, e)
            raise ClassificationCallError(f"classification API unreachable: {e}") from e
        except openai.APIError as e:
            self._record_failure(t0, e)
            raise ClassificationCallError(f"classification API failure: {e}") from e

        text = _extract_output_text(resp)
        if text is None:
            err = ClassificationCallError("no content received from classification API")
            self._record_failure(t0, err)
            raise err

        self._consecutive_failures = 0
        self._last_success = datetime.now(UTC)
        _logger.debug(
            "client:call_done chars=%d latency_ms=%.2f",
            len(text),
            (time.perf_counter() - t0) * 1000.0,
        )
        return text

    def _record_failure(self, t0: float, exc: BaseException) -> None:
        self._consecutive_failures += 1
        _logger.error(
            "client:call_failed api_url=%s model=%s latency_ms=%.2f failures=%d error=%s",
            self._settings.api_url,
            self._settings.model,
            (time.perf_counter() - t0) * 1000.0,
            self._consecutive_failures,
            exc.__class__.__name__,
        )

    def health(self) -> ClientHealth:
        return ClientHealth(
            is_healthy=self._consecutive_failures < _UNHEALTHY_AFTER_FAILURES,
            consecutive_failures=self._consecutive_failures,
            last_successful_call=self._last_success,
            configuration=self._settings.redacted(),
        )


__all__ = ["ClassificationClient", "ClientHealth"]
