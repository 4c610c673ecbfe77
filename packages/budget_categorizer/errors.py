"""Exception types raised by the categorization pipeline.

Three failure classes exist and they are handled differently:

- :class:`ConfigurationError` is fatal. It is raised while constructing the
  client or settings and is never retried.
- :class:`ClassificationCallError` (and its timeout subclass) describes a
  failed request to the classification provider. The batch orchestrator
  records it per chunk and leaves the decision to retry with the caller.
- Content problems in a response (bad JSON, count mismatch, invented
  categories) are not exceptions at all; the parser resolves them to the
  fallback pair and logs a warning.
"""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Required configuration is missing or unusable."""


class ClassificationCallError(RuntimeError):
    """The request to the classification provider did not produce text.

    ``status_code`` is set when the provider answered with a non-success HTTP
    status; it is ``None`` for network failures, timeouts and empty bodies.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ClassificationTimeoutError(ClassificationCallError):
    """The request exceeded the configured timeout."""

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"classification request timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


__all__ = [
    "ClassificationCallError",
    "ClassificationTimeoutError",
    "ConfigurationError",
]
