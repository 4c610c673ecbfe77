"""Logging for ``budget_categorizer``.

Every module logs through ``get_logger("budget_categorizer.<module>")`` using
``event:name key=value`` messages and never installs handlers itself. Until
an entrypoint calls :func:`configure_logging`, the ``budget_categorizer``
logger only carries a ``NullHandler`` and records propagate to whatever the
host application set up on the root logger.

The CLI calls :func:`configure_logging` once; the level comes from its
``--log-level`` option, else ``BUDGET_CATEGORIZER_LOG_LEVEL``, else INFO.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "budget_categorizer"
_LEVEL_ENV_VAR = "BUDGET_CATEGORIZER_LOG_LEVEL"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False


def _level_from_value(level: int | str | None) -> int | None:
    """Map ``20``, ``"20"`` or ``"info"`` to a level number; ``None`` if unknown."""

    if isinstance(level, int):
        return level
    if not isinstance(level, str):
        return None
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelNamesMapping().get(name)
    return numeric if isinstance(numeric, int) else None


def _resolve_level(level: int | str | None) -> int:
    for candidate in (level, os.getenv(_LEVEL_ENV_VAR)):
        resolved = _level_from_value(candidate)
        if resolved is not None:
            return resolved
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Send package records to ``stream``; later calls are no-ops.

    Replaces the placeholder ``NullHandler`` with one ``StreamHandler`` and
    stops propagation so records are not printed twice when the root logger
    also has a handler. Unknown level names fall back to the env variable,
    then INFO.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    for handler in list(pkg_logger.handlers):
        if isinstance(handler, logging.NullHandler):
            pkg_logger.removeHandler(handler)

    resolved = _resolve_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))

    pkg_logger.setLevel(resolved)
    pkg_logger.addHandler(handler)
    pkg_logger.propagate = False
    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)
