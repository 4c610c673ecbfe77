"""Response parsing and taxonomy validation for classifier output.

The parser is the boundary where unreliable provider text becomes a total,
length-correct function: :meth:`ResponseParser.parse` always returns exactly
``expected_count`` results, substituting the ``("To Classify", "Needs
Review")`` fallback for anything it cannot trust.

Policy
------
- No JSON array found, or the array does not decode: every position falls
  back.
- Array length differs from ``expected_count``: every position falls back,
  since index correspondence can no longer be trusted.
- Element missing ``mainCategory``/``subCategory`` or naming a pair outside
  the taxonomy: that position falls back.

Each fallback emits a WARNING record on ``budget_categorizer.parsing``.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .logging_setup import get_logger
from .models import CategorizationResult, fallback_result

_logger = get_logger("budget_categorizer.parsing")

_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\n?(.*?)```", re.DOTALL)


class PairValidator(Protocol):
    def is_valid_pair(self, main: str, sub: str) -> bool: ...


# ---------------------------------------------------------------------------
# JSON array extraction
# ---------------------------------------------------------------------------


def strip_code_fence(text: str) -> str:
    """Return the body of the first fenced block, or ``text`` unchanged."""

    m = _FENCE_RE.search(text)
    return m.group(1) if m else text


def find_balanced_array(text: str) -> str | None:
    """Return the substring from the first ``[`` to its matching ``]``.

    Walks the text once tracking bracket depth. Brackets inside JSON string
    literals (including escaped quotes) are ignored. Returns ``None`` when
    there is no ``[`` or it is never closed.
    """

    start = text.find("[")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def extract_json_array(text: str | None) -> list[Any] | None:
    """Decode the first JSON array in ``text``; ``None`` when unusable.

    Accepts bare JSON, fenced JSON (```` ```json ... ``` ````) and arrays
    surrounded by prose. When the first fenced block holds no array, the
    whole text is scanned instead.
    """

    if not text:
        return None
    fenced = strip_code_fence(text)
    candidate = find_balanced_array(fenced)
    if candidate is None and fenced != text:
        # The fence held something else; the array may sit in the prose.
        candidate = find_balanced_array(text)
    if candidate is None:
        return None
    try:
        decoded = json.loads(candidate)
    except (ValueError, RecursionError):
        # JSONDecodeError is a ValueError; absurd nesting exhausts the stack.
        return None
    return decoded if isinstance(decoded, list) else None


# ---------------------------------------------------------------------------
# Per-item validation
# ---------------------------------------------------------------------------


class _CategoryItem(BaseModel):
    """Typed view of one classifier decision; extra keys are ignored."""

    model_config = ConfigDict(extra="ignore", strict=True)

    main_category: str = Field(alias="mainCategory")
    sub_category: str = Field(alias="subCategory")


def _coerce_item(raw: Any) -> _CategoryItem | None:
    if not isinstance(raw, Mapping):
        return None
    try:
        return _CategoryItem.model_validate(raw)
    except ValidationError:
        return None


def _field_for_log(raw: Any, key: str) -> Any:
    return raw.get(key) if isinstance(raw, Mapping) else None


class ResponseParser:
    """Turn raw provider text into validated results for one chunk.

    Parameters
    ----------
    validator:
        Anything with ``is_valid_pair(main, sub)``, normally the
        :class:`~budget_categorizer.taxonomy.PairIndex` of the snapshot a run
        started with.
    """

    def __init__(self, validator: PairValidator) -> None:
        self._validator = validator

    def parse(self, raw_text: str | None, expected_count: int) -> list[CategorizationResult]:
        """Return exactly ``expected_count`` results for ``raw_text``.

        Never raises for malformed input. Raises ``ValueError`` only when
        ``expected_count`` is not a non-negative integer.
        """

        if isinstance(expected_count, bool) or not isinstance(expected_count, int):
            raise ValueError("expected_count must be an integer")
        if expected_count < 0:
            raise ValueError("expected_count must be >= 0")

        parsed = extract_json_array(raw_text)
        if parsed is None:
            _logger.warning(
                "parse:no_array expected=%d response_chars=%d",
                expected_count,
                len(raw_text or ""),
            )
            return [fallback_result() for _ in range(expected_count)]

        if len(parsed) != expected_count:
            _logger.warning(
                "parse:count_mismatch expected=%d actual=%d",
                expected_count,
                len(parsed),
            )
            return [fallback_result() for _ in range(expected_count)]

        results: list[CategorizationResult] = []
        for index, raw in enumerate(parsed):
            item = _coerce_item(raw)
            if item is not None and self._validator.is_valid_pair(
                item.main_category, item.sub_category
            ):
                results.append(
                    CategorizationResult(
                        main_category=item.main_category,
                        sub_category=item.sub_category,
                        user_modified=False,
                    )
                )
                continue
            _logger.warning(
                "parse:rejected_pair index=%d main=%r sub=%r",
                index,
                _field_for_log(raw, "mainCategory"),
                _field_for_log(raw, "subCategory"),
            )
            results.append(fallback_result())
        return results


__all__ = [
    "PairValidator",
    "ResponseParser",
    "extract_json_array",
    "find_balanced_array",
    "strip_code_fence",
]
