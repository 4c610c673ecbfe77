"""In-memory taxonomy cache used to validate classifier output.

The cache holds one immutable snapshot of the allowed ``(main, sub)`` pairs.
Snapshots come from a caller-supplied ``source`` callable (typically a
database query owned by the host application) and are refreshed when older
than the configured TTL or after :meth:`TaxonomyCache.invalidate`.

Validation is a case-sensitive exact match. A subcategory is only valid under
its own parent: ``("Shopping", "Internet")`` is rejected when ``"Internet"``
belongs to ``"Bills & Utilities"``.
"""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from os import PathLike
from pathlib import Path
from typing import Any

from .config import DEFAULT_TAXONOMY_TTL_SECONDS
from .logging_setup import get_logger
from .models import (
    FALLBACK_MAIN_CATEGORY,
    FALLBACK_SUB_CATEGORY,
    CategorizationResult,
    CategoryTaxonomy,
    TaxonomyEntry,
    fallback_result,
)

type TaxonomySource = Callable[[], Iterable[TaxonomyEntry | Mapping[str, Any]]]

_logger = get_logger("budget_categorizer.taxonomy")


def build_taxonomy(entries: Iterable[TaxonomyEntry | Mapping[str, Any]]) -> CategoryTaxonomy:
    """Normalize raw entries into a snapshot that contains the fallback pair.

    - Mappings are converted with :meth:`TaxonomyEntry.from_mapping`.
    - Duplicate main categories raise ``ValueError``.
    - ``"To Classify"``/``"Needs Review"`` is appended (or added to an
      existing ``"To Classify"`` entry) when missing.
    """

    out: list[TaxonomyEntry] = []
    seen: set[str] = set()
    for raw in entries:
        entry = raw if isinstance(raw, TaxonomyEntry) else TaxonomyEntry.from_mapping(raw)
        if entry.main_category in seen:
            raise ValueError(f"duplicate main category in taxonomy: {entry.main_category!r}")
        seen.add(entry.main_category)
        out.append(entry)

    if FALLBACK_MAIN_CATEGORY not in seen:
        out.append(TaxonomyEntry(FALLBACK_MAIN_CATEGORY, (FALLBACK_SUB_CATEGORY,)))
    else:
        for i, entry in enumerate(out):
            if (
                entry.main_category == FALLBACK_MAIN_CATEGORY
                and FALLBACK_SUB_CATEGORY not in entry.subcategories
            ):
                out[i] = TaxonomyEntry(
                    FALLBACK_MAIN_CATEGORY, (*entry.subcategories, FALLBACK_SUB_CATEGORY)
                )
    return tuple(out)


def load_taxonomy_json(path: str | PathLike[str]) -> list[TaxonomyEntry]:
    """Read ``[{"mainCategory": ..., "subcategories": [...]}, ...]`` from disk."""

    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError(f"taxonomy file must contain a JSON array: {path}")
    return [TaxonomyEntry.from_mapping(item) for item in raw]


class PairIndex:
    """Exact-match lookup of the allowed pairs of one taxonomy snapshot.

    Immutable; a run validates every chunk against the index of the snapshot
    its system prompt was built from, whatever the cache does meanwhile.
    """

    __slots__ = ("_subs_by_main", "taxonomy")

    def __init__(self, taxonomy: CategoryTaxonomy) -> None:
        self.taxonomy = taxonomy
        self._subs_by_main: dict[str, frozenset[str]] = {
            e.main_category: frozenset(e.subcategories) for e in taxonomy
        }

    def is_valid_pair(self, main: str, sub: str) -> bool:
        if not main:
            return False
        subs = self._subs_by_main.get(main)
        return subs is not None and sub in subs


@dataclass(frozen=True, slots=True)
class CacheStats:
    is_valid: bool
    category_count: int
    loaded_at: float | None
    expires_at: float | None


class TaxonomyCache:
    """Periodically refreshed snapshot of the category taxonomy.

    ``load_index()`` (and ``load()``) are the only methods that touch the
    source. The current :class:`PairIndex` is swapped as one reference, so
    readers never see a half-updated snapshot. ``is_valid_pair`` returns
    ``False`` before the first load or after :meth:`invalidate`.
    """

    def __init__(
        self,
        source: TaxonomySource,
        *,
        ttl_seconds: float = DEFAULT_TAXONOMY_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._source = source
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._current: PairIndex | None = None
        self._loaded_at: float | None = None
        self._expires_at: float = 0.0

    @classmethod
    def from_entries(
        cls,
        entries: Iterable[TaxonomyEntry | Mapping[str, Any]],
        *,
        ttl_seconds: float = DEFAULT_TAXONOMY_TTL_SECONDS,
    ) -> TaxonomyCache:
        """Wrap a fixed taxonomy; reloads always yield the same snapshot."""

        frozen = build_taxonomy(entries)
        return cls(lambda: frozen, ttl_seconds=ttl_seconds)

    def _is_fresh(self) -> bool:
        return self._current is not None and self._clock() < self._expires_at

    def load_index(self) -> PairIndex:
        """Return the current :class:`PairIndex`, reloading when stale.

        Errors raised by the source propagate; the previous snapshot (if any)
        is kept in that case.
        """

        with self._lock:
            current = self._current
            if current is not None and self._is_fresh():
                return current

            t0 = time.perf_counter()
            index = PairIndex(build_taxonomy(self._source()))
            now = self._clock()
            self._current = index
            self._loaded_at = now
            self._expires_at = now + self._ttl
            _logger.info(
                "taxonomy:loaded main_categories=%d subcategories=%d latency_ms=%.2f",
                len(index.taxonomy),
                sum(len(e.subcategories) for e in index.taxonomy),
                (time.perf_counter() - t0) * 1000.0,
            )
            return index

    def load(self) -> CategoryTaxonomy:
        """Return the current snapshot, reloading from the source when stale."""

        return self.load_index().taxonomy

    def is_valid_pair(self, main: str, sub: str) -> bool:
        current = self._current
        return current is not None and current.is_valid_pair(main, sub)

    def invalidate(self) -> None:
        """Drop the snapshot so the next load hits the source.

        Indexes already handed out by :meth:`load_index` stay usable.
        """

        with self._lock:
            self._current = None
            self._loaded_at = None
            self._expires_at = 0.0
        _logger.info("taxonomy:invalidated")

    def fallback_result(self) -> CategorizationResult:
        return fallback_result()

    def stats(self) -> CacheStats:
        with self._lock:
            current = self._current
            return CacheStats(
                is_valid=self._is_fresh(),
                category_count=len(current.taxonomy) if current is not None else 0,
                loaded_at=self._loaded_at,
                expires_at=self._expires_at if self._loaded_at is not None else None,
            )


__all__ = [
    "CacheStats",
    "PairIndex",
    "TaxonomyCache",
    "TaxonomySource",
    "build_taxonomy",
    "load_taxonomy_json",
]
