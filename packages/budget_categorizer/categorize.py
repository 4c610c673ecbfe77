"""Batch orchestration for transaction categorization.

Public API:
    - :class:`BatchCategorizer`
    - :class:`CategorizationRun`, :class:`ChunkFailure`, :class:`RunStats`

A run splits the input into consecutive chunks of at most ``batch_size``
transactions and processes them sequentially: anonymize, build prompts,
classify, parse, then place each result at its absolute input position.

A chunk whose *call* fails (timeout, HTTP error, network error) is recorded as
a :class:`ChunkFailure` and its positions stay ``None``; no categories are
invented for it. A chunk whose *response* is unusable still yields results,
because the parser resolves it to the fallback pair.
"""

from __future__ import annotations

import math
import time
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from . import prompting
from .anonymize import Anonymizer
from .client import ClassificationClient
from .config import DEFAULT_BATCH_SIZE, CategorizerSettings
from .errors import ClassificationCallError
from .logging_setup import get_logger
from .models import CategorizationResult, RawTransaction
from .parsing import ResponseParser
from .taxonomy import TaxonomyCache, TaxonomySource

_logger = get_logger("budget_categorizer.categorize")

# Rolling window for the average run duration in processing_stats().
_DURATION_WINDOW = 100


class Classifier(Protocol):
    def classify(self, system_prompt: str, user_prompt: str) -> str: ...


@dataclass(frozen=True, slots=True)
class ChunkFailure:
    """A chunk whose classification call failed; the caller may retry it."""

    chunk_index: int
    start: int
    end: int
    transaction_ids: tuple[str, ...]
    error: ClassificationCallError


@dataclass(frozen=True, slots=True)
class RunStats:
    transactions: int
    chunks_total: int
    chunks_failed: int
    categorized: int
    fallbacks: int
    duration_ms: float


@dataclass(slots=True)
class CategorizationRun:
    """Outcome of one :meth:`BatchCategorizer.categorize` call.

    ``results[i]`` belongs to ``transaction_ids[i]`` and is ``None`` only when
    position ``i`` was part of a failed chunk.
    """

    transaction_ids: list[str]
    results: list[CategorizationResult | None]
    failures: list[ChunkFailure] = field(default_factory=list)
    stats: RunStats | None = None

    @property
    def ok(self) -> bool:
        return not self.failures

    def by_id(self) -> dict[str, CategorizationResult]:
        """Map transaction id to result, skipping failed positions."""

        return {
            tx_id: result
            for tx_id, result in zip(self.transaction_ids, self.results, strict=True)
            if result is not None
        }

    def __iter__(self) -> Iterator[tuple[str, CategorizationResult | None]]:
        return iter(zip(self.transaction_ids, self.results, strict=True))


def _paginate(n_total: int, page_size: int) -> Iterable[tuple[int, int, int]]:
    """Yield ``(chunk_index, base, end)`` half-open ranges over ``n_total``."""

    pages_total = math.ceil(n_total / page_size)
    for k in range(pages_total):
        base = k * page_size
        end = min(base + page_size, n_total)
        yield (k, base, end)


def _materialize(
    transactions: Iterable[RawTransaction | Mapping[str, Any]],
) -> list[RawTransaction]:
    # Validate everything before the first network call (fail fast).
    return [
        tx if isinstance(tx, RawTransaction) else RawTransaction.from_mapping(tx)
        for tx in transactions
    ]


class BatchCategorizer:
    """Drive anonymize -> prompt -> classify -> parse over size-bounded chunks.

    Instances hold no per-run state besides cumulative statistics, so separate
    instances can run in parallel; they only share the read-only taxonomy.
    """

    def __init__(
        self,
        classifier: Classifier,
        taxonomy: TaxonomyCache,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        anonymizer: Anonymizer | None = None,
    ) -> None:
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size <= 0:
            raise ValueError("batch_size must be a positive integer")
        self._classifier = classifier
        self._taxonomy = taxonomy
        self._batch_size = batch_size
        self._anonymizer = anonymizer or Anonymizer()
        self._totals = {"transactions": 0, "categorized": 0, "failed": 0, "runs": 0}
        self._durations_ms: list[float] = []
        self._last_run_at: datetime | None = None

    @classmethod
    def from_settings(
        cls,
        settings: CategorizerSettings,
        taxonomy_source: TaxonomySource,
        *,
        client: Any | None = None,
    ) -> BatchCategorizer:
        """Wire client, taxonomy cache and orchestrator from one settings object.

        ``client`` is forwarded to :class:`ClassificationClient` (an SDK-shaped
        object; ``None`` builds the real OpenAI client).
        """

        return cls(
            ClassificationClient(settings, client=client),
            TaxonomyCache(taxonomy_source, ttl_seconds=settings.taxonomy_ttl_seconds),
            batch_size=settings.batch_size,
        )

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def taxonomy(self) -> TaxonomyCache:
        return self._taxonomy

    def categorize(
        self, transactions: Iterable[RawTransaction | Mapping[str, Any]]
    ) -> CategorizationRun:
        """Categorize ``transactions`` and return results in input order.

        Raises ``pydantic.ValidationError`` before any call when an input
        record lacks its id or amount container. Call failures never raise;
        they are reported in :attr:`CategorizationRun.failures`.
        """

        t0 = time.perf_counter()
        txs = _materialize(transactions)
        n_total = len(txs)
        tx_ids = [tx.id for tx in txs]
        results: list[CategorizationResult | None] = [None] * n_total
        failures: list[ChunkFailure] = []

        if n_total == 0:
            run = CategorizationRun(tx_ids, results, failures)
            run.stats = self._finish(run, chunks_total=0, t0=t0)
            return run

        # Prompt and validation both use this one snapshot for the whole run.
        index = self._taxonomy.load_index()
        system_prompt = prompting.build_system_prompt(index.taxonomy)
        parser = ResponseParser(index)
        chunks = list(_paginate(n_total, self._batch_size))
        _logger.info(
            "categorize:start transactions=%d chunks=%d batch_size=%d",
            n_total,
            len(chunks),
            self._batch_size,
        )

        for chunk_index, base, end in chunks:
            chunk = txs[base:end]
            anonymized = self._anonymizer.anonymize_many(chunk)
            user_prompt = prompting.build_user_prompt(anonymized)
            c0 = time.perf_counter()
            try:
                raw_text = self._classifier.classify(system_prompt, user_prompt)
            except ClassificationCallError as e:
                _logger.error(
                    "categorize:chunk_failed chunk_index=%d size=%d latency_ms=%.2f error=%s",
                    chunk_index,
                    len(chunk),
                    (time.perf_counter() - c0) * 1000.0,
                    e,
                )
                failures.append(
                    ChunkFailure(
                        chunk_index=chunk_index,
                        start=base,
                        end=end,
                        transaction_ids=tuple(tx_ids[base:end]),
                        error=e,
                    )
                )
                continue

            parsed = parser.parse(raw_text, len(chunk))
            # Chunk-relative positions map back via base + offset.
            for offset, result in enumerate(parsed):
                results[base + offset] = result
            _logger.info(
                "categorize:chunk_done chunk_index=%d size=%d fallbacks=%d latency_ms=%.2f",
                chunk_index,
                len(chunk),
                sum(1 for r in parsed if r.is_fallback),
                (time.perf_counter() - c0) * 1000.0,
            )

        run = CategorizationRun(tx_ids, results, failures)
        run.stats = self._finish(run, chunks_total=len(chunks), t0=t0)
        return run

    def _finish(self, run: CategorizationRun, *, chunks_total: int, t0: float) -> RunStats:
        done = [r for r in run.results if r is not None]
        stats = RunStats(
            transactions=len(run.results),
            chunks_total=chunks_total,
            chunks_failed=len(run.failures),
            categorized=len(done),
            fallbacks=sum(1 for r in done if r.is_fallback),
            duration_ms=(time.perf_counter() - t0) * 1000.0,
        )
        self._totals["transactions"] += stats.transactions
        self._totals["categorized"] += stats.categorized
        self._totals["failed"] += stats.transactions - stats.categorized
        self._totals["runs"] += 1
        self._durations_ms.append(stats.duration_ms)
        del self._durations_ms[:-_DURATION_WINDOW]
        self._last_run_at = datetime.now(UTC)
        if chunks_total:
            _logger.info(
                "categorize:summary transactions=%d chunks=%d failed_chunks=%d "
                "fallbacks=%d duration_ms=%.2f",
                stats.transactions,
                stats.chunks_total,
                stats.chunks_failed,
                stats.fallbacks,
                stats.duration_ms,
            )
        return stats

    def processing_stats(self) -> dict[str, Any]:
        """Cumulative counters across runs of this instance."""

        durations = self._durations_ms
        return {
            "runs": self._totals["runs"],
            "total_transactions": self._totals["transactions"],
            "categorized": self._totals["categorized"],
            "uncategorized": self._totals["failed"],
            "average_duration_ms": sum(durations) / len(durations) if durations else 0.0,
            "last_run_at": self._last_run_at,
        }


__all__ = [
    "BatchCategorizer",
    "CategorizationRun",
    "ChunkFailure",
    "Classifier",
    "RunStats",
]
