from __future__ import annotations

import logging

import pytest

from budget_categorizer import logging_setup
from budget_categorizer.models import TaxonomyEntry
from budget_categorizer.taxonomy import TaxonomyCache

_AI_ENV_VARS = (
    "AI_API_KEY",
    "AI_API_URL",
    "AI_MODEL",
    "AI_BATCH_SIZE",
    "AI_API_TIMEOUT",
    "AI_MAX_TOKENS",
    "AI_TEMPERATURE",
    "AI_TAXONOMY_TTL",
    "BUDGET_CATEGORIZER_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's shell (or a .env) from leaking into tests."""

    for var in _AI_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def _restore_package_logging(monkeypatch: pytest.MonkeyPatch):
    """Undo ``configure_logging`` so ``caplog`` keeps seeing package records."""

    pkg = logging.getLogger("budget_categorizer")
    saved = (list(pkg.handlers), pkg.level, pkg.propagate)
    monkeypatch.setattr(logging_setup, "_CONFIGURED", False)
    yield
    handlers, level, propagate = saved
    pkg.handlers[:] = handlers
    pkg.setLevel(level)
    pkg.propagate = propagate


TAXONOMY_ENTRIES = [
    TaxonomyEntry("Food & Dining", ("Restaurants", "Groceries", "Coffee Shops")),
    TaxonomyEntry("Entertainment", ("Movies", "Music", "Games")),
    TaxonomyEntry("Bills & Utilities", ("Internet", "Phone", "Electricity")),
    TaxonomyEntry("Shopping", ("Clothing", "Electronics")),
]


@pytest.fixture
def taxonomy_entries() -> list[TaxonomyEntry]:
    return list(TAXONOMY_ENTRIES)


@pytest.fixture
def taxonomy(taxonomy_entries: list[TaxonomyEntry]) -> TaxonomyCache:
    cache = TaxonomyCache.from_entries(taxonomy_entries)
    cache.load()
    return cache
