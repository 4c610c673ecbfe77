"""Public interface for the ``budget_categorizer`` package.

This module re-exports the components of the anonymize -> prompt -> classify
-> validate pipeline as the stable import surface. There is no runtime logic
here; each component is independently constructible from its own module.
"""

from .anonymize import Anonymizer, merchant_hash, sanitize_description
from .categorize import BatchCategorizer, CategorizationRun, ChunkFailure, RunStats
from .client import ClassificationClient
from .config import CategorizerSettings, validate_environment
from .errors import ClassificationCallError, ClassificationTimeoutError, ConfigurationError
from .models import (
    FALLBACK_MAIN_CATEGORY,
    FALLBACK_SUB_CATEGORY,
    AnonymizedTransaction,
    CategorizationResult,
    CategoryTaxonomy,
    RawTransaction,
    TaxonomyEntry,
    fallback_result,
)
from .parsing import ResponseParser, extract_json_array
from .prompting import build_system_prompt, build_user_prompt
from .taxonomy import TaxonomyCache, load_taxonomy_json

__all__ = [
    # Pipeline components
    "Anonymizer",
    "BatchCategorizer",
    "ClassificationClient",
    "ResponseParser",
    "TaxonomyCache",
    # Functions
    "build_system_prompt",
    "build_user_prompt",
    "extract_json_array",
    "fallback_result",
    "load_taxonomy_json",
    "merchant_hash",
    "sanitize_description",
    "validate_environment",
    # Models / types
    "AnonymizedTransaction",
    "CategorizationResult",
    "CategorizationRun",
    "CategorizerSettings",
    "CategoryTaxonomy",
    "ChunkFailure",
    "RawTransaction",
    "RunStats",
    "TaxonomyEntry",
    "FALLBACK_MAIN_CATEGORY",
    "FALLBACK_SUB_CATEGORY",
    # Errors
    "ClassificationCallError",
    "ClassificationTimeoutError",
    "ConfigurationError",
]
