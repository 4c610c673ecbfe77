"""Prompt construction for the categorization task.

This module builds:
- The system prompt, which lists the allowed taxonomy and the rules the
  classifier must follow (closed category set, fallback pair when unsure).
- The user prompt, a numbered list of anonymized transactions with the exact
  number of results expected back.

Both builders are pure functions of their inputs so prompts are stable for
identical batches.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from .models import (
    FALLBACK_MAIN_CATEGORY,
    FALLBACK_SUB_CATEGORY,
    AnonymizedTransaction,
    TaxonomyEntry,
)

_NO_CATEGORIES_LINE = "(no categories configured)"


def format_taxonomy(taxonomy: Sequence[TaxonomyEntry]) -> str:
    """Render one ``"<main>: <sub1>, <sub2>, ..."`` line per main category."""

    lines = [f"{entry.main_category}: {', '.join(entry.subcategories)}" for entry in taxonomy]
    return "\n".join(lines) if lines else _NO_CATEGORIES_LINE


def build_system_prompt(taxonomy: Sequence[TaxonomyEntry]) -> str:
    """Return the system prompt for a taxonomy snapshot.

    Renders a well-formed prompt for an empty taxonomy too; the rules then
    steer every transaction to the fallback pair.
    """

    fallback = (
        f'"{FALLBACK_MAIN_CATEGORY}" as mainCategory and '
        f'"{FALLBACK_SUB_CATEGORY}" as subCategory'
    )
    return (
        "You are a financial transaction categorization expert. Your task is to categorize "
        "anonymized banking transactions into the provided category structure.\n"
        "\n"
        "CRITICAL RULES - STRICTLY ENFORCE:\n"
        "1. All data is anonymized - merchant names are hashed, personal info is removed\n"
        "2. You must ONLY choose categories from the list below - DO NOT invent new categories\n"
        "3. Each mainCategory must match exactly one of the main categories shown below\n"
        "4. Each subCategory must match exactly one of the subcategories under that main category\n"
        f"5. If you are uncertain about a transaction, use {fallback}\n"
        "6. NEVER create new category names or modify existing ones\n"
        "7. Return results as a JSON array of objects with mainCategory and subCategory fields\n"
        "8. Be consistent with similar transactions\n"
        "\n"
        "Available Categories (mainCategory: subcategory1, subcategory2, ...):\n"
        f"{format_taxonomy(taxonomy)}\n"
        "\n"
        "Return format: "
        '[{"mainCategory": "Category Name", "subCategory": "Subcategory Name"}, ...]\n'
        "REMINDER: Use ONLY the exact category names from the list above. "
        "Any invented categories will be rejected."
    )


def format_amount(amount: Decimal) -> str:
    """Plain decimal notation without trailing zeros (``5.0`` -> ``5``)."""

    if amount.is_nan():
        return "NaN"
    # String stripping keeps every digit; normalize() would round to the
    # context precision.
    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def build_user_prompt(batch: Sequence[AnonymizedTransaction]) -> str:
    """Return the numbered transaction list for one chunk.

    An empty batch is valid and asks for a JSON array of length 0.
    """

    count = len(batch)
    lines = [
        (
            f"{n}. Merchant: {tx.merchant_hash}, "
            f'Description: "{tx.description_sanitized}", '
            f"Amount: {format_amount(tx.amount)} {tx.transaction_type}"
        )
        for n, tx in enumerate(batch, start=1)
    ]
    listing = "\n".join(lines)
    return (
        f"Please categorize these {count} anonymized transactions:\n"
        "\n"
        f"{listing}\n"
        "\n"
        f"Return a JSON array with exactly {count} categorization results in the same order."
    )


__all__ = [
    "build_system_prompt",
    "build_user_prompt",
    "format_amount",
    "format_taxonomy",
]
