"""Data models for ``budget_categorizer``.

Raw transactions arrive in the bank provider's nested JSON shape and are
validated with Pydantic so that structurally broken records fail loudly at the
boundary. Everything derived from them inside the pipeline (anonymized views,
taxonomy entries, results) is a small frozen dataclass.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

FALLBACK_MAIN_CATEGORY: str = "To Classify"
FALLBACK_SUB_CATEGORY: str = "Needs Review"

_SIGNED_INT_RE = re.compile(r"[+-]?\d+")

# ---------------------------------------------------------------------------
# Raw input (provider shape)
# ---------------------------------------------------------------------------


class _ProviderModel(BaseModel):
    # Provider payloads use camelCase; accept snake_case too for callers
    # building records by hand.
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class MoneyValue(_ProviderModel):
    """Signed amount as an arbitrary-precision integer plus a decimal scale."""

    unscaled_value: str = Field(alias="unscaledValue")
    # Kept as text: a missing/garbled scale is tolerated here and surfaces as
    # a NaN amount during anonymization.
    scale: str | None = None

    @field_validator("unscaled_value", mode="before")
    @classmethod
    def _integer_text(cls, v: Any) -> str:
        if isinstance(v, bool) or not isinstance(v, (str, int)):
            raise ValueError("unscaledValue must be an integer string")
        s = str(v).strip()
        if not _SIGNED_INT_RE.fullmatch(s):
            raise ValueError(f"unscaledValue is not an integer: {v!r}")
        return s

    @field_validator("scale", mode="before")
    @classmethod
    def _scale_as_text(cls, v: Any) -> str | None:
        if v is None:
            return None
        return str(v)


class TransactionAmount(_ProviderModel):
    value: MoneyValue
    currency_code: str | None = Field(default=None, alias="currencyCode")


class TransactionDescriptions(_ProviderModel):
    display: str | None = None
    original: str | None = None


class MerchantInformation(_ProviderModel):
    merchant_name: str | None = Field(default=None, alias="merchantName")
    merchant_category_code: str | None = Field(default=None, alias="merchantCategoryCode")


class TransactionDates(_ProviderModel):
    booked: str | None = None
    value: str | None = None


class RawTransaction(_ProviderModel):
    """A bank transaction exactly as received from the caller.

    Only ``id`` and the ``amount`` container are required; every other field
    may be absent. Instances are immutable and never modified by the
    pipeline.
    """

    id: str = Field(min_length=1)
    account_id: str | None = Field(default=None, alias="accountId")
    amount: TransactionAmount
    descriptions: TransactionDescriptions | None = None
    merchant_information: MerchantInformation | None = Field(
        default=None, alias="merchantInformation"
    )
    status: str | None = None
    dates: TransactionDates | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> RawTransaction:
        """Validate a provider-shaped mapping; raises ``ValidationError``."""

        return cls.model_validate(data)

    @property
    def merchant_name(self) -> str | None:
        info = self.merchant_information
        return info.merchant_name if info is not None else None

    @property
    def display_description(self) -> str | None:
        return self.descriptions.display if self.descriptions is not None else None

    @property
    def original_description(self) -> str | None:
        return self.descriptions.original if self.descriptions is not None else None


# ---------------------------------------------------------------------------
# Derived records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AnonymizedTransaction:
    """Privacy-scrubbed view of a transaction, safe to send to the classifier.

    Attributes
    ----------
    merchant_hash:
        8-character hex token; identical merchant keys give identical tokens.
    description_sanitized:
        Description with e-mails, IBANs and digit runs replaced by
        placeholders.
    amount:
        Absolute decimal amount. ``Decimal("NaN")`` when the scale was missing
        or unparseable.
    transaction_type:
        ``"debit"`` for negative amounts, otherwise ``"credit"``.
    """

    merchant_hash: str
    description_sanitized: str
    amount: Decimal
    transaction_type: Literal["debit", "credit"]


@dataclass(frozen=True, slots=True)
class TaxonomyEntry:
    """One main category and the subcategories that belong to it."""

    main_category: str
    subcategories: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> TaxonomyEntry:
        if not isinstance(data, Mapping):
            raise ValueError(f"taxonomy entry must be an object: {data!r}")
        main = data.get("mainCategory", data.get("main_category"))
        if not isinstance(main, str) or not main:
            raise ValueError(f"taxonomy entry has no main category: {data!r}")
        subs = data.get("subcategories") or ()
        if not isinstance(subs, (list, tuple)) or not all(isinstance(s, str) for s in subs):
            raise ValueError(f"subcategories of {main!r} must be a list of strings")
        return cls(main_category=main, subcategories=tuple(subs))


# Ordered snapshot of allowed (main, subcategories) pairs.
type CategoryTaxonomy = tuple[TaxonomyEntry, ...]


@dataclass(frozen=True, slots=True)
class CategorizationResult:
    """Category decision for one transaction.

    ``user_modified`` is always ``False`` when produced by this package; only a
    human edit outside the pipeline flips it.
    """

    main_category: str
    sub_category: str
    user_modified: bool = False

    @property
    def is_fallback(self) -> bool:
        return (
            self.main_category == FALLBACK_MAIN_CATEGORY
            and self.sub_category == FALLBACK_SUB_CATEGORY
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "mainCategory": self.main_category,
            "subCategory": self.sub_category,
            "userModified": self.user_modified,
        }


def fallback_result() -> CategorizationResult:
    """Return the ``("To Classify", "Needs Review")`` sentinel result."""

    return CategorizationResult(
        main_category=FALLBACK_MAIN_CATEGORY,
        sub_category=FALLBACK_SUB_CATEGORY,
        user_modified=False,
    )


__all__ = [
    "FALLBACK_MAIN_CATEGORY",
    "FALLBACK_SUB_CATEGORY",
    "AnonymizedTransaction",
    "CategorizationResult",
    "CategoryTaxonomy",
    "MerchantInformation",
    "MoneyValue",
    "RawTransaction",
    "TaxonomyEntry",
    "TransactionAmount",
    "TransactionDates",
    "TransactionDescriptions",
    "fallback_result",
]
