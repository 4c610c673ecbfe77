"""Transaction anonymization before anything leaves the process.

An :class:`Anonymizer` turns a :class:`~budget_categorizer.models.RawTransaction`
into an :class:`~budget_categorizer.models.AnonymizedTransaction`:

- the merchant identity becomes an 8-character SHA-256 prefix,
- e-mail addresses, IBAN-shaped tokens and digit runs in the description are
  replaced by ``[EMAIL]``, ``[IBAN]`` and ``[NUMBER]`` (in that order; the
  digit pass would otherwise shred IBANs into several ``[NUMBER]`` tokens),
- the amount is scaled exactly with :class:`~decimal.Decimal`.
"""

from __future__ import annotations

import hashlib
import re
from decimal import Decimal

from .models import AnonymizedTransaction, MoneyValue, RawTransaction

EMAIL_PLACEHOLDER = "[EMAIL]"
IBAN_PLACEHOLDER = "[IBAN]"
NUMBER_PLACEHOLDER = "[NUMBER]"

UNKNOWN_MERCHANT_KEY = "unknown"
MERCHANT_HASH_LENGTH = 8

_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
# Country code, two check digits, 11-30 alphanumerics, as one token.
_IBAN_RE = re.compile(r"\b[A-Za-z]{2}[0-9]{2}[A-Za-z0-9]{11,30}\b")
_DIGIT_RUN_RE = re.compile(r"[0-9]+")


def merchant_hash(key: str) -> str:
    """Return the 8-char hex digest of a trimmed, lower-cased merchant key."""

    normalized = key.strip().lower()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:MERCHANT_HASH_LENGTH]


def sanitize_description(text: str | None) -> str:
    """Scrub personal identifiers from a free-text description.

    Each separate digit run becomes its own ``[NUMBER]``:
    ``"1234 5678 9012 3456"`` yields four placeholders.
    """

    if not text:
        return ""
    out = _EMAIL_RE.sub(EMAIL_PLACEHOLDER, text)
    out = _IBAN_RE.sub(IBAN_PLACEHOLDER, out)
    out = _DIGIT_RUN_RE.sub(NUMBER_PLACEHOLDER, out)
    return out.strip()


def _parse_scale(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def scaled_amount(value: MoneyValue) -> Decimal:
    """Absolute ``unscaled / 10**scale``; ``NaN`` when scale is unusable.

    Built from a string so arbitrarily long unscaled values are not rounded
    to the decimal context precision.
    """

    scale = _parse_scale(value.scale)
    if scale is None:
        return Decimal("NaN")
    return Decimal(f"{value.unscaled_value}E{-scale}").copy_abs()


class Anonymizer:
    """Stateless converter from raw to anonymized transactions."""

    def merchant_key(self, tx: RawTransaction) -> str:
        """Pick the identity string that gets hashed.

        Merchant name, then display description, then original description,
        then the literal ``"unknown"``. Blank values are skipped.
        """

        for candidate in (tx.merchant_name, tx.display_description, tx.original_description):
            if candidate and candidate.strip():
                return candidate
        return UNKNOWN_MERCHANT_KEY

    def anonymize(self, tx: RawTransaction) -> AnonymizedTransaction:
        description = tx.display_description or tx.original_description or ""
        unscaled = Decimal(tx.amount.value.unscaled_value)
        return AnonymizedTransaction(
            merchant_hash=merchant_hash(self.merchant_key(tx)),
            description_sanitized=sanitize_description(description),
            amount=scaled_amount(tx.amount.value),
            transaction_type="debit" if unscaled < 0 else "credit",
        )

    def anonymize_many(self, txs: list[RawTransaction]) -> list[AnonymizedTransaction]:
        return [self.anonymize(tx) for tx in txs]


__all__ = [
    "EMAIL_PLACEHOLDER",
    "IBAN_PLACEHOLDER",
    "NUMBER_PLACEHOLDER",
    "Anonymizer",
    "merchant_hash",
    "sanitize_description",
    "scaled_amount",
]
