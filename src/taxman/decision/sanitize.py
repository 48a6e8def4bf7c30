"""
Input sanitization for the decision engine.

Privacy constraint (non-negotiable): memo text is redacted before it reaches
any LLM provider or any store. Redaction is pattern based and lossy.
"""

import re
from dataclasses import replace
from datetime import date
from typing import Any, Callable, Optional

from ..schemas import CanonicalTransaction
from ..schemas.dates import normalize_date, parse_date

MAX_MEMO_LENGTH = 200

# Order matters: specific shapes first, generic digit runs last.
# re.ASCII keeps \b meaningful next to Japanese text.
_REDACTIONS: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"\b[\w.+-]+@[\w.-]+\.[A-Za-z]{2,}\b", re.ASCII), "[REDACTED_EMAIL]"),
    (re.compile(r"\b(?:\d{4}[ -]){3}\d{4}\b", re.ASCII), "[REDACTED_NUMBER]"),
    (re.compile(r"\b\d{2,4}-\d{2,4}-\d{3,4}\b", re.ASCII), "[REDACTED_PHONE]"),
    (re.compile(r"\d{2,4}[-/.]\d{1,2}[-/.]\d{1,2}", re.ASCII), "[REDACTED_DATE_IN_TEXT]"),
    (re.compile(r"\b\d{12,19}\b", re.ASCII), "[REDACTED_NUMBER]"),
    (re.compile(r"\d{7,}", re.ASCII), "[REDACTED_DIGITS]"),
)

__all__ = [
    "MAX_MEMO_LENGTH",
    "normalize_date",
    "parse_date",
    "redact_sensitive_text",
    "sanitize_amount",
    "sanitize_transaction",
]


def redact_sensitive_text(text: Optional[str]) -> str:
    """Scrub emails, phone numbers, card/account numbers and dates; cap length."""
    result = str(text or "")
    for pattern, replacement in _REDACTIONS:
        result = pattern.sub(replacement, result)
    return result.strip()[:MAX_MEMO_LENGTH]


def sanitize_amount(value: Any) -> int:
    """Floor to an integer and clamp to at least 1."""
    try:
        amount = int(float(value))
    except (TypeError, ValueError, OverflowError):
        amount = 0
    return max(1, amount)


def sanitize_transaction(
    transaction: CanonicalTransaction,
    today: Callable[[], date] = date.today,
) -> CanonicalTransaction:
    """Return a sanitized copy; the input transaction is left untouched."""
    return replace(
        transaction,
        occurred_at=normalize_date(transaction.occurred_at, today),
        amount=sanitize_amount(transaction.amount),
        memo_redacted=redact_sensitive_text(transaction.memo_redacted),
        country_code=str(transaction.country_code or "").strip().upper(),
    )
