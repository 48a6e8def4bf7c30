"""
Classification/decision engine.

Sanitizes input, runs the rule classifier and escalates REVIEW verdicts to
the LLM chain behind a confidence gate.
"""

from .sanitize import (
    MAX_MEMO_LENGTH,
    normalize_date,
    parse_date,
    redact_sensitive_text,
    sanitize_amount,
    sanitize_transaction,
)
from .engine import DecisionEngine, evaluate_transaction

__all__ = [
    "DecisionEngine",
    "MAX_MEMO_LENGTH",
    "evaluate_transaction",
    "normalize_date",
    "parse_date",
    "redact_sensitive_text",
    "sanitize_amount",
    "sanitize_transaction",
]
