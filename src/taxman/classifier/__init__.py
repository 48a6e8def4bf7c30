"""
Rule-based classification module.

Scores a transaction into OK/REVIEW/NG with a suggested category and
business-use ratio. The fast path and the fallback for every escalation.
"""

from .rules import (
    NON_TAXABLE,
    TAXABLE_PURCHASE,
    KeywordRule,
    RuleClassifier,
    RuleVerdict,
    VerdictSummary,
    summarize_verdicts,
)

__all__ = [
    "KeywordRule",
    "NON_TAXABLE",
    "RuleClassifier",
    "RuleVerdict",
    "TAXABLE_PURCHASE",
    "VerdictSummary",
    "summarize_verdicts",
]
