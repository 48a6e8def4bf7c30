"""
Classification decision and posting command schemas.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Iterable, Optional

from .transaction import CanonicalTransaction

RULE_ONLY_MODEL_VERSION = "rule-only-v1"


class DecisionRank(str, Enum):
    """
    Tri-state verdict on a transaction.

    OK: auto-acceptable business expense
    REVIEW: needs a second opinion or a human
    NG: rejected as non-deductible
    """

    OK = "OK"
    REVIEW = "REVIEW"
    NG = "NG"


@dataclass
class ClassificationDecision:
    """
    The core's verdict on one transaction.

    Invariants:
    - rank NG implies is_expense is False
    - rank OK implies confidence >= the jurisdiction's review threshold
    """

    decision_id: str
    transaction_id: str
    rank: DecisionRank
    is_expense: bool
    allocation_rate: float  # 0..1 business-use fraction
    category: str
    amount: int
    date: str  # YYYY-MM-DD
    reason: str
    confidence: float  # 0..1
    country_code: str
    rule_version: str
    model_version: str = RULE_ONLY_MODEL_VERSION

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["rank"] = self.rank.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClassificationDecision":
        """Rebuild a decision, e.g. after a reviewer edited it."""
        return cls(
            decision_id=str(data["decision_id"]),
            transaction_id=str(data["transaction_id"]),
            rank=DecisionRank(str(data["rank"]).upper()),
            is_expense=bool(data["is_expense"]),
            allocation_rate=float(data["allocation_rate"]),
            category=str(data.get("category", "")),
            amount=int(data["amount"]),
            date=str(data["date"]),
            reason=str(data.get("reason", "")),
            confidence=float(data["confidence"]),
            country_code=str(data.get("country_code", "")),
            rule_version=str(data.get("rule_version", "")),
            model_version=str(data.get("model_version", RULE_ONLY_MODEL_VERSION)),
        )


@dataclass
class PostingCommand:
    """A transaction and its accepted decision, ready to become a draft."""

    transaction: CanonicalTransaction
    decision: ClassificationDecision

    @property
    def transaction_id(self) -> str:
        return self.transaction.transaction_id

    @property
    def is_postable(self) -> bool:
        """Adapters only post business expenses with a positive amount."""
        return (
            self.decision.is_expense
            and self.decision.allocation_rate > 0
            and self.transaction.amount > 0
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PostingCommand":
        return cls(
            transaction=CanonicalTransaction.from_dict(data["transaction"]),
            decision=ClassificationDecision.from_dict(data["decision"]),
        )


def select_postable_commands(
    pairs: Iterable[PostingCommand],
    min_confidence: Optional[float] = None,
) -> list[PostingCommand]:
    """
    Caller-side filter for decisions accepted for posting.

    Keeps rank OK business expenses with a positive allocation and, when
    min_confidence is given, at least that decision confidence.
    """
    selected = []
    for command in pairs:
        decision = command.decision
        if decision.rank != DecisionRank.OK:
            continue
        if not decision.is_expense or decision.allocation_rate <= 0:
            continue
        if min_confidence is not None and decision.confidence < min_confidence:
            continue
        selected.append(command)
    return selected
