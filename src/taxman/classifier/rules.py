"""
Rule-based expense classification.

Pure function of the transaction fields (memo/counterparty text, amount,
receipt presence). No I/O and no randomness, so it is safe to run on every
transaction before any escalation.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from ..jurisdiction import get_jurisdiction_profile
from ..schemas import CanonicalTransaction, DecisionRank

TAXABLE_PURCHASE = "課税仕入"
NON_TAXABLE = "不課税/対象外"


@dataclass(frozen=True)
class KeywordRule:
    """One keyword group and the verdict it pushes towards."""

    name: str
    keywords: tuple[str, ...]
    score_delta: float
    rank: DecisionRank
    reason: str
    category: str


@dataclass
class RuleVerdict:
    """Result of the rule pass for one transaction."""

    rank: DecisionRank
    category: str
    business_ratio: float  # 0..1
    confidence: float  # 0..1
    reason: str
    tax_category: str = TAXABLE_PURCHASE
    has_receipt: bool = False
    needs_receipt: bool = False


@dataclass
class VerdictSummary:
    """Counts over a batch of verdicts, plus the export gate."""

    total: int
    ok_count: int
    review_count: int
    ng_count: int
    missing_receipt_count: int
    max_review_allowed: int
    export_blocked: bool


class RuleClassifier:
    """
    Deterministic keyword scorer.

    Scoring (applied in order, later rules override earlier ones):
    1. Base score 0.50, rank REVIEW, category 雑費
    2. Business keyword groups raise the score and propose OK
    3. Household keywords force REVIEW with 50% business use
    4. Private keywords force NG
    5. Amounts above the jurisdiction threshold force REVIEW (fixed asset)
    6. A needed but missing receipt downgrades OK to REVIEW
    7. OK below ok_threshold is downgraded to REVIEW
    """

    BASE_SCORE = 0.50
    DEFAULT_CATEGORY = "雑費"
    # Receipts are expected from this amount upward (minor units)
    RECEIPT_REQUIRED_FROM = 5_000

    BUSINESS_RULES: tuple[KeywordRule, ...] = (
        KeywordRule(
            name="supplies",
            keywords=("amazon", "アマゾン", "資材", "消耗品", "備品", "包装", "梱包"),
            score_delta=0.30,
            rank=DecisionRank.OK,
            reason="事業用資材・消耗品の可能性が高い支出です。",
            category="消耗品費",
        ),
        KeywordRule(
            name="shipping",
            keywords=("送料", "運賃", "配送", "ゆうパック", "ヤマト", "佐川"),
            score_delta=0.30,
            rank=DecisionRank.OK,
            reason="配送関連費用として整合しています。",
            category="荷造運賃",
        ),
        KeywordRule(
            name="systems",
            keywords=("サーバー", "ドメイン", "hosting", "aws", "gcp", "vercel", "github"),
            score_delta=0.35,
            rank=DecisionRank.OK,
            reason="サービス運営に必要なシステム費用です。",
            category="通信費",
        ),
        KeywordRule(
            name="travel",
            keywords=("タクシー", "電車", "新幹線", "交通費", "taxi", "train", "uber"),
            score_delta=0.30,
            rank=DecisionRank.OK,
            reason="業務移動の交通費として整合しています。",
            category="旅費交通費",
        ),
    )

    HOUSEHOLD_KEYWORDS = ("家賃", "水道", "電気", "ガス", "携帯")
    PRIVATE_KEYWORDS = ("飲み会", "娯楽", "ゲーム", "プレゼント", "私用", "個人")

    def __init__(self, ok_threshold: float = 0.75):
        """
        Args:
            ok_threshold: Minimum confidence for an OK verdict; weaker OK
                verdicts are reported as REVIEW.
        """
        self.ok_threshold = ok_threshold

    def classify(
        self,
        transaction: CanonicalTransaction,
        deductible_threshold: Optional[int] = None,
    ) -> RuleVerdict:
        """Score one transaction."""
        if deductible_threshold is None:
            deductible_threshold = get_jurisdiction_profile(
                transaction.country_code
            ).deductible_threshold

        text = self._text_for(transaction)
        has_receipt = transaction.has_receipt

        score = self.BASE_SCORE
        rank = DecisionRank.REVIEW
        reason = "情報不足のため確認が必要です。"
        category = self.DEFAULT_CATEGORY
        business_ratio = 1.0
        tax_category = TAXABLE_PURCHASE
        needs_receipt = transaction.amount >= self.RECEIPT_REQUIRED_FROM

        for rule in self.BUSINESS_RULES:
            if _includes_any(text, rule.keywords):
                score += rule.score_delta
                rank = rule.rank
                reason = rule.reason
                category = rule.category

        if _includes_any(text, self.HOUSEHOLD_KEYWORDS):
            score -= 0.05
            rank = DecisionRank.REVIEW
            reason = "家事按分の確認が必要な支出です。"
            business_ratio = 0.5
            category = "地代家賃"
            needs_receipt = True

        if _includes_any(text, self.PRIVATE_KEYWORDS):
            score = 0.10
            rank = DecisionRank.NG
            reason = "私的支出の可能性が高く、経費計上は非推奨です。"
            business_ratio = 0.0
            category = "対象外"
            tax_category = NON_TAXABLE
            needs_receipt = False

        if transaction.amount > deductible_threshold:
            if rank != DecisionRank.NG:
                rank = DecisionRank.REVIEW
            score -= 0.20
            reason = "高額支出のため固定資産/減価償却の確認が必要です。"
            category = "工具器具備品"
            needs_receipt = True

        if needs_receipt and not has_receipt:
            if rank == DecisionRank.OK:
                rank = DecisionRank.REVIEW
            score -= 0.15
            reason = "証憑が未登録のため確認が必要です。"

        confidence = round(min(1.0, max(0.0, score)), 2)

        if rank == DecisionRank.OK and confidence < self.ok_threshold:
            rank = DecisionRank.REVIEW

        return RuleVerdict(
            rank=rank,
            category=category,
            business_ratio=business_ratio,
            confidence=confidence,
            reason=reason,
            tax_category=tax_category,
            has_receipt=has_receipt,
            needs_receipt=needs_receipt,
        )

    def _text_for(self, transaction: CanonicalTransaction) -> str:
        parts = [transaction.memo_redacted or "", transaction.counterparty or ""]
        return " ".join(part for part in parts if part).lower()


def _includes_any(target: str, keywords: Iterable[str]) -> bool:
    return any(word in target for word in keywords)


def summarize_verdicts(
    verdicts: list[RuleVerdict],
    review_threshold_ratio: float = 0.1,
) -> VerdictSummary:
    """
    Summarize a batch of verdicts.

    Export is blocked when any verdict is NG or when REVIEW verdicts exceed
    review_threshold_ratio of the batch (at least one REVIEW is tolerated).
    """
    total = len(verdicts)
    ok_count = sum(1 for v in verdicts if v.rank == DecisionRank.OK)
    review_count = sum(1 for v in verdicts if v.rank == DecisionRank.REVIEW)
    ng_count = sum(1 for v in verdicts if v.rank == DecisionRank.NG)
    missing_receipt_count = sum(1 for v in verdicts if v.needs_receipt and not v.has_receipt)

    max_review_allowed = max(1, math.ceil(round(total * review_threshold_ratio, 6)))

    return VerdictSummary(
        total=total,
        ok_count=ok_count,
        review_count=review_count,
        ng_count=ng_count,
        missing_receipt_count=missing_receipt_count,
        max_review_allowed=max_review_allowed,
        export_blocked=ng_count > 0 or review_count > max_review_allowed,
    )
