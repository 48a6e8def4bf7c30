"""
Decision engine: rule verdict first, LLM escalation for REVIEW only.

Flow per transaction:
1. Sanitize (redact memo, clamp amount, normalize date)
2. Rule classifier; OK and NG verdicts are final
3. REVIEW goes to the escalation chain
4. The judgement only replaces the rule verdict when its own confidence
   clears the jurisdiction's review threshold
"""

import logging
from datetime import date
from typing import Callable, Optional
from uuid import uuid4

import httpx

from ..classifier import RuleClassifier, RuleVerdict
from ..config import Config
from ..escalation import EscalationChain, EscalationPrompt, Judgement
from ..jurisdiction import JurisdictionProfile, get_jurisdiction_profile
from ..schemas import (
    RULE_ONLY_MODEL_VERSION,
    CanonicalTransaction,
    ClassificationDecision,
    DecisionRank,
)
from .sanitize import sanitize_transaction

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 240


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


class DecisionEngine:
    """
    Turns canonical transactions into classification decisions.

    The clock and the id factory are injectable so decisions are
    reproducible in tests.
    """

    def __init__(
        self,
        chain: Optional[EscalationChain] = None,
        classifier: Optional[RuleClassifier] = None,
        prompt: Optional[EscalationPrompt] = None,
        today: Callable[[], date] = date.today,
        id_factory: Callable[[], object] = uuid4,
    ):
        self.chain = chain
        self.classifier = classifier or RuleClassifier()
        self.prompt = prompt or EscalationPrompt()
        self.today = today
        self.id_factory = id_factory

    @classmethod
    def from_config(
        cls,
        config: Config,
        http_client: Optional[httpx.AsyncClient] = None,
        **kwargs,
    ) -> "DecisionEngine":
        """Build an engine whose escalation chain follows config.llm."""
        chain = EscalationChain.from_config(config.llm, http_client)
        return cls(chain=chain, **kwargs)

    async def evaluate_transaction(
        self, transaction: CanonicalTransaction
    ) -> ClassificationDecision:
        """Classify one transaction. Never raises for LLM problems."""
        sanitized = sanitize_transaction(transaction, self.today)
        profile = get_jurisdiction_profile(sanitized.country_code)

        verdict = self.classifier.classify(sanitized, profile.deductible_threshold)
        rule_decision = self._rule_decision(sanitized, verdict, profile)

        if rule_decision.rank != DecisionRank.REVIEW:
            logger.debug(
                "Transaction %s decided by rules: %s",
                sanitized.transaction_id,
                rule_decision.rank.value,
            )
            return rule_decision

        if self.chain is None or not self.chain.is_enabled:
            return rule_decision

        user_message = self.prompt.format_user_message(sanitized, rule_decision, profile)
        judgement = await self.chain.escalate(user_message)
        return self._merge(rule_decision, judgement, profile)

    def _rule_decision(
        self,
        transaction: CanonicalTransaction,
        verdict: RuleVerdict,
        profile: JurisdictionProfile,
    ) -> ClassificationDecision:
        rank = verdict.rank
        # OK must clear the jurisdiction threshold, whatever the classifier's own
        if rank == DecisionRank.OK and verdict.confidence < profile.review_confidence_threshold:
            rank = DecisionRank.REVIEW

        is_expense = rank != DecisionRank.NG
        allocation_rate = (
            _clamp(verdict.business_ratio, 0.0, profile.max_allocation_rate)
            if is_expense
            else 0.0
        )

        return ClassificationDecision(
            decision_id=str(self.id_factory()),
            transaction_id=transaction.transaction_id,
            rank=rank,
            is_expense=is_expense,
            allocation_rate=allocation_rate,
            category=verdict.category,
            amount=transaction.amount,
            date=transaction.occurred_at,
            reason=verdict.reason[:MAX_REASON_LENGTH],
            confidence=verdict.confidence,
            country_code=transaction.country_code or profile.country_code,
            rule_version=profile.rule_version,
            model_version=RULE_ONLY_MODEL_VERSION,
        )

    def _merge(
        self,
        rule_decision: ClassificationDecision,
        judgement: Optional[Judgement],
        profile: JurisdictionProfile,
    ) -> ClassificationDecision:
        """Apply the confidence gate. Below the threshold the rule decision stands."""
        if judgement is None:
            logger.info(
                "No LLM judgement for %s, keeping rule decision",
                rule_decision.transaction_id,
            )
            return rule_decision

        if (
            judgement.confidence is None
            or judgement.confidence < profile.review_confidence_threshold
        ):
            logger.info(
                "LLM judgement for %s below threshold (%s < %.2f), keeping rule decision",
                rule_decision.transaction_id,
                judgement.confidence,
                profile.review_confidence_threshold,
            )
            return rule_decision

        is_expense = (
            judgement.is_expense
            if judgement.is_expense is not None
            else rule_decision.is_expense
        )
        if is_expense:
            rank = DecisionRank.OK
            allocation_rate = _clamp(
                judgement.allocation_rate
                if judgement.allocation_rate is not None
                else rule_decision.allocation_rate,
                0.0,
                profile.max_allocation_rate,
            )
        else:
            rank = DecisionRank.NG
            allocation_rate = 0.0

        amount = judgement.amount or rule_decision.amount
        if amount != rule_decision.amount:
            logger.warning(
                "LLM corrected amount for %s: %d -> %d (posting still uses the "
                "transaction amount)",
                rule_decision.transaction_id,
                rule_decision.amount,
                amount,
            )

        return ClassificationDecision(
            decision_id=rule_decision.decision_id,
            transaction_id=rule_decision.transaction_id,
            rank=rank,
            is_expense=is_expense,
            allocation_rate=allocation_rate,
            category=judgement.category or rule_decision.category,
            amount=amount,
            date=judgement.date or rule_decision.date,
            reason=(judgement.reason or rule_decision.reason)[:MAX_REASON_LENGTH],
            confidence=judgement.confidence,
            country_code=rule_decision.country_code,
            rule_version=rule_decision.rule_version,
            model_version=judgement.model,
        )

    async def aclose(self) -> None:
        if self.chain is not None:
            await self.chain.aclose()


async def evaluate_transaction(
    transaction: CanonicalTransaction,
    engine: Optional[DecisionEngine] = None,
) -> ClassificationDecision:
    """
    Single entry point for classification.

    Without an engine, a rule-only engine is used (no network access).
    """
    if engine is None:
        engine = DecisionEngine()
    return await engine.evaluate_transaction(transaction)
