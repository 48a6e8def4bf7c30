"""Prompt templates for LLM escalation.

Prompts are versioned so a change in wording can be traced in decisions.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from taxman.jurisdiction import JurisdictionProfile
    from taxman.schemas import CanonicalTransaction, ClassificationDecision

# v1.0: expense judgement with rule verdict as context
PROMPT_VERSION = "v1.0"


@dataclass
class EscalationPrompt:
    """Prompt template for a second-opinion expense judgement.

    Attributes:
        version: Prompt version.
        system_prompt: System message setting LLM behavior.
        user_template: Template for user message with placeholders.
    """

    version: str = PROMPT_VERSION

    system_prompt: str = """You are a conservative bookkeeping assistant for small businesses.
Decide whether a transaction is a deductible business expense.

Rules:
1. If the evidence is weak, keep confidence low
2. Suspected private spending is not an expense
3. High amounts lean towards lower confidence
4. Never invent facts that are not in the input

Respond with JSON only:
{
    "is_expense": true,
    "allocation_rate": 1,
    "category": "消耗品費",
    "amount": 1200,
    "date": "2026-02-14",
    "reason": "業務利用",
    "confidence": 0.82
}"""

    user_template: str = """以下の収支情報を分析し、必要経費か判断してください。
Jurisdiction: {country_code}
Rule hint: {prompt_hint}

Input JSON:
{payload}

JSONのみ出力してください。"""

    def format_user_message(
        self,
        transaction: CanonicalTransaction,
        rule_decision: ClassificationDecision,
        profile: JurisdictionProfile,
    ) -> str:
        """Format the user message with the (already redacted) transaction.

        Args:
            transaction: Sanitized transaction.
            rule_decision: Rule verdict, given to the model as context.
            profile: Jurisdiction the transaction is judged under.

        Returns:
            Formatted user message.
        """
        payload = {
            "amount": transaction.amount,
            "currency": transaction.currency,
            "date": transaction.occurred_at,
            "memo": transaction.memo_redacted,
            "source": transaction.source_type.value,
            "direction": transaction.direction.value,
            "has_receipt": transaction.has_receipt,
            "rule_decision": {
                "rank": rule_decision.rank.value,
                "category": rule_decision.category,
                "allocation_rate": rule_decision.allocation_rate,
                "confidence": rule_decision.confidence,
                "reason": rule_decision.reason,
            },
        }
        return self.user_template.format(
            country_code=profile.country_code,
            prompt_hint=profile.prompt_hint,
            payload=json.dumps(payload, ensure_ascii=False),
        )
