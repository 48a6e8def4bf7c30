"""LLM escalation chain.

Asks a second opinion for REVIEW-ranked transactions. Providers are tried in
order, one at a time; the first usable judgement wins. Every failure (transport,
HTTP status, unparseable output) is logged and swallowed, so escalate() never
raises and returns None when nobody answered.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

import httpx

from taxman.escalation.prompts import EscalationPrompt
from taxman.escalation.providers import LLMProvider, LLMProviderError, build_providers
from taxman.schemas.dates import parse_date

if TYPE_CHECKING:
    from taxman.config import LLMConfig

logger = logging.getLogger(__name__)

MAX_CATEGORY_LENGTH = 80
MAX_REASON_LENGTH = 240

_TRUE_WORDS = ("true", "yes", "y", "1", "expense", "ok")
_FALSE_WORDS = ("false", "no", "n", "0", "not_expense", "ng")


@dataclass
class Judgement:
    """Sanitized LLM verdict. Any field the model left out stays None."""

    is_expense: bool | None
    allocation_rate: float | None
    category: str | None
    amount: int | None
    date: str | None
    reason: str | None
    confidence: float | None
    provider: str
    model: str

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


def parse_json_response(content: str) -> dict:
    """Parse JSON from LLM response with robust handling of malformed responses.

    Handles:
    - Markdown code blocks (```json ... ```)
    - Leading/trailing whitespace
    - JSON embedded in surrounding prose
    - Trailing commas and stray control characters

    Args:
        content: Raw LLM response content.

    Returns:
        Parsed JSON object.

    Raises:
        json.JSONDecodeError: If content cannot be parsed as a JSON object.
    """
    if not content:
        raise json.JSONDecodeError("Empty response", "", 0)

    content = content.strip()

    # Remove markdown code blocks
    if content.startswith("```json"):
        content = content[7:]
    elif content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    content = content.strip()

    candidates = [content]

    # Outermost { ... } block, allowing one level of nesting
    json_match = re.search(r"\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\}", content, re.DOTALL)
    if json_match:
        candidates.append(json_match.group())

    # Remove control characters except newlines and tabs, then trailing commas
    for candidate in list(candidates):
        cleaned = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", candidate)
        cleaned = re.sub(r",\s*([}\]])", r"\1", cleaned)
        candidates.append(cleaned)

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data

    raise json.JSONDecodeError("No JSON object found", content, 0)


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    return None


def _coerce_unit_float(value: Any) -> float | None:
    """Float clamped to [0, 1]; None for missing or non-numeric input."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return min(1.0, max(0.0, number))


def _coerce_amount(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.replace(",", "").strip()
    try:
        amount = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None
    return amount if amount > 0 else None


def _coerce_text(value: Any, limit: int) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text[:limit] if text else None


def sanitize_judgement(data: dict, provider: str, model: str) -> Judgement | None:
    """Turn a parsed LLM object into a Judgement.

    Returns None when neither is_expense nor confidence could be read, as
    such a response carries no verdict at all.
    """
    is_expense = _coerce_bool(data.get("is_expense"))
    confidence = _coerce_unit_float(data.get("confidence"))
    if is_expense is None and confidence is None:
        return None

    return Judgement(
        is_expense=is_expense,
        allocation_rate=_coerce_unit_float(data.get("allocation_rate")),
        category=_coerce_text(data.get("category"), MAX_CATEGORY_LENGTH),
        amount=_coerce_amount(data.get("amount")),
        date=parse_date(data.get("date")),
        reason=_coerce_text(data.get("reason"), MAX_REASON_LENGTH),
        confidence=confidence,
        provider=provider,
        model=model,
    )


class EscalationChain:
    """Ordered list of LLM providers, tried one at a time."""

    def __init__(
        self,
        providers: list[LLMProvider] | None = None,
        prompt: EscalationPrompt | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the chain.

        Args:
            providers: Providers in escalation order.
            prompt: Prompt template; its system prompt is sent to each provider.
            client: HTTP client owned by this chain (closed by aclose()).
        """
        self.providers = list(providers or [])
        self.prompt = prompt or EscalationPrompt()
        self._client = client

    @classmethod
    def from_config(
        cls,
        llm_config: LLMConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> EscalationChain:
        """Build the chain from LLM settings.

        When no client is given, the chain creates and owns one.
        """
        owned = None
        if http_client is None:
            owned = http_client = httpx.AsyncClient()
        return cls(build_providers(llm_config, http_client), client=owned)

    @property
    def is_enabled(self) -> bool:
        return bool(self.providers)

    async def escalate(self, prompt: str) -> Judgement | None:
        """Ask each provider in turn for a judgement on the formatted prompt.

        Args:
            prompt: User message (already redacted).

        Returns:
            First usable Judgement, or None if every provider failed.
        """
        for provider in self.providers:
            try:
                completion = await provider.complete(self.prompt.system_prompt, prompt)
                data = parse_json_response(completion.content)
                judgement = sanitize_judgement(data, completion.provider, completion.model)
            except httpx.TimeoutException:
                logger.warning("%s request timed out, trying next provider", provider.name)
                continue
            except httpx.HTTPStatusError as e:
                logger.warning(
                    "%s API error %s for model '%s', trying next provider",
                    provider.name,
                    e.response.status_code,
                    provider.model,
                )
                continue
            except httpx.HTTPError as e:
                logger.warning("%s request failed: %s", provider.name, e)
                continue
            except (json.JSONDecodeError, LLMProviderError, ValueError, KeyError) as e:
                logger.warning("Failed to parse %s response: %s", provider.name, e)
                continue
            except Exception as e:
                logger.exception("Unexpected error calling %s: %s", provider.name, e)
                continue

            if judgement is None:
                logger.info("%s gave no usable judgement, trying next provider", provider.name)
                continue

            logger.debug(
                "%s judged is_expense=%s confidence=%s",
                provider.name,
                judgement.is_expense,
                judgement.confidence,
            )
            return judgement

        return None

    async def aclose(self) -> None:
        """Close the HTTP client if this chain created it."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
