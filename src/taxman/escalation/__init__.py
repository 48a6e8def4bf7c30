"""
LLM escalation for REVIEW-ranked transactions.

Local Ollama first, hosted providers (Groq, Gemini) only when explicitly
enabled. The chain degrades to "no opinion" instead of raising.
"""

from .chain import EscalationChain, Judgement, parse_json_response, sanitize_judgement
from .prompts import PROMPT_VERSION, EscalationPrompt
from .providers import (
    Completion,
    GeminiProvider,
    GroqProvider,
    LLMProvider,
    LLMProviderError,
    OllamaProvider,
    build_providers,
)

__all__ = [
    "Completion",
    "EscalationChain",
    "EscalationPrompt",
    "GeminiProvider",
    "GroqProvider",
    "Judgement",
    "LLMProvider",
    "LLMProviderError",
    "OllamaProvider",
    "PROMPT_VERSION",
    "build_providers",
    "parse_json_response",
    "sanitize_judgement",
]
