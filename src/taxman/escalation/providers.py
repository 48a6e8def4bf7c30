"""LLM provider clients for the escalation chain.

Each provider turns a (system, user) prompt pair into raw completion text.
Providers raise on any failure; the chain decides what to do about it.

Privacy Constraints (non-negotiable):
- Never log prompts or memo content at INFO level
- API keys never appear in log output
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from taxman.config import LLMConfig

logger = logging.getLogger(__name__)


class LLMProviderError(Exception):
    """Raised when a provider returns no usable completion."""

    pass


@dataclass
class Completion:
    """Raw completion text and the model that produced it."""

    content: str
    provider: str
    model: str


class LLMProvider(ABC):
    """One step of the escalation chain."""

    name: str = ""

    def __init__(
        self,
        client: httpx.AsyncClient,
        model: str,
        temperature: float = 0.1,
        timeout_seconds: float = 30,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.timeout = httpx.Timeout(
            connect=10.0,
            read=float(timeout_seconds),
            write=30.0,
            pool=10.0,
        )

    @property
    def model_version(self) -> str:
        return f"{self.name}:{self.model}"

    @abstractmethod
    async def complete(self, system_prompt: str, user_message: str) -> Completion:
        """Request a JSON completion.

        Raises:
            httpx.HTTPError: On transport failure or non-2xx status.
            LLMProviderError: When the response carries no text.
        """

    def _completion(self, content: str | None) -> Completion:
        if not content or not content.strip():
            raise LLMProviderError(f"{self.name} returned an empty completion")
        logger.debug("%s %s returned %d chars", self.name, self.model, len(content))
        return Completion(content=content, provider=self.name, model=self.model_version)


class OllamaProvider(LLMProvider):
    """Local Ollama server, /api/chat with JSON format."""

    name = "ollama"

    def __init__(self, client: httpx.AsyncClient, base_url: str, model: str, **kwargs: Any):
        super().__init__(client, model, **kwargs)
        self.base_url = base_url.rstrip("/")

    async def complete(self, system_prompt: str, user_message: str) -> Completion:
        url = f"{self.base_url}/api/chat"
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "stream": False,
            "format": "json",
            "options": {"temperature": self.temperature},
        }
        logger.debug("Calling Ollama model %s at %s", self.model, self.base_url)
        response = await self.client.post(url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        return self._completion(data.get("message", {}).get("content", ""))


class GroqProvider(LLMProvider):
    """Groq OpenAI-compatible chat completions."""

    name = "groq"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        model: str,
        url: str = "https://api.groq.com/openai/v1/chat/completions",
        **kwargs: Any,
    ):
        super().__init__(client, model, **kwargs)
        self.api_key = api_key
        self.url = url

    async def complete(self, system_prompt: str, user_message: str) -> Completion:
        payload = {
            "model": self.model,
            "temperature": self.temperature,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        logger.debug("Calling Groq model %s", self.model)
        response = await self.client.post(
            self.url, json=payload, headers=headers, timeout=self.timeout
        )
        response.raise_for_status()
        choices = response.json().get("choices") or [{}]
        return self._completion(choices[0].get("message", {}).get("content", ""))


class GeminiProvider(LLMProvider):
    """Google Gemini generateContent."""

    name = "gemini"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        model: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta/models",
        **kwargs: Any,
    ):
        super().__init__(client, model, **kwargs)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    async def complete(self, system_prompt: str, user_message: str) -> Completion:
        url = f"{self.base_url}/{self.model}:generateContent"
        payload = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": user_message}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "responseMimeType": "application/json",
            },
        }
        logger.debug("Calling Gemini model %s", self.model)
        response = await self.client.post(
            url,
            json=payload,
            params={"key": self.api_key},
            timeout=self.timeout,
        )
        response.raise_for_status()
        candidates = response.json().get("candidates") or [{}]
        parts = candidates[0].get("content", {}).get("parts") or []
        text = "".join(str(part.get("text", "")) for part in parts)
        return self._completion(text)


def build_providers(llm_config: LLMConfig, client: httpx.AsyncClient) -> list[LLMProvider]:
    """Build the enabled providers in escalation order (local first)."""
    options = {
        "temperature": llm_config.temperature,
        "timeout_seconds": llm_config.timeout_seconds,
    }
    providers: list[LLMProvider] = []
    if llm_config.ollama_enabled:
        providers.append(
            OllamaProvider(client, llm_config.ollama_url, llm_config.ollama_model, **options)
        )
    if llm_config.groq_enabled:
        providers.append(
            GroqProvider(
                client,
                llm_config.groq_api_key,
                llm_config.groq_model,
                url=llm_config.groq_url,
                **options,
            )
        )
    if llm_config.gemini_enabled:
        providers.append(
            GeminiProvider(
                client,
                llm_config.gemini_api_key,
                llm_config.gemini_model,
                base_url=llm_config.gemini_url,
                **options,
            )
        )
    return providers
