"""Completion-service clients.

Each client takes the system prompt and the trimmed message window and
returns the raw completion text.  Transport failures and timeouts are
raised as ``NluError``; the orchestrator turns those into the fallback
proposal.  A missing credential is a ``ConfigurationError`` raised when
the client is built.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

import anthropic
import httpx
from openai import AsyncOpenAI

from reservations.config import Settings
from reservations.errors import ConfigurationError, NluError

log = logging.getLogger("reservations.nlu")


class NluClient(ABC):
    """Abstract completion service."""

    name: str = "nlu"

    def __init__(self, timeout: float = 12.0) -> None:
        self._timeout = timeout

    async def complete(self, system: str, messages: list[dict[str, str]]) -> str:
        """Return raw completion text for ``messages`` under ``system``."""
        try:
            return await asyncio.wait_for(
                self._complete(system, messages), timeout=self._timeout
            )
        except asyncio.TimeoutError as e:
            raise NluError(f"{self.name} timed out after {self._timeout:.0f}s") from e
        except NluError:
            raise
        except Exception as e:
            raise NluError(f"{self.name} API error: {e}") from e

    @abstractmethod
    async def _complete(self, system: str, messages: list[dict[str, str]]) -> str:
        ...


class OpenAINluClient(NluClient):
    """OpenAI chat completions in JSON mode."""

    name = "openai"

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", timeout: float = 12.0) -> None:
        super().__init__(timeout)
        self._model = model
        self._client = AsyncOpenAI(api_key=api_key)

    async def _complete(self, system: str, messages: list[dict[str, str]]) -> str:
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=[{"role": "system", "content": system}, *messages],
            response_format={"type": "json_object"},
            temperature=0.2,
        )
        return response.choices[0].message.content or ""


class ClaudeNluClient(NluClient):
    """Anthropic Messages API."""

    name = "claude"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-5-haiku-latest",
        timeout: float = 12.0,
        max_tokens: int = 1024,
    ) -> None:
        super().__init__(timeout)
        self._model = model
        self._max_tokens = max_tokens
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

    async def _complete(self, system: str, messages: list[dict[str, str]]) -> str:
        # The Messages API requires the first message to come from the user
        while messages and messages[0]["role"] != "user":
            messages = messages[1:]
        response = await self._client.messages.create(
            model=self._model,
            system=system,
            messages=messages,
            max_tokens=self._max_tokens,
        )
        return "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )


class OllamaNluClient(NluClient):
    """Local Ollama server, /api/chat with JSON output."""

    name = "ollama"

    def __init__(self, url: str, model: str, timeout: float = 12.0) -> None:
        super().__init__(timeout)
        self._url = url.rstrip("/")
        self._model = model

    async def _complete(self, system: str, messages: list[dict[str, str]]) -> str:
        payload = {
            "model": self._model,
            "messages": [{"role": "system", "content": system}, *messages],
            "format": "json",
            "stream": False,
        }
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(f"{self._url}/api/chat", json=payload)
            resp.raise_for_status()
            data = resp.json()
        return data.get("message", {}).get("content", "")


def build_client(settings: Settings) -> NluClient:
    """Build the client named by ``settings.llm_provider``.

    Raises ConfigurationError when the provider is unknown or its
    credential is missing.
    """
    settings.require_llm_credentials()
    timeout = settings.nlu_timeout_seconds

    if settings.llm_provider == "openai":
        return OpenAINluClient(settings.openai_api_key, settings.openai_model, timeout)
    if settings.llm_provider == "claude":
        return ClaudeNluClient(settings.anthropic_api_key, settings.anthropic_model, timeout)
    if settings.llm_provider == "ollama":
        return OllamaNluClient(settings.ollama_url, settings.ollama_model, timeout)

    raise ConfigurationError(
        f"LLM_PROVIDER={settings.llm_provider!r} is not one of openai, claude, ollama."
    )
