"""LLM Provider implementation using Anthropic Claude API."""

import os
from dataclasses import dataclass, field
from typing import Protocol

import anthropic


@dataclass
class LLMResponse:
    """Reply text plus token usage."""

    text: str
    model: str
    usage: dict = field(default_factory=dict)  # {"input_tokens", "output_tokens"}


class ILLMProvider(Protocol):
    """Abstraction for LLM access."""

    async def complete(
        self,
        messages: list[dict],  # [{"role": "user", "content": "..."}]
        system: str | None = None,
        max_tokens: int = 1024,
    ) -> str:
        """Generate completion."""
        ...

    async def query(
        self,
        messages: list[dict],
        system: str | None = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        """Generate completion and report token usage."""
        ...


class LLMProvider:
    """Anthropic Claude API provider."""

    def __init__(self, api_key: str | None = None, model: str = "claude-3-5-sonnet-20241022"):
        self._api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not self._api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable not set")

        self._model = model
        self._client = anthropic.AsyncAnthropic(api_key=self._api_key)

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        messages: list[dict],  # [{"role": "user", "content": "..."}]
        system: str | None = None,
        max_tokens: int = 1024,
    ) -> str:
        """Generate completion using Claude API."""
        response = await self.query(messages, system=system, max_tokens=max_tokens)
        return response.text

    async def query(
        self,
        messages: list[dict],
        system: str | None = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        """Generate completion using Claude API, keeping usage counters."""
        kwargs = {"model": self._model, "messages": messages, "max_tokens": max_tokens}
        if system:
            kwargs["system"] = system

        try:
            response = await self._client.messages.create(**kwargs)
        except Exception as e:
            # Re-raise for handling by caller; the SDK error stays as __cause__
            raise RuntimeError(f"LLM API error: {e}") from e

        usage = getattr(response, "usage", None)
        return LLMResponse(
            text=response.content[0].text,
            model=self._model,
            usage={
                "input_tokens": getattr(usage, "input_tokens", 0) or 0,
                "output_tokens": getattr(usage, "output_tokens", 0) or 0,
            },
        )
