"""Generation provider protocol: the opaque text-in / text-out backend."""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator, Protocol, runtime_checkable

# Chat history entries are plain {"role": "user" | "assistant", "content": str} dicts.
HistoryMessage = dict[str, str]


class GenerationError(Exception):
    """Raised when the generation backend fails.

    Attributes:
        provider: Provider name that failed.
        transient: Whether a retry could reasonably succeed.
    """

    transient = False

    def __init__(self, message: str, *, provider: str = "") -> None:
        super().__init__(message)
        self.provider = provider


class TransientGenerationError(GenerationError):
    """Rate limit, overload, timeout or connection failure; safe to retry."""

    transient = True


@dataclass
class ProviderResponse:
    """Response from a generation provider."""

    content: str
    input_tokens: int
    output_tokens: int
    model: str
    latency_ms: float


@runtime_checkable
class LLMProvider(Protocol):
    """Abstract interface for generation calls."""

    name: str

    async def generate(
        self,
        system_message: str,
        user_message: str,
        history: list[HistoryMessage] | None = None,
        max_tokens: int = 1000,
        temperature: float = 0.3,
    ) -> ProviderResponse: ...

    def stream(
        self,
        system_message: str,
        user_message: str,
        history: list[HistoryMessage] | None = None,
        max_tokens: int = 1000,
        temperature: float = 0.3,
    ) -> AsyncIterator[str]: ...


def build_messages(user_message: str, history: list[HistoryMessage] | None) -> list[HistoryMessage]:
    """History (oldest first) followed by the new user turn."""
    messages = [
        {"role": m["role"], "content": m["content"]}
        for m in (history or [])
        if m.get("role") in ("user", "assistant") and m.get("content")
    ]
    messages.append({"role": "user", "content": user_message})
    return messages


def create_provider(
    provider_name: str,
    api_key: str = "",
    model: str = "",
) -> LLMProvider:
    """Factory function to create a generation provider by name.

    Args:
        provider_name: "anthropic", "openai", or "mock"
        api_key: API key for the provider.
        model: Model identifier override.
    """
    if provider_name == "anthropic":
        from medly.core.llm.providers.anthropic import AnthropicProvider

        return AnthropicProvider(api_key=api_key, model=model or "claude-sonnet-4-5-20250929")
    elif provider_name == "openai":
        from medly.core.llm.providers.openai import OpenAIProvider

        return OpenAIProvider(api_key=api_key, model=model or "gpt-4o-mini")
    elif provider_name == "mock":
        from medly.core.llm.providers.mock import MockProvider

        return MockProvider()
    else:
        raise ValueError(f"Unknown LLM provider: {provider_name}")
