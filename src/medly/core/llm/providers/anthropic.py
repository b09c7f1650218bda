"""Anthropic Claude provider."""

from __future__ import annotations

import time
from typing import AsyncIterator

import anthropic

from medly.core.llm.provider import (
    GenerationError,
    HistoryMessage,
    ProviderResponse,
    TransientGenerationError,
    build_messages,
)

_TRANSIENT_ERRORS = (
    anthropic.RateLimitError,
    anthropic.APIConnectionError,  # includes APITimeoutError
    anthropic.InternalServerError,  # includes 529 overloaded
)


def _translate(exc: anthropic.APIError) -> GenerationError:
    if isinstance(exc, _TRANSIENT_ERRORS):
        return TransientGenerationError(f"Anthropic transient error: {type(exc).__name__}", provider="anthropic")
    return GenerationError(f"Anthropic error: {type(exc).__name__}", provider="anthropic")


class AnthropicProvider:
    """Claude provider using the Anthropic SDK."""

    name = "anthropic"

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-5-20250929") -> None:
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model

    async def generate(
        self,
        system_message: str,
        user_message: str,
        history: list[HistoryMessage] | None = None,
        max_tokens: int = 1000,
        temperature: float = 0.3,
    ) -> ProviderResponse:
        start = time.monotonic()
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_message,
                messages=build_messages(user_message, history),
            )
        except anthropic.APIError as exc:
            raise _translate(exc) from exc
        elapsed_ms = (time.monotonic() - start) * 1000

        content = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        return ProviderResponse(
            content=content,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=self.model,
            latency_ms=elapsed_ms,
        )

    async def stream(
        self,
        system_message: str,
        user_message: str,
        history: list[HistoryMessage] | None = None,
        max_tokens: int = 1000,
        temperature: float = 0.3,
    ) -> AsyncIterator[str]:
        try:
            async with self.client.messages.stream(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_message,
                messages=build_messages(user_message, history),
            ) as stream:
                async for text in stream.text_stream:
                    yield text
        except anthropic.APIError as exc:
            raise _translate(exc) from exc
