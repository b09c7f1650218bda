"""OpenAI GPT provider."""

from __future__ import annotations

import time
from typing import AsyncIterator

import openai

from medly.core.llm.provider import (
    GenerationError,
    HistoryMessage,
    ProviderResponse,
    TransientGenerationError,
    build_messages,
)

_TRANSIENT_ERRORS = (
    openai.RateLimitError,
    openai.APIConnectionError,  # includes APITimeoutError
    openai.InternalServerError,
)


def _translate(exc: openai.APIError) -> GenerationError:
    if isinstance(exc, _TRANSIENT_ERRORS):
        return TransientGenerationError(f"OpenAI transient error: {type(exc).__name__}", provider="openai")
    return GenerationError(f"OpenAI error: {type(exc).__name__}", provider="openai")


class OpenAIProvider:
    """OpenAI provider using the OpenAI SDK."""

    name = "openai"

    def __init__(self, api_key: str, model: str = "gpt-4o-mini") -> None:
        self.client = openai.AsyncOpenAI(api_key=api_key)
        self.model = model

    def _messages(
        self, system_message: str, user_message: str, history: list[HistoryMessage] | None
    ) -> list[HistoryMessage]:
        return [{"role": "system", "content": system_message}, *build_messages(user_message, history)]

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
            response = await self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=self._messages(system_message, user_message, history),
            )
        except openai.APIError as exc:
            raise _translate(exc) from exc
        elapsed_ms = (time.monotonic() - start) * 1000

        choice = response.choices[0] if response.choices else None
        content = (choice.message.content or "") if choice else ""
        usage = response.usage
        return ProviderResponse(
            content=content,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
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
            response = await self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=self._messages(system_message, user_message, history),
                stream=True,
            )
            async for chunk in response:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except openai.APIError as exc:
            raise _translate(exc) from exc
