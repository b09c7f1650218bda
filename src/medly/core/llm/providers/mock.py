"""Mock generation provider for testing."""

from __future__ import annotations

from typing import AsyncIterator

from medly.core.llm.provider import GenerationError, HistoryMessage, ProviderResponse


class MockProvider:
    """Mock provider for testing: returns canned responses.

    ``responses`` are returned in order (the last one repeats). ``failures``
    are raised, one per call, before any response is returned.
    """

    name = "mock"

    def __init__(
        self,
        response_content: str = "Mock LLM response.",
        *,
        responses: list[str] | None = None,
        failures: list[GenerationError] | None = None,
    ) -> None:
        self.responses = list(responses) if responses else [response_content]
        self.failures = list(failures or [])
        self.last_system_message: str = ""
        self.last_user_message: str = ""
        self.last_history: list[HistoryMessage] = []
        self.call_count: int = 0

    @property
    def response_content(self) -> str:
        return self.responses[0]

    def _next(self, system_message: str, user_message: str, history: list[HistoryMessage] | None) -> str:
        self.last_system_message = system_message
        self.last_user_message = user_message
        self.last_history = list(history or [])
        self.call_count += 1
        if self.failures:
            raise self.failures.pop(0)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    async def generate(
        self,
        system_message: str,
        user_message: str,
        history: list[HistoryMessage] | None = None,
        max_tokens: int = 1000,
        temperature: float = 0.3,
    ) -> ProviderResponse:
        content = self._next(system_message, user_message, history)
        return ProviderResponse(
            content=content,
            input_tokens=len(system_message.split()) + len(user_message.split()),
            output_tokens=len(content.split()),
            model="mock",
            latency_ms=0.0,
        )

    async def stream(
        self,
        system_message: str,
        user_message: str,
        history: list[HistoryMessage] | None = None,
        max_tokens: int = 1000,
        temperature: float = 0.3,
    ) -> AsyncIterator[str]:
        content = self._next(system_message, user_message, history)
        words = content.split(" ")
        for i, word in enumerate(words):
            yield word if i == len(words) - 1 else word + " "
