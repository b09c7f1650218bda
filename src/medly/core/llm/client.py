"""Generation client: the bridge between assembled prompts and provider calls.

Wraps a provider with bounded exponential-backoff retries for transient
failures, validates every answer against its contract, regenerates once
when a statistics-backed answer breaks the contract, and finally falls back
to a deterministic summary built from the statistics themselves.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from medly.core.contract.models import AnswerContract, AssembledPrompt
from medly.core.llm.provider import (
    GenerationError,
    HistoryMessage,
    LLMProvider,
    ProviderResponse,
    TransientGenerationError,
)
from medly.core.llm.response import (
    ContractCheck,
    check_contract,
    strip_unknown_citations,
    summarize_statistics,
)
from medly.core.llm.system_prompt import build_full_system_prompt

logger = logging.getLogger(__name__)


@dataclass
class GenerationRequest:
    """Everything one generation turn needs. All text is already redacted."""

    prompt: AssembledPrompt
    contract: AnswerContract
    history: list[HistoryMessage] = field(default_factory=list)
    evidence: list[Any] = field(default_factory=list)     # items with .id and .title
    statistics: dict[str, Any] | None = None               # serialized LogStatistics


@dataclass
class GenerationResult:
    """Validated answer for one turn."""

    content: str
    citations: list[str] = field(default_factory=list)    # exact evidence ids supplied
    contract_flags: list[str] = field(default_factory=list)
    used_fallback: bool = False
    usage: dict[str, int] = field(default_factory=dict)


def remove_forbidden_sentences(content: str, check: ContractCheck) -> str:
    """Drop sentences containing a flagged forbidden phrase."""
    phrases = [
        flag.split(": ", 1)[1]
        for flag in check.flags
        if flag.startswith(("forbidden_phrase:", "asked_for_data_despite_statistics:"))
    ]
    for phrase in phrases:
        pattern = re.compile(r"[^.!?\n]*" + re.escape(phrase) + r"[^.!?\n]*[.!?]?", re.IGNORECASE)
        content = pattern.sub("", content)
    return content


class ChatGenerationClient:
    """Invokes the generation backend under an answer contract."""

    def __init__(
        self,
        provider: LLMProvider,
        *,
        max_retries: int = 3,
        retry_base_delay_s: float = 0.5,
        max_tokens: int = 1000,
        temperature: float = 0.3,
    ) -> None:
        self.provider = provider
        self.max_retries = max_retries
        self.retry_base_delay_s = retry_base_delay_s
        self.max_tokens = max_tokens
        self.temperature = temperature

    @property
    def provider_name(self) -> str:
        return getattr(self.provider, "name", type(self.provider).__name__)

    # ------------------------------------------------------------------
    # Provider calls with retry
    # ------------------------------------------------------------------

    async def _backoff(self, attempt: int, exc: Exception) -> None:
        delay = self.retry_base_delay_s * (2 ** attempt)
        logger.warning(
            "Transient generation failure (%s), retry %d/%d in %.2fs",
            type(exc).__name__, attempt + 1, self.max_retries, delay,
        )
        await asyncio.sleep(delay)

    async def _generate(self, request: GenerationRequest) -> ProviderResponse:
        system = build_full_system_prompt(request.prompt.system_message)
        for attempt in range(self.max_retries + 1):
            try:
                return await self.provider.generate(
                    system_message=system,
                    user_message=request.prompt.user_message,
                    history=request.history,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                )
            except TransientGenerationError as exc:
                if attempt >= self.max_retries:
                    raise
                await self._backoff(attempt, exc)
        raise AssertionError("unreachable")

    async def _stream_chunks(self, request: GenerationRequest) -> AsyncIterator[str]:
        """Stream with retries, but only while nothing has been yielded yet."""
        system = build_full_system_prompt(request.prompt.system_message)
        for attempt in range(self.max_retries + 1):
            emitted = False
            try:
                async for chunk in self.provider.stream(
                    system_message=system,
                    user_message=request.prompt.user_message,
                    history=request.history,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                ):
                    emitted = True
                    yield chunk
                return
            except TransientGenerationError as exc:
                if emitted or attempt >= self.max_retries:
                    raise
                await self._backoff(attempt, exc)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _check(self, content: str, request: GenerationRequest) -> ContractCheck:
        return check_contract(
            content,
            request.contract,
            request.evidence,
            statistics_supplied=request.statistics is not None,
        )

    async def _finalize(
        self, content: str, request: GenerationRequest, usage: dict[str, int]
    ) -> GenerationResult:
        check = self._check(content, request)
        flags = list(check.flags)
        used_fallback = False

        if not check.passed and request.statistics is not None and request.contract.requires_statistics:
            logger.info("Answer broke contract %s, regenerating once", request.contract.id)
            retry = await self._generate(request)
            usage = {
                "input_tokens": usage.get("input_tokens", 0) + retry.input_tokens,
                "output_tokens": usage.get("output_tokens", 0) + retry.output_tokens,
            }
            check = self._check(retry.content, request)
            flags.extend(f"regenerated: {f}" for f in check.flags)
            if check.passed:
                content = retry.content
            else:
                logger.warning(
                    "Regenerated answer still broke contract %s, using statistics summary",
                    request.contract.id,
                )
                content = summarize_statistics(request.statistics)
                used_fallback = True
        elif not check.passed:
            content = remove_forbidden_sentences(content, check)

        if not used_fallback:
            content = strip_unknown_citations(content, request.evidence)

        citations = [e.id for e in request.evidence] if request.contract.allow_citations else []
        return GenerationResult(
            content=content.strip(),
            citations=citations,
            contract_flags=flags,
            used_fallback=used_fallback,
            usage=usage,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def complete(self, request: GenerationRequest) -> GenerationResult:
        """Generate a full answer and validate it."""
        response = await self._generate(request)
        logger.info(
            "Generation: contract=%s, model=%s, tokens=%d+%d, latency=%.0fms",
            request.contract.id,
            response.model,
            response.input_tokens,
            response.output_tokens,
            response.latency_ms,
        )
        return await self._finalize(
            response.content,
            request,
            {"input_tokens": response.input_tokens, "output_tokens": response.output_tokens},
        )

    def stream(self, request: GenerationRequest) -> GenerationStream:
        """Stream an answer; the validated result is on ``.result`` once exhausted."""
        return GenerationStream(self, request)


class GenerationStream:
    """Async iterator of text chunks that validates the full text at the end.

    The streamed chunks are the raw backend output. Callers that display
    them incrementally should replace the displayed text with
    ``result.content`` once iteration finishes, since validation can
    rewrite it.
    """

    def __init__(self, client: ChatGenerationClient, request: GenerationRequest) -> None:
        self._client = client
        self._request = request
        self.result: GenerationResult | None = None

    def __aiter__(self) -> AsyncIterator[str]:
        return self._run()

    async def _run(self) -> AsyncIterator[str]:
        chunks: list[str] = []
        async for chunk in self._client._stream_chunks(self._request):
            chunks.append(chunk)
            yield chunk
        self.result = await self._client._finalize("".join(chunks), self._request, {})

    async def collect(self) -> GenerationResult:
        """Drain the stream and return the validated result."""
        async for _ in self:
            pass
        return self.final_result()

    def final_result(self) -> GenerationResult:
        """The validated result; raises if the stream was not fully drained."""
        if self.result is None:
            raise GenerationError("Stream ended before a result was produced")
        return self.result
