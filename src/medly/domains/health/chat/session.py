"""Chat session orchestration for one conversation thread.

Per message: emergency check, redaction, pattern card and evidence for
medical queries, intent classification with log-window statistics,
contract-driven prompt assembly, one generation call, persistence of the
redacted turn with the exact evidence ids that were supplied.

Conversation state is an explicit ``SessionState`` loaded and saved
through ``SessionStateRepository``. At most one generation is in flight
per thread: a new message cancels the previous one.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from medly.core.audit.logger import AuditLogger
from medly.core.config.settings import Settings
from medly.core.contract.registry import ContractRegistry
from medly.core.contract.renderer import assemble_prompt
from medly.core.llm.client import ChatGenerationClient, GenerationRequest, GenerationResult
from medly.core.llm.provider import GenerationError
from medly.core.llm.response import summarize_statistics
from medly.core.privacy.policy import PrivacyMode
from medly.core.privacy.sanitizer import detect_emergency_symptoms, is_medical_query, redact_pii
from medly.core.storage.models import ChatMessage, KBDocument
from medly.core.storage.repository import (
    ChatRepository,
    KnowledgeBaseRepository,
    LogRepository,
    SessionStateRepository,
)
from medly.domains.health.analytics.log_statistics import (
    LogStatistics,
    compute_log_statistics,
    get_logs_from_last_n_days,
)
from medly.domains.health.analytics.models import PatternCard
from medly.domains.health.analytics.pattern_card import build_pattern_card
from medly.domains.health.chat.intent import (
    DEFAULT_REVIEW_DAYS,
    ChatIntent,
    classify_intent,
    extract_comparison_period,
    extract_days_for_understand_patterns,
    extract_days_from_review_request,
)
from medly.domains.health.chat.prompt_builder import build_system_prompt
from medly.domains.health.retrieval.evidence import (
    RagEvidence,
    has_sufficient_relevance,
    retrieve_evidence,
)

logger = logging.getLogger(__name__)

FAILURE_MESSAGE = (
    "I'm sorry, I couldn't generate a response right now. Please try again in a moment."
)
SUPERSEDED_MESSAGE = "This request was replaced by a newer message."


@dataclass
class ChatTurnResult:
    """Outcome of one chat turn."""

    thread_id: str
    content: str
    intent: ChatIntent
    citations: list[str] = field(default_factory=list)
    emergency_alert: bool = False
    is_medical: bool = False
    used_fallback: bool = False
    failed: bool = False
    superseded: bool = False
    contract_flags: list[str] = field(default_factory=list)
    statistics: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "thread_id": self.thread_id,
            "content": self.content,
            "intent": self.intent,
            "citations": list(self.citations),
            "emergency_alert": self.emergency_alert,
            "is_medical": self.is_medical,
            "used_fallback": self.used_fallback,
            "failed": self.failed,
            "superseded": self.superseded,
            "contract_flags": list(self.contract_flags),
            "statistics": self.statistics,
        }


@dataclass
class _TurnContext:
    """Everything gathered before the generation call."""

    intent: ChatIntent
    pattern_card: PatternCard | None = None
    evidence: list[RagEvidence] = field(default_factory=list)
    recent_logs: list[Any] = field(default_factory=list)
    statistics: LogStatistics | None = None
    comparison_statistics: LogStatistics | None = None


class ChatSession:
    """Runs chat turns for a single thread."""

    def __init__(
        self,
        thread_id: str,
        *,
        logs: LogRepository,
        knowledge: KnowledgeBaseRepository,
        chat: ChatRepository,
        states: SessionStateRepository,
        contracts: ContractRegistry,
        client: ChatGenerationClient,
        settings: Settings,
        audit: AuditLogger | None = None,
        privacy_mode: PrivacyMode | None = None,
    ) -> None:
        self.thread_id = thread_id
        self._logs = logs
        self._knowledge = knowledge
        self._chat = chat
        self._states = states
        self._contracts = contracts
        self._client = client
        self._settings = settings
        self._audit = audit
        self.privacy_mode: PrivacyMode = privacy_mode or settings.default_privacy_mode
        self._inflight: asyncio.Task[ChatTurnResult] | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send_message(
        self,
        message: str,
        *,
        now: datetime | None = None,
        on_chunk: Callable[[str], None] | None = None,
    ) -> ChatTurnResult:
        """Process one user message.

        If another message on this thread is still generating it is
        cancelled and its caller receives a ``superseded`` result.
        ``on_chunk`` switches the generation call to streaming.
        """
        previous = self._inflight
        if previous is not None and not previous.done():
            logger.info("Superseding in-flight generation on thread %s", self.thread_id)
            previous.cancel()

        task = asyncio.ensure_future(self._run_turn(message, now=now, on_chunk=on_chunk))
        self._inflight = task
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and self._inflight is not task:
                return ChatTurnResult(
                    thread_id=self.thread_id,
                    content=SUPERSEDED_MESSAGE,
                    intent="general",
                    superseded=True,
                )
            raise
        finally:
            if self._inflight is task:
                self._inflight = None

    def resolve_citations(self, ids: list[str]) -> list[KBDocument]:
        """Resolve evidence ids returned with an answer back to KB documents."""
        return self._knowledge.get_many(ids)

    # ------------------------------------------------------------------
    # Turn pipeline
    # ------------------------------------------------------------------

    async def _run_turn(
        self,
        message: str,
        *,
        now: datetime | None,
        on_chunk: Callable[[str], None] | None,
    ) -> ChatTurnResult:
        now = now or datetime.now(timezone.utc)
        state = self._states.load(self.thread_id)
        state.visit_count += 1

        emergency = detect_emergency_symptoms(message)
        if emergency:
            logger.warning("Emergency language detected on thread %s", self.thread_id)
        redacted = redact_pii(message, now=now) or ""
        medical = is_medical_query(message)

        ctx = self._gather_context(message, redacted, medical=medical, now=now)
        contract = self._contracts.for_intent(ctx.intent if medical else "general")
        logger.info(
            "Chat turn: thread=%s, intent=%s, medical=%s, evidence=%d, stats=%s",
            self.thread_id, ctx.intent, medical, len(ctx.evidence), ctx.statistics is not None,
        )

        if medical:
            prompt = build_system_prompt(
                contract,
                redacted,
                pattern_card=ctx.pattern_card,
                evidence=ctx.evidence,
                recent_logs=ctx.recent_logs,
                statistics=ctx.statistics,
                comparison_statistics=ctx.comparison_statistics,
                privacy_mode=self.privacy_mode,
                now=now,
            )
        else:
            prompt = assemble_prompt(contract, redacted, {})

        stats_dict = ctx.statistics.to_dict() if ctx.statistics is not None else None
        history = [
            {"role": m.role, "content": m.content}
            for m in self._chat.get_history(self.thread_id, limit=self._settings.max_chat_history)
        ]
        request = GenerationRequest(
            prompt=prompt,
            contract=contract,
            history=history,
            evidence=ctx.evidence if contract.allow_citations else [],
            statistics=stats_dict,
        )

        start = time.monotonic()
        try:
            result = await self._generate(request, on_chunk)
        except GenerationError as exc:
            elapsed = (time.monotonic() - start) * 1000
            logger.error(
                "Generation failed on thread %s: %s (transient=%s)",
                self.thread_id, type(exc).__name__, exc.transient,
            )
            self._audit_generation(prompt.system_message, redacted, elapsed, "error", type(exc).__name__)
            content = FAILURE_MESSAGE
            if stats_dict is not None:
                content += "\n\n" + summarize_statistics(stats_dict)
            result = GenerationResult(content=content, used_fallback=stats_dict is not None)
            failed = True
        else:
            elapsed = (time.monotonic() - start) * 1000
            self._audit_generation(prompt.system_message, redacted, elapsed, "success", None)
            failed = False

        self._persist(redacted, result, ctx.intent)

        state.last_intent = ctx.intent
        state.last_emergency = emergency
        if ctx.pattern_card is not None:
            state.last_window_days = ctx.pattern_card.time_window_days
        self._states.save(state)

        return ChatTurnResult(
            thread_id=self.thread_id,
            content=result.content,
            intent=ctx.intent,
            citations=list(result.citations),
            emergency_alert=emergency,
            is_medical=medical,
            used_fallback=result.used_fallback,
            failed=failed,
            contract_flags=list(result.contract_flags),
            statistics=stats_dict,
        )

    def _gather_context(
        self, message: str, redacted: str, *, medical: bool, now: datetime
    ) -> _TurnContext:
        intent = classify_intent(message)
        ctx = _TurnContext(intent=intent)
        if not medical:
            return ctx

        since = now - timedelta(days=self._settings.pattern_analysis_days)
        pattern_logs = self._logs.list(since=since, limit=self._settings.max_pattern_logs)
        ctx.pattern_card = build_pattern_card(pattern_logs)
        ctx.evidence = retrieve_evidence(
            redacted,
            ctx.pattern_card,
            self._knowledge.get_all(),
            top_n=self._settings.evidence_top_n,
        )
        if ctx.evidence and not has_sufficient_relevance(ctx.evidence):
            logger.info("Dropping %d weak evidence matches", len(ctx.evidence))
            ctx.evidence = []

        if intent in ("review_recent", "understand_patterns", "compare_period"):
            all_logs = self._logs.list(limit=self._settings.max_review_logs)
            if intent == "understand_patterns":
                days = extract_days_for_understand_patterns(message)
            elif intent == "review_recent":
                days = extract_days_from_review_request(message)
            else:
                days = DEFAULT_REVIEW_DAYS
            ctx.recent_logs = get_logs_from_last_n_days(all_logs, days)
            if ctx.recent_logs:
                ctx.statistics = compute_log_statistics(ctx.recent_logs)
                logger.info(
                    "%s window: %d entries from last %d logged days",
                    intent, len(ctx.recent_logs), ctx.statistics.total_days,
                )

            if intent == "compare_period":
                period = extract_comparison_period(message)
                comparison_logs = (
                    all_logs if period == "full" else get_logs_from_last_n_days(all_logs, period)
                )
                ctx.comparison_statistics = compute_log_statistics(comparison_logs)
                # Comparison answers work from the two stat blocks, not raw entries.
                ctx.recent_logs = []
        return ctx

    async def _generate(
        self, request: GenerationRequest, on_chunk: Callable[[str], None] | None
    ) -> GenerationResult:
        if on_chunk is None:
            return await self._client.complete(request)
        stream = self._client.stream(request)
        async for chunk in stream:
            on_chunk(chunk)
        return stream.final_result()

    def _persist(self, redacted: str, result: GenerationResult, intent: ChatIntent) -> None:
        self._chat.save_message(ChatMessage(
            id="", thread_id=self.thread_id, role="user", content=redacted, intent=intent,
        ))
        self._chat.save_message(ChatMessage(
            id="",
            thread_id=self.thread_id,
            role="assistant",
            content=result.content,
            intent=intent,
            citations=list(result.citations),
        ))

    def _audit_generation(
        self,
        system_message: str,
        user_message: str,
        duration_ms: float,
        status: str,
        error_type: str | None,
    ) -> None:
        if self._audit is None:
            return
        self._audit.log_generation(
            thread_id=self.thread_id,
            prompt_input={"system": system_message, "user": user_message},
            privacy_mode=self.privacy_mode,
            llm_provider=self._client.provider_name,
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
        )


class ChatSessionManager:
    """Owns one ChatSession per thread id for the lifetime of a server."""

    def __init__(self, factory: Callable[[str], ChatSession]) -> None:
        self._factory = factory
        self._sessions: dict[str, ChatSession] = {}

    def get(self, thread_id: str) -> ChatSession:
        session = self._sessions.get(thread_id)
        if session is None:
            session = self._factory(thread_id)
            self._sessions[thread_id] = session
        return session
