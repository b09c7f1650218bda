"""Prompt assembly for chat turns.

Serializes the pattern card, optional per-log entries, optional
pre-computed statistics and retrieved evidence into labelled data blocks,
then renders them under the answer contract selected for the intent.
Everything passed in here has already been aggregated; notes are redacted
again on the way in.
"""

from __future__ import annotations

import json
from collections import OrderedDict
from datetime import datetime
from typing import Any, Iterable

from medly.core.contract.models import AnswerContract, AssembledPrompt
from medly.core.contract.renderer import assemble_prompt
from medly.core.privacy.policy import PrivacyMode, build_llm_data_context, include_notes
from medly.core.privacy.sanitizer import format_duration, redact_pii
from medly.core.storage.models import Log
from medly.domains.health.analytics.log_statistics import LogStatistics
from medly.domains.health.analytics.models import PatternCard
from medly.domains.health.analytics.records import as_aware, local_day, normalize_phase
from medly.domains.health.retrieval.evidence import RagEvidence

NO_EVIDENCE_TEXT = "No relevant evidence retrieved."


def severity_label(severity: int) -> str:
    if severity >= 7:
        return "Severe"
    if severity >= 4:
        return "Moderate"
    return "Mild"


def _log_entry(log: Log, *, with_notes: bool, now: datetime | None) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "symptom": log.symptom_type,
        "severity": log.severity,
        "phase": normalize_phase(log.cycle_phase),
        "triggers": list(log.triggers),
        "tags": list(log.tags),
        "duration": format_duration(log.duration_mins),
    }
    if with_notes and log.notes and log.notes.strip():
        entry["notes"] = redact_pii(log.notes.strip(), now=now)
    return entry


def format_log_entries(
    logs: Iterable[Log],
    *,
    privacy_mode: PrivacyMode = "standard",
    now: datetime | None = None,
) -> str:
    """Render logs grouped by calendar day, newest day first.

    Within a day entries are newest first. Notes are only rendered (and
    always redacted) in ``explicit`` mode; ``strict`` renders nothing.
    """
    ordered = sorted(logs, key=lambda log: as_aware(log.created_at), reverse=True)
    entries = [
        _log_entry(log, with_notes=include_notes(privacy_mode), now=now) for log in ordered
    ]
    context = build_llm_data_context(
        pattern_card=None, statistics=None, log_entries=entries, privacy_mode=privacy_mode
    )
    kept = context["log_entries"]
    if not kept:
        return ""

    groups: OrderedDict[str, list[dict[str, Any]]] = OrderedDict()
    for log, entry in zip(ordered, kept):
        day = local_day(log.created_at).strftime("%a %b %d")
        groups.setdefault(day, []).append(entry)

    lines: list[str] = []
    for day, day_entries in groups.items():
        lines.append(f"{day}:")
        for e in day_entries:
            line = f"- {severity_label(e['severity'])} {e['symptom']} ({e['severity']}/10)"
            if e["phase"] != "unknown":
                line += f", {e['phase']} phase"
            if e.get("duration"):
                line += f", lasted {e['duration']}"
            if e["triggers"]:
                line += f"; triggers: {', '.join(e['triggers'])}"
            if e["tags"]:
                line += f"; tags: {', '.join(e['tags'])}"
            if e.get("notes"):
                line += f'; notes: "{e["notes"]}"'
            lines.append(line)
    return "\n".join(lines)


def format_evidence(evidence: list[RagEvidence]) -> str:
    if not evidence:
        return NO_EVIDENCE_TEXT
    blocks = []
    for idx, ev in enumerate(evidence, start=1):
        blocks.append(
            f"[Evidence {idx}]\n"
            f"Title: {ev.title}\n"
            f"URL: {ev.url}\n"
            f"Claim: {ev.claim}\n"
            f"Excerpt: {ev.excerpt}\n"
            f"Tags: {', '.join(ev.tags) if ev.tags else 'none'}"
        )
    return "\n\n".join(blocks)


def _json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def build_system_prompt(
    contract: AnswerContract,
    user_message: str,
    *,
    pattern_card: PatternCard | None,
    evidence: list[RagEvidence],
    recent_logs: list[Log] | None = None,
    statistics: LogStatistics | None = None,
    comparison_statistics: LogStatistics | None = None,
    privacy_mode: PrivacyMode = "standard",
    now: datetime | None = None,
) -> AssembledPrompt:
    """Assemble the full prompt for one chat turn.

    ``user_message`` must already be redacted. When ``comparison_statistics``
    is given, ``statistics`` is rendered as RECENT_STATS next to
    COMPARISON_STATS; otherwise as COMPUTED_STATISTICS, which the review
    contracts treat as the only authoritative source.
    """
    context = build_llm_data_context(
        pattern_card=(pattern_card or PatternCard.empty()).to_dict(),
        statistics=statistics.to_dict() if statistics is not None else None,
        log_entries=None,
        privacy_mode=privacy_mode,
    )

    blocks: dict[str, str] = {"PATTERN_CARD": _json(context["pattern_card"])}

    if recent_logs:
        blocks["RECENT_LOG_ENTRIES"] = format_log_entries(
            recent_logs, privacy_mode=privacy_mode, now=now
        )

    if comparison_statistics is not None:
        blocks["RECENT_STATS"] = (
            _json(context["statistics"]) if context["statistics"] else "No recent stats available"
        )
        comparison = build_llm_data_context(
            pattern_card=None,
            statistics=comparison_statistics.to_dict(),
            log_entries=None,
            privacy_mode=privacy_mode,
        )
        blocks["COMPARISON_STATS"] = _json(comparison["statistics"])
    elif context["statistics"]:
        blocks["COMPUTED_STATISTICS"] = _json(context["statistics"])

    if contract.allow_citations:
        blocks["RAG_EVIDENCE"] = format_evidence(evidence)

    return assemble_prompt(contract, user_message, blocks)
