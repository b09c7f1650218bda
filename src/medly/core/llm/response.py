"""Post-generation contract checks and the deterministic statistics fallback.

A free-text instruction cannot enforce itself, so every generated answer is
checked against the same contract that was rendered into its prompt.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from medly.core.contract.models import AnswerContract

logger = logging.getLogger(__name__)

CITATION_RE = re.compile(r"\s*\[Source:\s*([^\]]+)\]", re.IGNORECASE)

# Flags that only describe repairs already applied; they do not fail a check.
_NON_BLOCKING_PREFIXES = ("unknown_citation",)


@dataclass
class ContractCheck:
    """Result of checking a response against its answer contract."""

    passed: bool
    flags: list[str] = field(default_factory=list)


def _norm(text: str) -> str:
    return " ".join(text.lower().split())


def _evidence_titles(evidence: Iterable[Any]) -> set[str]:
    titles = set()
    for item in evidence:
        title = item.get("title") if isinstance(item, dict) else getattr(item, "title", None)
        if title:
            titles.add(_norm(title))
    return titles


def cited_titles(content: str) -> list[str]:
    return [m.group(1).strip() for m in CITATION_RE.finditer(content)]


def check_contract(
    content: str,
    contract: AnswerContract,
    evidence: Iterable[Any] = (),
    *,
    statistics_supplied: bool = False,
) -> ContractCheck:
    """Check generated text against the contract rules it was prompted with."""
    flags: list[str] = []
    normalized = _norm(content)

    for phrase in contract.forbidden_phrases:
        if _norm(phrase) in normalized:
            flags.append(f"forbidden_phrase: {phrase}")

    if statistics_supplied:
        for phrase in contract.forbidden_with_statistics:
            if _norm(phrase) in normalized:
                flags.append(f"asked_for_data_despite_statistics: {phrase}")

    for heading in contract.required_sections:
        if _norm(heading) not in normalized:
            flags.append(f"missing_section: {heading}")

    citations = cited_titles(content)
    if citations and not contract.allow_citations:
        flags.append("citations_not_allowed")
    else:
        known = _evidence_titles(evidence)
        for title in citations:
            if _norm(title) not in known:
                flags.append(f"unknown_citation: {title}")

    passed = not any(not f.startswith(_NON_BLOCKING_PREFIXES) for f in flags)
    if flags:
        logger.warning("Contract flags for %s: %s", contract.id, flags)
    return ContractCheck(passed=passed, flags=flags)


def strip_unknown_citations(content: str, evidence: Iterable[Any]) -> str:
    """Remove ``[Source: X]`` markers whose X is not a supplied evidence title."""
    known = _evidence_titles(evidence)

    def _replace(match: re.Match[str]) -> str:
        return match.group(0) if _norm(match.group(1)) in known else ""

    return CITATION_RE.sub(_replace, content)


def summarize_statistics(stats: dict[str, Any]) -> str:
    """Deterministic review summary built directly from serialized LogStatistics.

    Used when the backend fails or keeps violating the review contract; no
    generation call is involved.
    """
    symptom_stats = stats.get("symptom_stats") or []
    if not symptom_stats:
        return (
            "## What your logs show\n"
            "- No symptoms were logged in this window."
        )

    total_days = stats.get("total_days", 0)
    total_logs = sum(s.get("count", 0) for s in symptom_stats)
    lines = [
        "## What your logs show",
        f"- {total_logs} entr{'ies' if total_logs != 1 else 'y'} across your last "
        f"{total_days} logged day"
        f"{'s' if total_days != 1 else ''}.",
    ]
    for s in symptom_stats:
        count = s.get("count", 0)
        line = (
            f"- {s.get('symptom_type')}: {count} time{'s' if count != 1 else ''}, "
            f"average severity {s.get('avg_severity')}/10"
        )
        if s.get("min_severity") is not None and s.get("max_severity") is not None:
            if s["min_severity"] != s["max_severity"]:
                line += f" (range {s['min_severity']}-{s['max_severity']})"
        lines.append(line)

    if stats.get("max_severity_symptom"):
        lines.append(
            f"- Most severe entry: {stats['max_severity_symptom']} "
            f"({stats.get('max_severity_overall')}/10)"
        )
    if stats.get("phase_with_max_severity"):
        lines.append(
            f"- Highest average severity during the {stats['phase_with_max_severity']} phase"
        )

    lines.append("")
    lines.append("_Summary generated directly from your logged data._")
    return "\n".join(lines)
