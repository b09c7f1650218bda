"""Long-window pattern card aggregation.

The card summarizes months of logs for trend questions: symptom frequency,
cycle-phase correlation, tag/trigger co-occurrence, medication mentions,
red-flag keywords and a notes-quality score, plus up to five narrative
bullets. All ranked lists use a stable descending sort so ties keep
first-seen order.
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter
from typing import Callable, Iterable

from medly.core.storage.models import CYCLE_PHASES, Log
from medly.domains.health.analytics.models import (
    CountItem,
    CycleAssociation,
    NotesQuality,
    PatternCard,
    PhaseBucket,
    RedFlag,
    SymptomLink,
    TopSymptom,
)
from medly.domains.health.analytics.records import as_aware, normalize_phase, usable_logs

logger = logging.getLogger(__name__)

TOP_SYMPTOMS_LIMIT = 10
TOP_TAGS_LIMIT = 10
TOP_MEDS_LIMIT = 10
LINKS_LIMIT = 15
PHASE_TOP_SYMPTOMS = 3
MAX_BULLETS = 5

RED_FLAG_KEYWORDS = (
    "blood", "bleeding", "hemorrhage",
    "fainting", "faint", "loss of consciousness",
    "fever", "high temperature",
    "unexplained weight loss", "rapid weight loss",
    "severe pain", "excruciating",
    "can't breathe", "difficulty breathing",
    "chest pain", "heart palpitations",
)

_EMAIL_HINT = re.compile(r"@")
_PHONE_HINT = re.compile(r"\d{3}[-.\s]?\d{3}[-.\s]?\d{4}")
_ADDRESS_HINT = re.compile(r"\d+\s+(?:street|st|avenue|ave|road|rd|drive|dr)", re.IGNORECASE)
_NAME_HINT = re.compile(
    r"(?:dr\.|doctor|my\s+(?:husband|wife|partner))\s+[a-z]+", re.IGNORECASE
)


def _ranked(counter: dict[str, int], limit: int) -> list[tuple[str, int]]:
    return sorted(counter.items(), key=lambda kv: kv[1], reverse=True)[:limit]


def compute_window_days(logs: list[Log]) -> int:
    """Whole days spanned by the logs, rounded up and never below 1."""
    stamps = [as_aware(log.created_at) for log in logs]
    span_days = (max(stamps) - min(stamps)).total_seconds() / 86400
    return max(1, math.ceil(span_days))


def detect_pii_risk(notes: list[str]) -> str:
    """Heuristic PII risk over the concatenated notes; does not extract anything."""
    if not notes:
        return "low"
    text = " ".join(notes).lower()
    score = 0
    if _EMAIL_HINT.search(text):
        score += 2
    if _PHONE_HINT.search(text):
        score += 2
    if _ADDRESS_HINT.search(text):
        score += 2
    if _NAME_HINT.search(text):
        score += 1

    if score >= 4:
        return "high"
    if score >= 2:
        return "medium"
    return "low"


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

def _top_symptoms(logs: list[Log], window_days: int) -> list[TopSymptom]:
    stats: dict[str, list[float]] = {}  # name -> [count, severity, duration, duration_count]
    for log in logs:
        entry = stats.setdefault(log.symptom_type, [0, 0, 0, 0])
        entry[0] += 1
        entry[1] += log.severity
        if log.duration_mins:
            entry[2] += log.duration_mins
            entry[3] += 1

    weeks = window_days / 7
    symptoms = [
        TopSymptom(
            name=name,
            freq=int(count),
            freq_per_week=count / weeks if weeks > 0 else 0,
            avg_severity=severity / count if count else 0,
            avg_duration_mins=duration / duration_count if duration_count else None,
        )
        for name, (count, severity, duration, duration_count) in stats.items()
    ]
    symptoms.sort(key=lambda s: s.freq, reverse=True)
    return symptoms[:TOP_SYMPTOMS_LIMIT]


def _cycle_association(logs: list[Log]) -> CycleAssociation:
    counts = {phase: 0 for phase in CYCLE_PHASES}
    severity_totals = {phase: 0 for phase in CYCLE_PHASES}
    symptom_counts: dict[str, Counter[str]] = {phase: Counter() for phase in CYCLE_PHASES}

    tracked = 0
    for log in logs:
        phase = normalize_phase(log.cycle_phase)
        if phase != "unknown":
            tracked += 1
        counts[phase] += 1
        severity_totals[phase] += log.severity
        symptom_counts[phase][log.symptom_type] += 1

    by_phase = {
        phase: PhaseBucket(
            count=counts[phase],
            avg_severity=severity_totals[phase] / counts[phase] if counts[phase] else 0,
            top_symptoms=[name for name, _ in _ranked(symptom_counts[phase], PHASE_TOP_SYMPTOMS)],
        )
        for phase in CYCLE_PHASES
    }

    # Simple per-phase average; compare compute_log_statistics, which weights
    # across symptoms instead.
    highest = None
    best = -1.0
    for phase, bucket in by_phase.items():
        if phase != "unknown" and bucket.count > 0 and bucket.avg_severity > best:
            best = bucket.avg_severity
            highest = phase

    return CycleAssociation(
        tracked_ratio=tracked / len(logs) if logs else 0,
        by_phase=by_phase,
        highest_severity_phase=highest,
    )


def _co_occurrence(
    logs: list[Log],
    key: str,
    values: Callable[[Log], Iterable[str]],
) -> tuple[list[CountItem], list[SymptomLink]]:
    """Top labels and label x symptom links for tags or triggers."""
    label_counts: dict[str, int] = {}
    links: dict[str, dict[str, list[int]]] = {}
    for log in logs:
        for label in values(log):
            label_counts[label] = label_counts.get(label, 0) + 1
            pair = links.setdefault(label, {}).setdefault(log.symptom_type, [0, 0])
            pair[0] += 1
            pair[1] += log.severity

    top = [CountItem(key=key, label=label, count=count) for label, count in _ranked(label_counts, TOP_TAGS_LIMIT)]
    link_items = [
        SymptomLink(
            key=key,
            label=label,
            symptom=symptom,
            count=count,
            avg_severity=total / count if count else 0,
        )
        for label, symptoms in links.items()
        for symptom, (count, total) in symptoms.items()
    ]
    link_items.sort(key=lambda link: link.count, reverse=True)
    return top, link_items[:LINKS_LIMIT]


def _top_meds(logs: list[Log]) -> list[CountItem]:
    counts: dict[str, int] = {}
    for log in logs:
        for med in log.meds:
            counts[med] = counts.get(med, 0) + 1
    return [CountItem(key="med", label=med, count=count) for med, count in _ranked(counts, TOP_MEDS_LIMIT)]


def _red_flags(logs: list[Log]) -> list[RedFlag]:
    """Keyword hits in notes and tags; the first source to hit names the evidence."""
    flags: dict[str, RedFlag] = {}

    def hit(keyword: str, evidence: str) -> None:
        flag = flags.get(keyword)
        if flag is None:
            flag = flags[keyword] = RedFlag(flag=keyword, evidence=evidence, count=0)
        flag.count += 1

    for log in logs:
        if log.notes:
            notes_lower = log.notes.lower()
            for keyword in RED_FLAG_KEYWORDS:
                if keyword in notes_lower:
                    hit(keyword, "notes_match")
        for tag in log.tags:
            tag_lower = tag.lower()
            for keyword in RED_FLAG_KEYWORDS:
                if keyword in tag_lower:
                    hit(keyword, "tag_match")

    return sorted(flags.values(), key=lambda f: f.count, reverse=True)


def _notes_quality(logs: list[Log]) -> NotesQuality:
    notes = [log.notes for log in logs if log.notes and log.notes.strip()]
    return NotesQuality(
        pct_present=len(notes) / len(logs) * 100 if logs else 0,
        pii_risk=detect_pii_risk(notes),
    )


def _narrative_bullets(card: PatternCard) -> list[str]:
    bullets: list[str] = []

    if card.top_symptoms:
        top = card.top_symptoms[0]
        bullets.append(
            f"Most frequent symptom: {top.name} ({top.freq} times, "
            f"avg severity {top.avg_severity:.1f}/10)"
        )

    cycle = card.cycle_association
    if cycle.tracked_ratio > 0.5 and cycle.highest_severity_phase:
        bucket = cycle.by_phase[cycle.highest_severity_phase]
        bullets.append(
            f"Highest average severity during {cycle.highest_severity_phase} phase "
            f"({bucket.avg_severity:.1f}/10)"
        )

    if card.top_tags:
        tag = card.top_tags[0]
        bullets.append(
            f'Most common context tag: "{tag.label}" (appears with {tag.count} log entries)'
        )

    if card.top_triggers:
        trigger = card.top_triggers[0]
        bullets.append(
            f'Most common trigger: "{trigger.label}" (appears {trigger.count} times)'
        )

    if card.top_meds:
        bullets.append("Medications logged: " + ", ".join(m.label for m in card.top_meds))

    return bullets[:MAX_BULLETS]


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

def build_pattern_card(logs: Iterable[Log], time_window_days: int | None = None) -> PatternCard:
    """Aggregate a log collection into a PatternCard.

    Args:
        logs: The logs to summarize (any order; never mutated).
        time_window_days: Explicit window length. When falsy, the window is
            the span between the oldest and newest log.
    """
    logs = usable_logs(logs)
    if not logs:
        return PatternCard.empty()

    window_days = time_window_days or compute_window_days(logs)

    top_tags, tag_links = _co_occurrence(logs, "tag", lambda log: log.tags)
    top_triggers, trigger_links = _co_occurrence(logs, "trigger", lambda log: log.triggers)

    card = PatternCard(
        time_window_days=window_days,
        top_symptoms=_top_symptoms(logs, window_days),
        cycle_association=_cycle_association(logs),
        top_tags=top_tags,
        tag_symptom_links=tag_links,
        top_triggers=top_triggers,
        trigger_symptom_links=trigger_links,
        top_meds=_top_meds(logs),
        red_flags_detected=_red_flags(logs),
        notes_quality=_notes_quality(logs),
    )
    card.narrative_bullets = _narrative_bullets(card)

    logger.debug(
        "Built pattern card: %d logs, %d symptoms, %d red flags",
        len(logs), len(card.top_symptoms), len(card.red_flags_detected),
    )
    return card
