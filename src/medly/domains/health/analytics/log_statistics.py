"""Short-window log statistics for review and comparison answers.

Windows here are measured in *logged days*: "the last 3 days" means the
three most recent calendar days that have at least one entry, so a quiet
week does not shrink a review to nothing.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable

from medly.core.storage.models import Log
from medly.domains.health.analytics.records import local_day, normalize_phase, usable_logs


def _round1(value: float) -> float:
    """Round half up to one decimal."""
    return math.floor(value * 10 + 0.5) / 10


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class PhaseStats:
    count: int
    avg_severity: float


@dataclass
class SymptomStats:
    symptom_type: str
    count: int
    avg_severity: float           # rounded to 1 decimal
    max_severity: int
    min_severity: int
    phases: dict[str, PhaseStats] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "symptom_type": self.symptom_type,
            "count": self.count,
            "avg_severity": self.avg_severity,
            "max_severity": self.max_severity,
            "min_severity": self.min_severity,
            "phases": {
                phase: {"count": p.count, "avg_severity": p.avg_severity}
                for phase, p in self.phases.items()
            },
        }


@dataclass
class LogStatistics:
    """Aggregate statistics over a log window. Empty input gives the zero value."""

    symptom_stats: list[SymptomStats] = field(default_factory=list)
    max_severity_overall: int = 0
    max_severity_symptom: str = ""
    phase_with_max_severity: str | None = None
    total_days: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.symptom_stats

    @property
    def total_logs(self) -> int:
        return sum(s.count for s in self.symptom_stats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "symptom_stats": [s.to_dict() for s in self.symptom_stats],
            "max_severity_overall": self.max_severity_overall,
            "max_severity_symptom": self.max_severity_symptom,
            "phase_with_max_severity": self.phase_with_max_severity,
            "total_days": self.total_days,
        }


# ---------------------------------------------------------------------------
# Logged-day windows
# ---------------------------------------------------------------------------

def get_unique_dates(logs: Iterable[Log]) -> list[date]:
    """Distinct local calendar dates that have entries, most recent first."""
    return sorted({local_day(log.created_at) for log in logs}, reverse=True)


def get_logs_from_last_n_days(logs: list[Log], n: int) -> list[Log]:
    """All logs falling on the ``n`` most recent logged dates, in input order."""
    if not logs or n <= 0:
        return []
    target = set(get_unique_dates(logs)[:n])
    return [log for log in logs if local_day(log.created_at) in target]


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

def compute_log_statistics(logs: Iterable[Log]) -> LogStatistics:
    """Per-symptom and per-phase statistics over a log window.

    ``phase_with_max_severity`` is the non-unknown phase with the highest
    average severity weighted across every symptom logged in that phase.
    """
    logs = usable_logs(logs)
    if not logs:
        return LogStatistics()

    # symptom -> (severities, phase -> severities); dicts keep first-seen order
    groups: dict[str, tuple[list[int], dict[str, list[int]]]] = {}
    for log in logs:
        severities, phases = groups.setdefault(log.symptom_type, ([], {}))
        severities.append(log.severity)
        phases.setdefault(normalize_phase(log.cycle_phase), []).append(log.severity)

    symptom_stats: list[SymptomStats] = []
    max_severity_overall = 0
    max_severity_symptom = ""
    phase_totals: dict[str, list[float]] = {}  # phase -> [weighted total, count]

    for symptom, (severities, phases) in groups.items():
        count = len(severities)
        phase_stats: dict[str, PhaseStats] = {}
        for phase, phase_severities in phases.items():
            phase_count = len(phase_severities)
            phase_avg = sum(phase_severities) / phase_count
            phase_stats[phase] = PhaseStats(count=phase_count, avg_severity=phase_avg)
            totals = phase_totals.setdefault(phase, [0.0, 0])
            totals[0] += phase_avg * phase_count
            totals[1] += phase_count

        symptom_max = max(severities)
        symptom_stats.append(
            SymptomStats(
                symptom_type=symptom,
                count=count,
                avg_severity=_round1(sum(severities) / count),
                max_severity=symptom_max,
                min_severity=min(severities),
                phases=phase_stats,
            )
        )

        # Strict comparison: the first symptom to reach the max keeps it.
        if symptom_max > max_severity_overall:
            max_severity_overall = symptom_max
            max_severity_symptom = symptom

    phase_with_max_severity = None
    best_phase_avg = 0.0
    for phase, (total, count) in phase_totals.items():
        if phase == "unknown":
            continue
        avg = total / count
        if avg > best_phase_avg:
            best_phase_avg = avg
            phase_with_max_severity = phase

    symptom_stats.sort(key=lambda s: s.count, reverse=True)

    return LogStatistics(
        symptom_stats=symptom_stats,
        max_severity_overall=max_severity_overall,
        max_severity_symptom=max_severity_symptom,
        phase_with_max_severity=phase_with_max_severity,
        total_days=len(get_unique_dates(logs)),
    )
