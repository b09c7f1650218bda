"""Pattern card result types.

A pattern card is recomputed per analysis window and never persisted.
``to_dict`` produces the exact shape rendered into prompts and returned by
the ``symptom_pattern_card`` tool; optional fields that are unset are
omitted rather than serialized as null.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from medly.core.storage.models import CYCLE_PHASES


@dataclass
class TopSymptom:
    name: str
    freq: int
    freq_per_week: float
    avg_severity: float
    avg_duration_mins: float | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "freq": self.freq,
            "freq_per_week": self.freq_per_week,
            "avg_severity": self.avg_severity,
        }
        if self.avg_duration_mins is not None:
            data["avg_duration_mins"] = self.avg_duration_mins
        return data


@dataclass
class PhaseBucket:
    count: int = 0
    avg_severity: float = 0.0
    top_symptoms: list[str] = field(default_factory=list)


@dataclass
class CycleAssociation:
    tracked_ratio: float = 0.0
    by_phase: dict[str, PhaseBucket] = field(
        default_factory=lambda: {phase: PhaseBucket() for phase in CYCLE_PHASES}
    )
    highest_severity_phase: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "tracked_ratio": self.tracked_ratio,
            "by_phase": {
                phase: {
                    "count": bucket.count,
                    "avg_severity": bucket.avg_severity,
                    "top_symptoms": list(bucket.top_symptoms),
                }
                for phase, bucket in self.by_phase.items()
            },
        }
        if self.highest_severity_phase is not None:
            data["highest_severity_phase"] = self.highest_severity_phase
        return data


@dataclass
class CountItem:
    """A ``(label, count)`` pair; ``key`` names the label in the serialized form."""

    key: str
    label: str
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {self.key: self.label, "count": self.count}


@dataclass
class SymptomLink:
    """Co-occurrence of a tag (or trigger) with a symptom."""

    key: str
    label: str
    symptom: str
    count: int
    avg_severity: float

    def to_dict(self) -> dict[str, Any]:
        return {
            self.key: self.label,
            "symptom": self.symptom,
            "count": self.count,
            "avg_severity": self.avg_severity,
        }


@dataclass
class RedFlag:
    flag: str
    evidence: str  # 'notes_match' | 'tag_match'
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"flag": self.flag, "evidence": self.evidence, "count": self.count}


@dataclass
class NotesQuality:
    pct_present: float = 0.0
    pii_risk: str = "low"  # 'low' | 'medium' | 'high'


@dataclass
class PatternCard:
    time_window_days: int = 0
    top_symptoms: list[TopSymptom] = field(default_factory=list)
    cycle_association: CycleAssociation = field(default_factory=CycleAssociation)
    top_tags: list[CountItem] = field(default_factory=list)
    tag_symptom_links: list[SymptomLink] = field(default_factory=list)
    top_triggers: list[CountItem] = field(default_factory=list)
    trigger_symptom_links: list[SymptomLink] = field(default_factory=list)
    top_meds: list[CountItem] = field(default_factory=list)
    red_flags_detected: list[RedFlag] = field(default_factory=list)
    notes_quality: NotesQuality = field(default_factory=NotesQuality)
    narrative_bullets: list[str] = field(default_factory=list)

    @classmethod
    def empty(cls) -> PatternCard:
        """The canonical zero-value card for an empty log set."""
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.top_symptoms

    def to_dict(self) -> dict[str, Any]:
        return {
            "time_window_days": self.time_window_days,
            "top_symptoms": [s.to_dict() for s in self.top_symptoms],
            "cycle_association": self.cycle_association.to_dict(),
            "context_tags": {
                "top_tags": [t.to_dict() for t in self.top_tags],
                "tag_symptom_links": [link.to_dict() for link in self.tag_symptom_links],
            },
            "triggers": {
                "top_triggers": [t.to_dict() for t in self.top_triggers],
                "trigger_symptom_links": [link.to_dict() for link in self.trigger_symptom_links],
            },
            "meds": {"top_meds": [m.to_dict() for m in self.top_meds]},
            "red_flags_detected": [f.to_dict() for f in self.red_flags_detected],
            "notes_quality": {
                "pct_present": self.notes_quality.pct_present,
                "pii_risk": self.notes_quality.pii_risk,
            },
            "narrative_bullets": list(self.narrative_bullets),
        }
