"""PII redaction and emergency-phrase detection for free-text symptom notes.

Everything that leaves the device (prompts, log lines, persisted chat turns)
goes through ``redact_pii`` first. The detectors are plain regexes: they are
deliberately conservative and are advisory, not a guarantee.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable

from medly.core.storage.models import Log

# ---------------------------------------------------------------------------
# Detection patterns
# ---------------------------------------------------------------------------

_MONTHS = (
    "january|february|march|april|may|june|july|august|september|october|november|december"
)

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

PHONE_RE = re.compile(r"(?<!\d)(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}(?!\d)")

SSN_RE = re.compile(r"\b\d{3}[-.\s]?\d{2}[-.\s]?\d{4}\b")

MRN_RE = re.compile(r"\b(?:MRN|medical record)[:\s#]*\d{5,12}\b", re.IGNORECASE)

ADDRESS_RE = re.compile(
    r"\b\d{1,5}\s+[\w\s]{1,30}?"
    r"\b(?:street|st|avenue|ave|road|rd|boulevard|blvd|lane|ln|drive|dr|court|ct|way|place|pl|circle|cir)\b\.?"
    r"(?:\s*(?:apt|apartment|suite|ste|unit|#)\s*[\w-]+)?",
    re.IGNORECASE,
)

ZIP4_RE = re.compile(r"\b\d{5}-\d{4}\b")

DATE_RE = re.compile(
    r"\b(?:"
    r"\d{1,2}[-/]\d{1,2}[-/]\d{2,4}"
    r"|\d{4}[-/]\d{1,2}[-/]\d{1,2}"
    rf"|(?:{_MONTHS})\s+\d{{1,2}}(?:st|nd|rd|th)?(?:,?\s*\d{{4}})?"
    rf"|\d{{1,2}}(?:st|nd|rd|th)?\s+(?:of\s+)?(?:{_MONTHS})(?:,?\s*\d{{4}})?"
    r")\b",
    re.IGNORECASE,
)

# Prefix words are case-insensitive, the name itself must be capitalised. A
# name runs over every following capitalised word on the same line, and the
# relation branch only spans spaces or tabs, so "my doctor" output is stable.
_RELATIONS = (
    "husband|wife|partner|mother|father|mom|dad|son|daughter|brother|sister|friend|doctor"
)
_NAME = r"[A-Z][A-Za-z'-]*(?:[ \t]+[A-Z][A-Za-z'-]*)*"
NAMED_PERSON_RE = re.compile(
    rf"\b(?:(?P<dr>(?i:dr)\.?)\s+|(?i:my)[ \t]+(?P<rel>(?i:{_RELATIONS}))[ \t]+){_NAME}"
)

FACILITY_RE = re.compile(
    r"\b(?P<prep>(?i:at|from|to))\s+(?:(?i:the)\s+)?"
    r"[A-Z][a-zA-Z]*(?:\s+[A-Z][a-zA-Z]*)*\s+"
    r"(?i:hospital|clinic|medical center|health center|healthcare)\b"
)

EMERGENCY_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"chest\s*pain",
        r"can'?t\s*breathe",
        r"difficulty\s*breathing",
        r"severe\s*bleeding",
        r"heavy\s*bleeding",
        r"suicid",
        r"self[- ]?harm",
        r"unconscious",
        r"seizure",
        r"stroke",
        r"heart\s*attack",
        r"overdose",
        r"anaphyla",
        r"severe\s*allergic",
        r"can'?t\s*stop\s*bleeding",
        r"losing\s*consciousness",
        r"severe\s*abdominal\s*pain",
        r"ectopic",
        r"miscarriage",
    )
]

_GREETINGS = (
    "hello", "hi", "hey", "good morning", "good afternoon", "good evening",
    "thanks", "thank you", "bye", "goodbye",
)

_MEDICAL_KEYWORDS = (
    "symptom", "pain", "ache", "discomfort", "bleeding", "cramp", "cycle", "period",
    "menstrual", "pelvic", "abdominal", "nausea", "dizziness", "fever", "fatigue", "mood",
    "depression", "anxiety", "doctor", "physician", "medical", "health", "diagnosis",
    "condition", "treatment", "medication", "log", "track", "pattern", "severity",
    "intensity", "phase", "ovulation", "luteal", "follicular", "discharge", "infection",
    "uti", "yeast", "bacterial", "endometriosis", "pcos", "pms", "premenstrual",
    "irregular", "heavy", "spotting", "bloating", "headache", "migraine", "back pain",
    "breast", "tenderness", "sleep", "insomnia", "digestive", "ibs", "review", "compare",
)


# ---------------------------------------------------------------------------
# Redaction
# ---------------------------------------------------------------------------

def redact_pii(text: str | None, *, now: datetime | None = None) -> str | None:
    """Replace PII in ``text`` with fixed placeholder tokens.

    Dates are converted to coarse relative-time buckets rather than removed,
    and are substituted before the address / ZIP patterns run so numeric date
    fragments cannot be mistaken for house numbers. Redacting already-redacted
    text is a no-op.
    """
    if not text:
        return text

    sanitized = EMAIL_RE.sub("[EMAIL]", text)
    sanitized = PHONE_RE.sub("[PHONE]", sanitized)
    sanitized = SSN_RE.sub("[SSN]", sanitized)
    sanitized = MRN_RE.sub("[MRN]", sanitized)
    sanitized = DATE_RE.sub(lambda m: _relative_date(m.group(0), now), sanitized)
    sanitized = ADDRESS_RE.sub("[ADDRESS]", sanitized)
    sanitized = ZIP4_RE.sub("[ZIP]", sanitized)
    sanitized = NAMED_PERSON_RE.sub(_replace_named_person, sanitized)
    sanitized = FACILITY_RE.sub(lambda m: f"{m.group('prep')} [FACILITY]", sanitized)
    return sanitized


def _replace_named_person(match: re.Match[str]) -> str:
    if match.group("dr"):
        return "my doctor"
    return f"{match.group('rel').lower()} [NAME]"


def _relative_date(raw: str, now: datetime | None) -> str:
    parsed = parse_loose_date(raw, now=now)
    if parsed is None:
        return "[DATE]"
    return get_relative_time(parsed, now=now)


_NUMERIC_FORMATS = ("%m/%d/%Y", "%m-%d-%Y", "%m/%d/%y", "%m-%d-%y", "%Y-%m-%d", "%Y/%m/%d")


def parse_loose_date(raw: str, *, now: datetime | None = None) -> datetime | None:
    """Parse the date shapes matched by ``DATE_RE``; None when not a real date."""
    now = now or datetime.now()
    cleaned = re.sub(r"(\d)(st|nd|rd|th)\b", r"\1", raw.strip(), flags=re.IGNORECASE)
    cleaned = re.sub(r"\bof\s+", "", cleaned, flags=re.IGNORECASE)
    cleaned = " ".join(cleaned.replace(",", " ").split())

    for fmt in _NUMERIC_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt)
        except ValueError:
            continue

    for fmt in ("%B %d %Y", "%d %B %Y"):
        try:
            return datetime.strptime(cleaned, fmt)
        except ValueError:
            continue

    # No year given: assume the most recent occurrence of that day.
    reference = now.replace(tzinfo=None)
    for fmt in ("%B %d", "%d %B"):
        try:
            parsed = datetime.strptime(f"{cleaned} {now.year}", f"{fmt} %Y")
        except ValueError:
            continue
        if parsed > reference:
            try:
                parsed = parsed.replace(year=now.year - 1)
            except ValueError:
                return None
        return parsed
    return None


def get_relative_time(value: datetime | date, *, now: datetime | None = None) -> str:
    """Convert an exact point in time into a coarse relative bucket."""
    now = now or datetime.now(value.tzinfo if isinstance(value, datetime) else None)
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if (value.tzinfo is None) != (now.tzinfo is None):
        value = value.replace(tzinfo=now.tzinfo)

    diff_days = (now - value).days  # floor division of the timedelta

    if diff_days < 0:
        return "upcoming"
    if diff_days == 0:
        return "today"
    if diff_days == 1:
        return "yesterday"
    if diff_days < 7:
        return f"~{diff_days} days ago"
    if diff_days < 14:
        return "~1 week ago"
    if diff_days < 30:
        return f"~{diff_days // 7} weeks ago"
    if diff_days < 60:
        return "~1 month ago"
    if diff_days < 365:
        return f"~{diff_days // 30} months ago"
    return f"~{diff_days // 365} year(s) ago"


def format_duration(mins: int | float | None) -> str | None:
    """Render a duration in minutes as a short human string."""
    if not mins:
        return None
    mins = int(mins)
    if mins < 60:
        return f"{mins} minutes"
    if mins < 1440:
        hours = mins // 60
        return f"{hours} hour{'s' if hours > 1 else ''}"
    days = mins // 1440
    return f"{days} day{'s' if days > 1 else ''}"


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

def detect_emergency_symptoms(text: str) -> bool:
    """True when the text mentions any danger phrase (no redaction performed)."""
    if not text:
        return False
    return any(pattern.search(text) for pattern in EMERGENCY_PATTERNS)


@dataclass
class PIIValidation:
    """Advisory pre-send check result."""

    safe: bool
    warnings: list[str] = field(default_factory=list)


def validate_no_obvious_pii(text: str) -> PIIValidation:
    """Re-run the high-signal detectors before sending text anywhere."""
    warnings: list[str] = []
    if not text:
        return PIIValidation(safe=True)

    if EMAIL_RE.search(text):
        warnings.append("Text may contain an email address")
    if PHONE_RE.search(text):
        warnings.append("Text may contain a phone number")
    if SSN_RE.search(text):
        warnings.append("Text may contain a Social Security Number")
    if ADDRESS_RE.search(text):
        warnings.append("Text may contain an address")

    return PIIValidation(safe=not warnings, warnings=warnings)


def is_medical_query(message: str) -> bool:
    """Cheap gate deciding whether the pattern/retrieval pipeline should run."""
    lower = message.lower().strip()
    if any(lower == g or lower.startswith(g + " ") for g in _GREETINGS):
        return False
    return any(keyword in lower for keyword in _MEDICAL_KEYWORDS)


# ---------------------------------------------------------------------------
# Sanitized projections
# ---------------------------------------------------------------------------

@dataclass
class SanitizedLogData:
    """Read-only, de-identified projection of a Log."""

    symptom_type: str
    severity: int
    relative_time: str
    duration: str | None = None
    tags: list[str] = field(default_factory=list)
    cycle_phase: str | None = None
    triggers: list[str] = field(default_factory=list)
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v not in (None, [])}


@dataclass
class SanitizedSymptom:
    type: str
    severity: int
    relative_time: str
    duration: str | None = None
    tags: list[str] = field(default_factory=list)
    cycle_phase: str | None = None


@dataclass
class SymptomContext:
    recent_symptoms: list[SanitizedSymptom]
    time_range: str
    primary_concerns: list[str]


def sanitize_logs(logs: Iterable[Log], *, now: datetime | None = None) -> list[SanitizedLogData]:
    """Project logs into their de-identified form (notes redacted)."""
    return [
        SanitizedLogData(
            symptom_type=log.symptom_type,
            severity=log.severity,
            relative_time=get_relative_time(log.created_at, now=now),
            duration=format_duration(log.duration_mins),
            tags=list(log.tags),
            cycle_phase=log.cycle_phase,
            triggers=list(log.triggers),
            notes=redact_pii(log.notes, now=now) or None,
        )
        for log in logs
    ]


def build_symptom_context(logs: list[Log], *, now: datetime | None = None) -> SymptomContext:
    """Summarise newest-first logs into the compact context used by report endpoints."""
    recent = [
        SanitizedSymptom(
            type=log.symptom_type,
            severity=log.severity,
            relative_time=get_relative_time(log.created_at, now=now),
            duration=format_duration(log.duration_mins),
            tags=list(log.tags),
            cycle_phase=log.cycle_phase,
        )
        for log in logs
    ]

    if logs:
        time_range = (
            f"{get_relative_time(logs[-1].created_at, now=now)} to "
            f"{get_relative_time(logs[0].created_at, now=now)}"
        )
    else:
        time_range = "no data"

    counts: dict[str, list[int]] = {}
    for log in logs:
        entry = counts.setdefault(log.symptom_type, [0, 0])
        entry[0] += 1
        entry[1] = max(entry[1], log.severity)

    ranked = sorted(counts.items(), key=lambda kv: kv[1][0] * 2 + kv[1][1], reverse=True)
    return SymptomContext(
        recent_symptoms=recent,
        time_range=time_range,
        primary_concerns=[name for name, _ in ranked[:3]],
    )
