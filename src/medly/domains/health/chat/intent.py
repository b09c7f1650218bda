"""Rule-based chat intent classification.

Classification is an ordered list of ``(intent, patterns)`` rules; the first
rule with any matching pattern wins. ``understand_patterns`` sits ahead of
``review_recent`` because the "Understand my symptom patterns" button label
also satisfies the broader review phrasing. Parameter extraction is
independent of which rule matched.
"""

from __future__ import annotations

import re
from typing import Literal

ChatIntent = Literal[
    "review_recent", "understand_patterns", "compare_period", "add_detail", "general"
]

INTENTS: tuple[str, ...] = (
    "review_recent", "understand_patterns", "compare_period", "add_detail", "general"
)

DEFAULT_REVIEW_DAYS = 3
DEFAULT_UNDERSTAND_DAYS = 7
DEFAULT_COMPARISON_DAYS = 7


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


UNDERSTAND_PATTERNS = _compile(
    r"understand\s+(my\s+)?symptom\s+patterns?",
    r"understand\s+what\s+(these\s+)?patterns?\s+may\s+suggest",
    r"what\s+do\s+(these\s+)?patterns?\s+mean",
    r"interpret\s+(these\s+)?patterns?",
    r"what\s+could\s+(these\s+)?patterns?\s+indicate",
    r"explain\s+(these\s+)?patterns?",
)

REVIEW_PATTERNS = _compile(
    r"review\s+(my\s+)?(last\s+)?(\d+\s+)?days?",
    r"review\s+recent\s+logs?",
    r"summary\s+of\s+my\s+symptoms?",
    r"what\s+patterns?\s+do\s+you\s+see",
    r"analyze\s+my\s+recent\s+symptoms?",
    r"show\s+me\s+my\s+recent\s+logs?",
    r"what\s+did\s+i\s+log\s+(recently|in\s+the\s+last)",
    r"summarize\s+my\s+(recent\s+)?(symptoms?|logs?)",
    r"review\s+(and\s+)?synthesize",
    r"synthesize\s+(my\s+)?(health\s+)?data",
    r"review\s+(my\s+)?(health\s+)?data",
    r"last\s+(\d+\s+)?(hours?|days?)",
    r"(\d+)\s+hours?",
)

COMPARE_PATTERNS = _compile(
    r"compare\s+(this\s+)?to\s+(a\s+)?(longer\s+)?(time\s+)?period",
    r"compare\s+(to\s+)?(\d+\s+)?days?",
    r"compare\s+(to\s+)?(full\s+)?history",
    r"how\s+does\s+this\s+compare\s+to",
    r"compare\s+to\s+(\d+\s+days|full\s+history)",
)

ADD_DETAIL_PATTERNS = _compile(
    r"add\s+more\s+detail\s+(to\s+)?(a\s+)?(specific\s+)?symptom",
    r"tell\s+me\s+more\s+about\s+(a\s+)?(specific\s+)?symptom",
    r"detail\s+(about|on)\s+(a\s+)?symptom",
    r"more\s+information\s+about\s+(a\s+)?symptom",
)

# Evaluated top to bottom; order is the precedence.
INTENT_RULES: tuple[tuple[str, tuple[re.Pattern[str], ...]], ...] = (
    ("understand_patterns", UNDERSTAND_PATTERNS),
    ("review_recent", REVIEW_PATTERNS),
    ("compare_period", COMPARE_PATTERNS),
    ("add_detail", ADD_DETAIL_PATTERNS),
)


def _matches(patterns: tuple[re.Pattern[str], ...], message: str) -> bool:
    text = message.strip()
    return any(p.search(text) for p in patterns)


def detect_understand_patterns_intent(message: str) -> bool:
    return _matches(UNDERSTAND_PATTERNS, message)


def detect_review_recent_intent(message: str) -> bool:
    return _matches(REVIEW_PATTERNS, message)


def detect_compare_period_intent(message: str) -> bool:
    return _matches(COMPARE_PATTERNS, message)


def detect_add_detail_intent(message: str) -> bool:
    return _matches(ADD_DETAIL_PATTERNS, message)


def classify_intent(message: str) -> ChatIntent:
    """Classify a chat message into one of the five intents."""
    for intent, patterns in INTENT_RULES:
        if _matches(patterns, message):
            return intent  # type: ignore[return-value]
    return "general"


# ---------------------------------------------------------------------------
# Parameter extraction
# ---------------------------------------------------------------------------

def extract_days_from_review_request(message: str) -> int:
    match = re.search(r"last\s+(\d+)\s+days?", message, re.IGNORECASE)
    return int(match.group(1)) if match else DEFAULT_REVIEW_DAYS


def extract_days_for_understand_patterns(message: str) -> int:
    match = re.search(r"(\d+)\s+logged?\s+days?", message, re.IGNORECASE)
    return int(match.group(1)) if match else DEFAULT_UNDERSTAND_DAYS


def extract_comparison_period(message: str) -> int | Literal["full"]:
    """``"full"`` for whole-history requests, else a day count (default 7)."""
    if re.search(r"(?:full|entire|all)\s+history", message, re.IGNORECASE):
        return "full"
    match = re.search(r"(\d+)\s+days?", message, re.IGNORECASE)
    return int(match.group(1)) if match else DEFAULT_COMPARISON_DAYS
