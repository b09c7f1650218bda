"""Privacy policy for controlling how much per-log detail reaches the generator.

The generator should generally operate on:
- the aggregate pattern card and pre-computed statistics
- retrieved reference evidence

Individual log entries are only rendered when the privacy mode allows it,
and notes only in ``explicit`` mode (always redacted first).
"""

from __future__ import annotations

from typing import Any, Literal

PrivacyMode = Literal["strict", "standard", "explicit"]

PRIVACY_MODES: tuple[str, ...] = ("strict", "standard", "explicit")


def _round_floats(obj: Any, ndigits: int = 2) -> Any:
    if isinstance(obj, float):
        return round(obj, ndigits)
    if isinstance(obj, dict):
        return {k: _round_floats(v, ndigits=ndigits) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_round_floats(v, ndigits=ndigits) for v in obj]
    return obj


def normalize_privacy_mode(value: str | None, default: PrivacyMode = "standard") -> PrivacyMode:
    """Return a valid privacy mode, falling back to ``default``."""
    if value and value.lower() in PRIVACY_MODES:
        return value.lower()  # type: ignore[return-value]
    return default


def include_log_entries(privacy_mode: PrivacyMode) -> bool:
    return privacy_mode != "strict"


def include_notes(privacy_mode: PrivacyMode) -> bool:
    return privacy_mode == "explicit"


def build_llm_data_context(
    *,
    pattern_card: dict[str, Any] | None,
    statistics: dict[str, Any] | None,
    log_entries: list[dict[str, Any]] | None,
    privacy_mode: PrivacyMode,
) -> dict[str, Any]:
    """Build the minimized data context that will be rendered into the prompt.

    ``log_entries`` must already be sanitized projections; this function only
    decides which of them (and which of their fields) survive.
    """
    base: dict[str, Any] = {
        "pattern_card": _round_floats(pattern_card) if pattern_card else None,
        "statistics": _round_floats(statistics) if statistics else None,
    }

    if not include_log_entries(privacy_mode) or not log_entries:
        base["log_entries"] = []
        return base

    if include_notes(privacy_mode):
        base["log_entries"] = [dict(entry) for entry in log_entries]
    else:
        base["log_entries"] = [
            {k: v for k, v in entry.items() if k != "notes"} for entry in log_entries
        ]
    return base
