"""Defensive normalization of log records before aggregation.

One malformed record must never abort a whole-window analysis, so the
aggregators route their input through ``usable_logs``: severities are
clamped into range, unknown phases collapse to ``unknown``, and records
with no symptom type or timestamp are dropped with a warning.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import date, datetime
from typing import Iterable

from medly.core.storage.models import CYCLE_PHASES, SEVERITY_MAX, SEVERITY_MIN, Log

logger = logging.getLogger(__name__)


def clamp_severity(value: object) -> int:
    try:
        severity = int(round(float(value)))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return SEVERITY_MIN
    return max(SEVERITY_MIN, min(SEVERITY_MAX, severity))


def normalize_phase(phase: str | None) -> str:
    """Map a raw phase tag onto one of the five canonical buckets."""
    if not phase:
        return "unknown"
    phase = phase.strip().lower()
    return phase if phase in CYCLE_PHASES else "unknown"


def as_aware(moment: datetime) -> datetime:
    """Attach the local zone to a naive timestamp so mixed inputs compare."""
    if moment.tzinfo is None:
        return moment.astimezone()
    return moment


def local_day(moment: datetime) -> date:
    """Calendar day of a timestamp in local time."""
    if moment.tzinfo is not None:
        moment = moment.astimezone()
    return moment.date()


def usable_logs(logs: Iterable[Log]) -> list[Log]:
    """Return clean copies of the usable logs; inputs are never mutated."""
    cleaned: list[Log] = []
    for log in logs:
        if not log.symptom_type or not isinstance(log.created_at, datetime):
            logger.warning("Skipping malformed log %s", log.id)
            continue
        severity = clamp_severity(log.severity)
        if severity != log.severity:
            logger.warning("Clamped out-of-range severity on log %s", log.id)
            log = dataclasses.replace(log, severity=severity)
        if log.created_at.tzinfo is None:
            log = dataclasses.replace(log, created_at=as_aware(log.created_at))
        cleaned.append(log)
    return cleaned
