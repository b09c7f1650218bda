"""Tests for logged-day windows and short-window log statistics."""

from __future__ import annotations

import dataclasses

from conftest import make_log
from medly.domains.health.analytics.log_statistics import (
    LogStatistics,
    _round1,
    compute_log_statistics,
    get_logs_from_last_n_days,
    get_unique_dates,
)
from medly.domains.health.analytics.records import clamp_severity, normalize_phase, usable_logs


class TestUniqueDates:
    def test_four_distinct_dates_descending(self, review_logs):
        dates = get_unique_dates(review_logs)
        assert len(dates) == 4
        assert dates == sorted(dates, reverse=True)

    def test_empty(self):
        assert get_unique_dates([]) == []


class TestLastNDays:
    def test_review_window_excludes_oldest_day(self, review_logs):
        window = get_logs_from_last_n_days(review_logs, 3)
        assert [log.id for log in window] == ["1", "2", "3", "4", "5"]

    def test_counts_logged_days_not_calendar_days(self):
        logs = [make_log("Headache", 5, days_ago=0, id="a"),
                make_log("Headache", 5, days_ago=10, id="b"),
                make_log("Headache", 5, days_ago=30, id="c")]
        assert [log.id for log in get_logs_from_last_n_days(logs, 2)] == ["a", "b"]

    def test_n_beyond_available_returns_all(self, review_logs):
        assert len(get_logs_from_last_n_days(review_logs, 30)) == 6

    def test_empty_and_zero(self, review_logs):
        assert get_logs_from_last_n_days([], 3) == []
        assert get_logs_from_last_n_days(review_logs, 0) == []


class TestComputeLogStatistics:
    def test_review_scenario(self, review_logs):
        stats = compute_log_statistics(get_logs_from_last_n_days(review_logs, 3))
        assert stats.total_days == 3
        assert len(stats.symptom_stats) == 3
        headache = stats.symptom_stats[0]
        assert headache.symptom_type == "Headache"
        assert headache.count == 3
        assert headache.avg_severity == 5.3
        assert (headache.min_severity, headache.max_severity) == (4, 7)
        assert stats.total_logs == 5

    def test_max_severity_symptom(self, review_logs):
        stats = compute_log_statistics(get_logs_from_last_n_days(review_logs, 3))
        assert stats.max_severity_overall == 8
        assert stats.max_severity_symptom == "Bleeding"

    def test_first_seen_wins_ties(self):
        stats = compute_log_statistics([
            make_log("Cramps", 7, id="a"), make_log("Nausea", 7, id="b"),
        ])
        assert stats.max_severity_symptom == "Cramps"

    def test_weighted_phase_average(self, review_logs):
        stats = compute_log_statistics(get_logs_from_last_n_days(review_logs, 3))
        # menstrual: (5 + 7 + 6 + 8) / 4 = 6.5 vs luteal: 4
        assert stats.phase_with_max_severity == "menstrual"
        headache = stats.symptom_stats[0]
        assert headache.phases["menstrual"].count == 2
        assert headache.phases["menstrual"].avg_severity == 6.0
        assert headache.phases["luteal"].avg_severity == 4.0

    def test_weighting_differs_from_simple_mean_of_means(self):
        # luteal: a single entry at 5 -> 5.0
        # follicular: Acne at 9 (1 entry) and Bloating at 2 (3 entries) -> 15/4 = 3.75
        # A mean of symptom means would pick follicular instead: (9 + 2) / 2 = 5.5.
        logs = [make_log("Cramps", 5, id="l0", cycle_phase="luteal")]
        logs.append(make_log("Acne", 9, id="f0", cycle_phase="follicular"))
        logs.extend(make_log("Bloating", 2, id=f"f{i}", cycle_phase="follicular") for i in range(1, 4))
        assert compute_log_statistics(logs).phase_with_max_severity == "luteal"

    def test_unknown_phase_never_wins(self):
        stats = compute_log_statistics([
            make_log("Headache", 9, id="a"),
            make_log("Headache", 2, id="b", cycle_phase="luteal"),
        ])
        assert stats.phase_with_max_severity == "luteal"
        assert "unknown" in stats.symptom_stats[0].phases

    def test_only_unknown_phase(self):
        assert compute_log_statistics([make_log("Headache", 5)]).phase_with_max_severity is None

    def test_sorted_by_count(self):
        logs = [make_log("Nausea", 3, id="n")] + [
            make_log("Fatigue", 4, id=f"f{i}", days_ago=i) for i in range(3)
        ]
        stats = compute_log_statistics(logs)
        assert [s.symptom_type for s in stats.symptom_stats] == ["Fatigue", "Nausea"]

    def test_empty_is_zero_value(self):
        stats = compute_log_statistics([])
        assert stats == LogStatistics()
        assert stats.is_empty
        assert stats.to_dict() == {
            "symptom_stats": [],
            "max_severity_overall": 0,
            "max_severity_symptom": "",
            "phase_with_max_severity": None,
            "total_days": 0,
        }

    def test_round_half_up(self):
        assert _round1(5.25) == 5.3
        assert _round1(16 / 3) == 5.3
        assert _round1(4.95) == 5.0


class TestRecords:
    def test_clamp_severity(self):
        assert clamp_severity(14) == 10
        assert clamp_severity(-2) == 0
        assert clamp_severity("7") == 7
        assert clamp_severity("bad") == 0

    def test_normalize_phase(self):
        assert normalize_phase(" Luteal ") == "luteal"
        assert normalize_phase("spring") == "unknown"
        assert normalize_phase(None) == "unknown"

    def test_usable_logs_clamps_without_mutating(self):
        bad = make_log("Cramps", 15, id="a")
        (clean,) = usable_logs([bad])
        assert clean.severity == 10
        assert bad.severity == 15

    def test_usable_logs_skips_missing_symptom(self):
        blank = dataclasses.replace(make_log("Cramps", 3, id="a"), symptom_type="")
        assert usable_logs([blank, make_log("Cramps", 3, id="b")])[0].id == "b"

    def test_usable_logs_attaches_zone_to_naive_timestamps(self):
        log = make_log("Cramps", 3, id="a")
        naive = dataclasses.replace(log, created_at=log.created_at.replace(tzinfo=None))
        (clean,) = usable_logs([naive])
        assert clean.created_at.tzinfo is not None
        assert naive.created_at.tzinfo is None

    def test_malformed_log_does_not_abort_statistics(self):
        blank = dataclasses.replace(make_log("Cramps", 3, id="a"), symptom_type="")
        stats = compute_log_statistics([blank, make_log("Nausea", 12, id="b")])
        assert stats.symptom_stats[0].max_severity == 10
        assert stats.total_logs == 1
