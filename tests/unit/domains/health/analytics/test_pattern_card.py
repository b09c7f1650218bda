"""Tests for the long-window pattern card builder."""

from __future__ import annotations

import dataclasses
from datetime import timedelta

import pytest

from conftest import NOW, make_log
from medly.domains.health.analytics.models import PatternCard
from medly.domains.health.analytics.pattern_card import (
    LINKS_LIMIT,
    TOP_SYMPTOMS_LIMIT,
    TOP_TAGS_LIMIT,
    build_pattern_card,
    compute_window_days,
    detect_pii_risk,
)


@pytest.fixture
def month_logs():
    """A month of entries with tags, triggers, meds and notes."""
    return [
        make_log("Cramps", 7, days_ago=0, id="1", cycle_phase="menstrual",
                 tags=["At work"], triggers=["Stress"], meds=["Ibuprofen"], duration_mins=120,
                 notes="Heavy bleeding today"),
        make_log("Cramps", 8, days_ago=1, id="2", cycle_phase="menstrual",
                 tags=["At work"], triggers=["Stress", "Caffeine"], meds=["Ibuprofen"],
                 duration_mins=60),
        make_log("Headache", 4, days_ago=6, id="3", cycle_phase="luteal",
                 tags=["Poor sleep"], triggers=["Caffeine"]),
        make_log("Cramps", 5, days_ago=13, id="4", cycle_phase="luteal", tags=["At work"]),
        make_log("Fatigue", 3, days_ago=28, id="5", notes="tired"),
    ]


class TestEmptyCard:
    def test_canonical_shape(self):
        assert build_pattern_card([]).to_dict() == {
            "time_window_days": 0,
            "top_symptoms": [],
            "cycle_association": {
                "tracked_ratio": 0.0,
                "by_phase": {
                    phase: {"count": 0, "avg_severity": 0.0, "top_symptoms": []}
                    for phase in ("menstrual", "follicular", "ovulation", "luteal", "unknown")
                },
            },
            "context_tags": {"top_tags": [], "tag_symptom_links": []},
            "triggers": {"top_triggers": [], "trigger_symptom_links": []},
            "meds": {"top_meds": []},
            "red_flags_detected": [],
            "notes_quality": {"pct_present": 0.0, "pii_risk": "low"},
            "narrative_bullets": [],
        }

    def test_empty_flag(self):
        assert build_pattern_card([]).is_empty
        assert build_pattern_card([]) == PatternCard.empty()


class TestWindow:
    def test_window_from_span(self, month_logs):
        assert build_pattern_card(month_logs).time_window_days == 28

    def test_partial_day_rounds_up(self):
        logs = [make_log("A", 1, id="a"), make_log("A", 1, id="b", days_ago=2.25)]
        assert compute_window_days(logs) == 3

    def test_single_log_floors_at_one(self):
        assert compute_window_days([make_log("A", 1)]) == 1

    def test_explicit_window(self, month_logs):
        card = build_pattern_card(month_logs, time_window_days=14)
        assert card.time_window_days == 14
        assert card.top_symptoms[0].freq_per_week == pytest.approx(3 / 2)


class TestSections:
    def test_top_symptoms(self, month_logs):
        card = build_pattern_card(month_logs)
        top = card.top_symptoms[0]
        assert top.name == "Cramps"
        assert top.freq == 3
        assert top.freq_per_week == pytest.approx(3 / 4)
        assert top.avg_severity == pytest.approx(20 / 3)
        assert top.avg_duration_mins == 90
        assert "avg_duration_mins" not in card.top_symptoms[1].to_dict()

    def test_cycle_association(self, month_logs):
        cycle = build_pattern_card(month_logs).cycle_association
        assert cycle.tracked_ratio == pytest.approx(4 / 5)
        assert cycle.by_phase["menstrual"].count == 2
        assert cycle.by_phase["menstrual"].avg_severity == 7.5
        assert cycle.by_phase["luteal"].top_symptoms == ["Headache", "Cramps"]
        assert cycle.by_phase["unknown"].count == 1
        assert cycle.highest_severity_phase == "menstrual"

    def test_simple_phase_average(self):
        # Simple per-phase mean: luteal (9 + 2 + 2 + 2) / 4 = 3.75 loses to follicular 5.
        logs = [make_log("Acne", 9, id="a", cycle_phase="luteal")]
        logs += [make_log("Bloating", 2, id=f"b{i}", cycle_phase="luteal") for i in range(3)]
        logs.append(make_log("Cramps", 5, id="c", cycle_phase="follicular"))
        assert build_pattern_card(logs).cycle_association.highest_severity_phase == "follicular"

    def test_tags_and_links(self, month_logs):
        card = build_pattern_card(month_logs)
        assert card.top_tags[0].label == "At work"
        assert card.top_tags[0].count == 3
        link = card.tag_symptom_links[0]
        assert (link.label, link.symptom, link.count) == ("At work", "Cramps", 3)
        assert link.avg_severity == pytest.approx(20 / 3)
        assert card.to_dict()["context_tags"]["top_tags"][0] == {"tag": "At work", "count": 3}

    def test_triggers(self, month_logs):
        card = build_pattern_card(month_logs)
        assert [(t.label, t.count) for t in card.top_triggers] == [("Stress", 2), ("Caffeine", 2)]
        assert card.to_dict()["triggers"]["top_triggers"][0] == {"trigger": "Stress", "count": 2}

    def test_meds(self, month_logs):
        meds = build_pattern_card(month_logs).to_dict()["meds"]["top_meds"]
        assert meds == [{"med": "Ibuprofen", "count": 2}]

    def test_red_flags(self, month_logs):
        flags = {f.flag: f for f in build_pattern_card(month_logs).red_flags_detected}
        assert flags["bleeding"].evidence == "notes_match"
        assert flags["bleeding"].count == 1

    def test_red_flag_from_tag(self):
        card = build_pattern_card([make_log("Dizziness", 6, tags=["Felt faint"])])
        (flag,) = card.red_flags_detected
        assert (flag.flag, flag.evidence) == ("faint", "tag_match")

    def test_notes_quality(self, month_logs):
        quality = build_pattern_card(month_logs).notes_quality
        assert quality.pct_present == pytest.approx(40.0)
        assert quality.pii_risk == "low"

    def test_narrative_bullets(self, month_logs):
        bullets = build_pattern_card(month_logs).narrative_bullets
        assert bullets == [
            "Most frequent symptom: Cramps (3 times, avg severity 6.7/10)",
            "Highest average severity during menstrual phase (7.5/10)",
            'Most common context tag: "At work" (appears with 3 log entries)',
            'Most common trigger: "Stress" (appears 2 times)',
            "Medications logged: Ibuprofen",
        ]

    def test_phase_bullet_needs_tracked_majority(self):
        logs = [make_log("A", 5, id="a", cycle_phase="luteal"), make_log("A", 5, id="b")]
        bullets = build_pattern_card(logs).narrative_bullets
        assert not any("phase" in b for b in bullets)


class TestCaps:
    def test_lists_sorted_and_capped(self):
        logs = []
        for i in range(16):
            for j in range(i + 1):
                logs.append(make_log(
                    f"Symptom{i}", 5, id=f"{i}-{j}", days_ago=j,
                    tags=[f"tag{i}"], triggers=[f"trigger{i}"], meds=[f"med{i}"],
                ))
        card = build_pattern_card(logs)

        assert len(card.top_symptoms) == TOP_SYMPTOMS_LIMIT
        freqs = [s.freq for s in card.top_symptoms]
        assert freqs == sorted(freqs, reverse=True)
        assert freqs[0] == 16

        assert len(card.top_tags) == TOP_TAGS_LIMIT
        counts = [t.count for t in card.top_tags]
        assert counts == sorted(counts, reverse=True)

        assert len(card.tag_symptom_links) == LINKS_LIMIT
        assert len(card.top_meds) == 10
        assert len(card.narrative_bullets) <= 5

    def test_input_not_mutated(self, month_logs):
        before = [log.to_dict() for log in month_logs]
        build_pattern_card(month_logs)
        assert [log.to_dict() for log in month_logs] == before


class TestPiiRisk:
    @pytest.mark.parametrize("notes,expected", [
        ([], "low"),
        (["just cramps"], "low"),
        (["saw dr. smith"], "low"),
        (["call 555-123-4567"], "medium"),
        (["email me@x.com", "call 555 123 4567"], "high"),
        (["my husband john called 555-123-4567"], "medium"),
    ])
    def test_scores(self, notes, expected):
        assert detect_pii_risk(notes) == expected

    def test_card_reports_risk(self):
        card = build_pattern_card([make_log("A", 2, notes="me@x.com, 555-123-4567")])
        assert card.notes_quality.pii_risk == "high"


def test_window_uses_timestamps_not_dates():
    logs = [make_log("A", 1, id="a", now=NOW), make_log("A", 1, id="b", now=NOW - timedelta(hours=30))]
    assert compute_window_days(logs) == 2


def test_naive_and_aware_timestamps_mix():
    aware = make_log("A", 3, id="aware")
    older = make_log("A", 5, id="naive", days_ago=2)
    naive = dataclasses.replace(older, created_at=older.created_at.replace(tzinfo=None))

    card = build_pattern_card([aware, naive])
    assert card.top_symptoms[0].freq == 2
    assert card.time_window_days >= 1
    assert compute_window_days([aware, naive]) >= 1
