"""Tests for rule-based chat intent classification and parameter extraction."""

from __future__ import annotations

import pytest

from medly.domains.health.chat.intent import (
    INTENT_RULES,
    classify_intent,
    detect_add_detail_intent,
    detect_compare_period_intent,
    detect_review_recent_intent,
    detect_understand_patterns_intent,
    extract_comparison_period,
    extract_days_for_understand_patterns,
    extract_days_from_review_request,
)


class TestClassifyIntent:
    @pytest.mark.parametrize("message,expected", [
        ("Understand my symptom patterns", "understand_patterns"),
        ("What do these patterns mean?", "understand_patterns"),
        ("review my last 7 days", "review_recent"),
        ("Can you summarize my recent symptoms?", "review_recent"),
        ("What patterns do you see?", "review_recent"),
        ("How was I in the last 48 hours", "review_recent"),
        ("compare to full history", "compare_period"),
        ("How does this compare to last month?", "compare_period"),
        ("Add more detail to a specific symptom", "add_detail"),
        ("Tell me more about a symptom", "add_detail"),
        ("Why do I get cramps before my period?", "general"),
        ("hello", "general"),
    ])
    def test_examples(self, message, expected):
        assert classify_intent(message) == expected

    def test_button_label_also_matches_review_but_understand_wins(self):
        label = "Understand my symptom patterns and review my data"
        assert detect_review_recent_intent(label)
        assert classify_intent(label) == "understand_patterns"

    def test_rule_order(self):
        assert [intent for intent, _ in INTENT_RULES] == [
            "understand_patterns", "review_recent", "compare_period", "add_detail",
        ]

    def test_case_insensitive(self):
        assert classify_intent("REVIEW RECENT LOGS") == "review_recent"


class TestDetectors:
    def test_each_detector_independently(self):
        assert detect_understand_patterns_intent("explain these patterns")
        assert detect_review_recent_intent("show me my recent logs")
        assert detect_compare_period_intent("compare to 30 days")
        assert detect_add_detail_intent("more information about a symptom")

    def test_negative(self):
        assert not detect_compare_period_intent("my cramps are bad")
        assert not detect_add_detail_intent("review my last 3 days")


class TestExtraction:
    @pytest.mark.parametrize("message,expected", [
        ("review my last 7 days", 7),
        ("review my last 1 day", 1),
        ("review my data", 3),
    ])
    def test_review_days(self, message, expected):
        assert extract_days_from_review_request(message) == expected

    @pytest.mark.parametrize("message,expected", [
        ("understand patterns over 10 logged days", 10),
        ("patterns across 14 logged day", 14),
        ("understand my symptom patterns", 7),
    ])
    def test_understand_days(self, message, expected):
        assert extract_days_for_understand_patterns(message) == expected

    @pytest.mark.parametrize("message,expected", [
        ("compare to full history", "full"),
        ("compare to my entire history", "full"),
        ("compare against all history", "full"),
        ("compare to 30 days", 30),
        ("compare this to a longer time period", 7),
    ])
    def test_comparison_period(self, message, expected):
        assert extract_comparison_period(message) == expected

    def test_extraction_independent_of_classification(self):
        message = "Why are my last 5 days so bad"
        assert extract_days_from_review_request(message) == 5
