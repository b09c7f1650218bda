"""Tests for synonym expansion, document scoring and evidence retrieval."""

from __future__ import annotations

from conftest import make_log
from medly.core.storage.models import KBDocument
from medly.domains.health.analytics.pattern_card import build_pattern_card
from medly.domains.health.retrieval.evidence import (
    RetrievedChunk,
    build_enhanced_query,
    expand_query,
    extract_excerpt,
    has_sufficient_relevance,
    make_claim,
    retrieve_evidence,
    retrieve_kb_documents,
    score_document,
)
from medly.domains.health.retrieval.synonyms import SYNONYM_MAP



def _doc(id: str, title: str, text: str, tags: list[str]) -> KBDocument:
    return KBDocument(id=id, title=title, source="Test", url=f"https://example.org/{id}",
                      text=text, tags=tags)


CYCLE_DOC = _doc("cycle", "Menstrual Cycle Basics", "The cycle lasts about 28 days.", ["menstrual"])
SLEEP_DOC = _doc("sleep", "Sleep Hygiene", "Keep a regular bedtime.", ["sleep"])
HEADACHE_DOC = _doc(
    "headache", "Headache Relief",
    "A headache can follow poor sleep. Hydration helps. Rest helps. Caffeine matters. Extra.",
    ["headache", "migraine"],
)


class TestSynonyms:
    def test_keys_are_lower_case(self):
        assert all(key == key.lower() for key in SYNONYM_MAP)

    def test_period_and_menstrual_expand_both_ways(self):
        assert "menstrual" in SYNONYM_MAP["period"]
        assert "period" in SYNONYM_MAP["menstrual"]


class TestExpandQuery:
    def test_expands_and_strips_punctuation(self):
        assert expand_query("My period!") == [
            "my", "period", "menstrual", "menstruation", "menses", "cycle",
        ]

    def test_no_duplicates(self):
        terms = expand_query("period menstrual period")
        assert len(terms) == len(set(terms))

    def test_empty(self):
        assert expand_query("   ") == []


class TestScoring:
    def test_weighted_score(self):
        # title: menstrual x3 + cycle x3, tag: menstrual x2, body: cycle x1
        assert score_document(CYCLE_DOC, expand_query("period")) == 9

    def test_tag_overlap_either_direction(self):
        doc = _doc("t", "T", "", ["pelvic pain"])
        assert score_document(doc, ["pelvic"]) == 2
        assert score_document(doc, ["severe pelvic pain episode"]) == 2

    def test_synonym_retrieves_without_literal_word(self):
        chunks = retrieve_kb_documents("period", [SLEEP_DOC, CYCLE_DOC])
        assert [c.id for c in chunks] == ["cycle"]
        assert "period" not in CYCLE_DOC.text.lower()

    def test_zero_scores_dropped(self):
        assert retrieve_kb_documents("zzz", [SLEEP_DOC, CYCLE_DOC]) == []

    def test_sorted_and_truncated(self, kb_documents):
        chunks = retrieve_kb_documents("pain cramps pelvic", kb_documents, top_n=3)
        assert len(chunks) == 3
        scores = [c.relevance_score for c in chunks]
        assert scores == sorted(scores, reverse=True)
        assert all(score > 0 for score in scores)

    def test_bundled_pack_period_query(self, kb_documents):
        chunks = retrieve_kb_documents("period", kb_documents)
        assert chunks
        assert all(c.relevance_score > 0 for c in chunks)
        assert any("menstrual" in c.tags or "cycle" in c.tags for c in chunks)


class TestRelevance:
    def _chunk(self, score: float) -> RetrievedChunk:
        return RetrievedChunk(id="x", title="x", source="s", url="u", text="t",
                              relevance_score=score)

    def test_threshold(self):
        assert has_sufficient_relevance([self._chunk(1), self._chunk(2)])
        assert not has_sufficient_relevance([self._chunk(1)])
        assert not has_sufficient_relevance([])

    def test_custom_threshold(self):
        assert not has_sufficient_relevance([self._chunk(4)], threshold=5)


class TestEvidenceForm:
    def test_excerpt_first_four_sentences(self):
        assert extract_excerpt(HEADACHE_DOC.text) == (
            "A headache can follow poor sleep. Hydration helps. Rest helps. Caffeine matters."
        )

    def test_excerpt_without_punctuation(self):
        assert extract_excerpt("no punctuation here") == "no punctuation here"

    def test_claim(self):
        assert make_claim(HEADACHE_DOC) == "Headache Relief: A headache can follow poor sleep."

    def test_enhanced_query_uses_pattern_card(self):
        card = build_pattern_card([
            make_log("Cramps", 7, id="a", cycle_phase="menstrual", tags=["At work"]),
            make_log("Headache", 4, id="b", cycle_phase="luteal"),
        ])
        assert build_enhanced_query("why?", card) == "why? Cramps Headache At work menstrual"

    def test_enhanced_query_without_card(self):
        assert build_enhanced_query("why?", None) == "why?"

    def test_retrieve_evidence(self):
        card = build_pattern_card([make_log("Headache", 6, id="a")])
        evidence = retrieve_evidence("what helps", card, [CYCLE_DOC, SLEEP_DOC, HEADACHE_DOC])
        assert evidence[0].id == "headache"
        assert evidence[0].claim.startswith("Headache Relief: ")
        assert evidence[0].relevance_score > 0
        assert set(evidence[0].to_dict()) == {"id", "title", "url", "claim", "excerpt", "tags"}
