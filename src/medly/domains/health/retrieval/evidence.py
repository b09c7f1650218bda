"""Keyword + synonym evidence retrieval over the local knowledge base.

Scoring is deliberately simple and explainable: every expanded query term
contributes its title hits x3, overlapping tags x2 and body hits x1.
Documents that score zero are never returned.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from medly.core.storage.models import KBDocument
from medly.domains.health.analytics.models import PatternCard
from medly.domains.health.retrieval.synonyms import SYNONYM_MAP

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 8
RELEVANCE_THRESHOLD = 2
EXCERPT_SENTENCES = 4

TITLE_WEIGHT = 3
TAG_WEIGHT = 2
TEXT_WEIGHT = 1

_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]+")
_EDGE_PUNCT = "\"'()[]{},.;:!?"


@dataclass
class RetrievedChunk:
    id: str
    title: str
    source: str
    url: str
    text: str
    relevance_score: float
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "source": self.source,
            "url": self.url,
            "relevance_score": self.relevance_score,
            "tags": list(self.tags),
        }


@dataclass
class RagEvidence:
    """A retrieved document in citation form."""

    id: str
    title: str
    url: str
    claim: str
    excerpt: str
    tags: list[str] = field(default_factory=list)
    relevance_score: float = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "claim": self.claim,
            "excerpt": self.excerpt,
            "tags": list(self.tags),
        }


# ---------------------------------------------------------------------------
# Query expansion and scoring
# ---------------------------------------------------------------------------

def expand_query(text: str) -> list[str]:
    """Lower-case whitespace terms plus their synonyms, first-seen order, no duplicates."""
    terms = [t.strip(_EDGE_PUNCT) for t in text.lower().split()]
    expanded: dict[str, None] = {}
    for term in terms:
        if term:
            expanded.setdefault(term)
    for term in list(expanded):
        for synonym in SYNONYM_MAP.get(term, ()):
            expanded.setdefault(synonym)
    return list(expanded)


def _occurrences(term: str, haystack: str) -> int:
    return len(re.findall(re.escape(term), haystack))


def score_document(doc: KBDocument, terms: Iterable[str]) -> float:
    title = doc.title.lower()
    text = doc.text.lower()
    tags = [t.lower() for t in doc.tags]

    score = 0
    for term in terms:
        score += _occurrences(term, title) * TITLE_WEIGHT
        score += sum(1 for tag in tags if term in tag or tag in term) * TAG_WEIGHT
        score += _occurrences(term, text) * TEXT_WEIGHT
    return score


def _rank(query: str, documents: Iterable[KBDocument], top_n: int) -> list[tuple[KBDocument, float]]:
    terms = expand_query(query)
    if not terms:
        return []
    scored = [(doc, score_document(doc, terms)) for doc in documents]
    relevant = [item for item in scored if item[1] > 0]
    relevant.sort(key=lambda item: item[1], reverse=True)
    return relevant[:top_n]


def retrieve_kb_documents(
    query: str,
    documents: Iterable[KBDocument],
    top_n: int = DEFAULT_TOP_N,
) -> list[RetrievedChunk]:
    """Score every document against the expanded query; best ``top_n`` with score > 0."""
    return [
        RetrievedChunk(
            id=doc.id,
            title=doc.title,
            source=doc.source,
            url=doc.url,
            text=doc.text,
            relevance_score=score,
            tags=list(doc.tags),
        )
        for doc, score in _rank(query, documents, top_n)
    ]


def has_sufficient_relevance(chunks: Iterable[Any], threshold: float = RELEVANCE_THRESHOLD) -> bool:
    """True iff at least one chunk scores at or above ``threshold``."""
    return any(chunk.relevance_score >= threshold for chunk in chunks)


# ---------------------------------------------------------------------------
# Evidence
# ---------------------------------------------------------------------------

def extract_excerpt(text: str, max_sentences: int = EXCERPT_SENTENCES) -> str:
    sentences = _SENTENCE_RE.findall(text) or [text]
    return " ".join(s.strip() for s in sentences[:max_sentences]).strip()


def make_claim(doc: KBDocument) -> str:
    match = _SENTENCE_RE.search(doc.text)
    first = match.group(0) if match else doc.text[:100]
    return f"{doc.title}: {first.strip()}"


def build_enhanced_query(user_message: str, pattern_card: PatternCard | None) -> str:
    """User message plus the pattern card's top symptoms, tags and worst phase."""
    parts = [user_message]
    if pattern_card is not None:
        parts.extend(s.name for s in pattern_card.top_symptoms[:3])
        parts.extend(t.label for t in pattern_card.top_tags[:3])
        if pattern_card.cycle_association.highest_severity_phase:
            parts.append(pattern_card.cycle_association.highest_severity_phase)
    return " ".join(parts)


def retrieve_evidence(
    user_message: str,
    pattern_card: PatternCard | None,
    documents: Iterable[KBDocument],
    top_n: int = DEFAULT_TOP_N,
) -> list[RagEvidence]:
    """Retrieve citation-ready evidence for a chat message."""
    query = build_enhanced_query(user_message, pattern_card)
    ranked = _rank(query, documents, top_n)
    logger.debug("Retrieved %d evidence documents: %s", len(ranked), [doc.id for doc, _ in ranked])
    return [
        RagEvidence(
            id=doc.id,
            title=doc.title,
            url=doc.url,
            claim=make_claim(doc),
            excerpt=extract_excerpt(doc.text),
            tags=list(doc.tags),
            relevance_score=score,
        )
        for doc, score in ranked
    ]
