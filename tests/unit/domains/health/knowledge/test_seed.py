"""Tests for knowledge-pack loading and seeding."""

from __future__ import annotations

import json

import pytest

from medly.core.storage.repository import KnowledgeBaseRepository
from medly.domains.health.knowledge.seed import (
    KnowledgePackError,
    ensure_knowledge_base_seeded,
    load_knowledge_pack,
)

DOC = {
    "id": "kb-test",
    "title": "Test Document",
    "source": "Test",
    "url": "https://example.org/test",
    "tags": ["test"],
    "text": "Test body.",
}


class TestLoadKnowledgePack:
    def test_bundled_pack(self):
        records = load_knowledge_pack()
        assert records
        ids = [r["id"] for r in records]
        assert len(ids) == len(set(ids))

    def test_custom_path(self, tmp_path):
        path = tmp_path / "pack.json"
        path.write_text(json.dumps([DOC]), encoding="utf-8")
        assert load_knowledge_pack(path) == [DOC]

    def test_missing_file(self, tmp_path):
        with pytest.raises(KnowledgePackError):
            load_knowledge_pack(tmp_path / "missing.json")

    def test_not_an_array(self, tmp_path):
        path = tmp_path / "pack.json"
        path.write_text(json.dumps(DOC), encoding="utf-8")
        with pytest.raises(KnowledgePackError, match="JSON array"):
            load_knowledge_pack(path)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "pack.json"
        path.write_text("[{", encoding="utf-8")
        with pytest.raises(KnowledgePackError):
            load_knowledge_pack(path)


class TestEnsureSeeded:
    def test_seeds_custom_pack_idempotently(self, health_db, tmp_path):
        path = tmp_path / "pack.json"
        path.write_text(json.dumps([DOC, {"id": "broken"}]), encoding="utf-8")
        repo = KnowledgeBaseRepository(health_db)

        assert ensure_knowledge_base_seeded(repo, path) == 1
        assert ensure_knowledge_base_seeded(repo, path) == 1
        assert repo.count() == 1
        assert repo.get("kb-test").title == "Test Document"

    def test_empty_pack(self, health_db, tmp_path):
        path = tmp_path / "pack.json"
        path.write_text("[]", encoding="utf-8")
        assert ensure_knowledge_base_seeded(KnowledgeBaseRepository(health_db), path) == 0
