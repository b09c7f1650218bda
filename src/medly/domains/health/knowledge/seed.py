"""Knowledge-pack seeding.

The bundled ``knowledge_pack.json`` is a JSON array of reference documents
(id, title, source, url, tags, text). Seeding upserts by id, so running it
on every startup refreshes edited documents without duplicating them.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from medly.core.storage.repository import KnowledgeBaseRepository

logger = logging.getLogger(__name__)

BUNDLED_PACK = Path(__file__).resolve().parent / "knowledge_pack.json"


class KnowledgePackError(Exception):
    """Raised when a knowledge pack file cannot be read."""


def load_knowledge_pack(path: str | Path | None = None) -> list[dict[str, Any]]:
    """Read a knowledge pack file (the bundled one by default)."""
    pack_path = Path(path).expanduser() if path else BUNDLED_PACK
    try:
        data = json.loads(pack_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise KnowledgePackError(f"Cannot read knowledge pack {pack_path}: {exc}") from exc
    if not isinstance(data, list):
        raise KnowledgePackError(f"Knowledge pack {pack_path} must be a JSON array")
    return data


def ensure_knowledge_base_seeded(
    repository: KnowledgeBaseRepository, path: str | Path | None = None
) -> int:
    """Seed (or refresh) the knowledge base. Returns documents written."""
    records = load_knowledge_pack(path)
    if not records:
        logger.warning("Knowledge pack is empty")
        return 0
    written = repository.seed(records)
    if written == 0:
        logger.warning("No valid documents in knowledge pack")
    return written
