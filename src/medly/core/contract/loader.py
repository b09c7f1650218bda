"""Contract loader: reads YAML answer-contract definitions from disk."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from medly.core.contract.models import AnswerContract, OutputSection
from medly.core.contract.registry import ContractRegistry

logger = logging.getLogger(__name__)


def load_contract_directory(directory: str | Path, registry: ContractRegistry) -> int:
    """Load all YAML contract definitions from a directory (recursively).

    Returns the number of contracts loaded. Files starting with an
    underscore are skipped.
    """
    directory = Path(directory)
    if not directory.is_dir():
        logger.warning("Contract directory does not exist: %s", directory)
        return 0

    count = 0
    for path in sorted(directory.rglob("*.yaml")):
        if path.name.startswith("_"):
            continue
        try:
            contract = load_contract_file(path)
            registry.register(contract)
            count += 1
            logger.info("Loaded contract: %s (v%s)", contract.id, contract.version)
        except Exception:
            logger.exception("Failed to load contract from %s", path)
    return count


def load_contract_file(path: Path) -> AnswerContract:
    """Parse a YAML file into an AnswerContract."""
    with open(path, encoding="utf-8") as f:
        data: dict[str, Any] = yaml.safe_load(f)
    return contract_from_dict(data)


def contract_from_dict(data: dict[str, Any]) -> AnswerContract:
    output = data.get("output", {}) or {}
    return AnswerContract(
        id=data["id"],
        version=str(data["version"]),
        intent=data["intent"],
        display_name=data.get("display_name", data["id"]),
        role=(data.get("role") or "").strip(),
        rules=[r.strip() for r in data.get("rules", [])],
        output_sections=[
            OutputSection(heading=s["heading"], guidance=(s.get("guidance") or "").strip())
            for s in output.get("sections", [])
        ],
        formatting_notes=[n.strip() for n in output.get("notes", [])],
        forbidden_phrases=list(data.get("forbidden_phrases", [])),
        forbidden_with_statistics=list(data.get("forbidden_with_statistics", [])),
        required_sections=list(data.get("required_sections", [])),
        allow_citations=bool(data.get("allow_citations", True)),
        requires_statistics=bool(data.get("requires_statistics", False)),
        closing_reminder=(data.get("closing_reminder") or "").strip(),
        tags=list(data.get("tags", [])),
    )
