"""Contract YAML validator: ensures contract definitions are well-formed."""

from __future__ import annotations

import logging
from pathlib import Path

from medly.core.contract.loader import load_contract_file
from medly.core.contract.models import AnswerContract

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ["id", "version", "intent", "role"]


def _display(path: Path, project_root: Path | None) -> str:
    if project_root:
        try:
            return str(path.relative_to(project_root))
        except ValueError:
            pass
    return str(path)


def validate_contract_file(
    path: Path, *, project_root: Path | None = None
) -> tuple[AnswerContract | None, list[str]]:
    """Validate a single contract YAML file.

    Returns: (contract_or_none, errors)
    """
    display_path = _display(path, project_root)
    try:
        contract = load_contract_file(path)
    except Exception as exc:
        return None, [f"{display_path}: Failed to load: {exc}"]

    errors: list[str] = []
    for field_name in REQUIRED_FIELDS:
        if not getattr(contract, field_name, None):
            errors.append(f"{display_path}: Missing or empty required field '{field_name}'")

    if not contract.rules:
        errors.append(f"{display_path}: Contract defines no rules")

    headings = {s.heading for s in contract.output_sections}
    for required in contract.required_sections:
        if required not in headings:
            errors.append(
                f"{display_path}: Required section '{required}' is not an output section"
            )

    if contract.version and not all(c.isdigit() or c == "." for c in contract.version):
        errors.append(
            f"{display_path}: Version '{contract.version}' doesn't look like a version number"
        )

    name = path.name
    if not (name == f"{contract.id}.yaml" or name.startswith(f"{contract.id}.")):
        errors.append(
            f"{display_path}: Filename '{name}' should match contract id '{contract.id}'"
        )

    return contract, errors


def validate_contract_directory(
    directory: str | Path, *, project_root: Path | None = None
) -> tuple[int, list[str]]:
    """Validate all contract YAML files in a directory (recursively).

    Returns: (contract_count, errors)
    """
    directory = Path(directory)
    if not directory.is_dir():
        return 0, [f"Contract directory not found: {directory}"]

    yaml_files = sorted(p for p in directory.rglob("*.yaml") if not p.name.startswith("_"))
    if not yaml_files:
        return 0, [f"No contract YAML files found in {directory}"]

    errors: list[str] = []
    seen_ids: dict[str, Path] = {}
    seen_intents: dict[str, Path] = {}
    loaded = 0

    for path in yaml_files:
        contract, file_errors = validate_contract_file(path, project_root=project_root)
        if file_errors:
            errors.extend(file_errors)
            continue

        assert contract is not None  # for type checkers
        loaded += 1
        here = _display(path, project_root)

        if contract.id in seen_ids:
            there = _display(seen_ids[contract.id], project_root)
            errors.append(f"{here}: Duplicate ID '{contract.id}' already defined in {there}")
        else:
            seen_ids[contract.id] = path

        if contract.intent in seen_intents:
            there = _display(seen_intents[contract.intent], project_root)
            errors.append(f"{here}: Intent '{contract.intent}' already bound in {there}")
        else:
            seen_intents[contract.intent] = path

    if loaded and "general" not in seen_intents:
        errors.append(f"{directory}: No contract for the 'general' intent")

    return loaded, errors
