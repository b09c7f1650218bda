"""Contract renderer: turns an answer contract plus data blocks into a prompt."""

from __future__ import annotations

import logging

from medly.core.contract.models import AnswerContract, AssembledPrompt

logger = logging.getLogger(__name__)


def render_contract(contract: AnswerContract) -> str:
    """Render the behavioral part of a contract as system-message sections."""
    parts: list[str] = [f"## Your Role\n{contract.role}"]

    if contract.rules:
        rules = "\n".join(f"{i + 1}) {rule}" for i, rule in enumerate(contract.rules))
        parts.append(f"## Hard Rules\n{rules}")

    if contract.output_sections:
        lines = []
        for section in contract.output_sections:
            lines.append(f"## {section.heading}")
            lines.append(f"- {section.guidance}" if section.guidance else "- ...")
        parts.append("## Output Format (exact)\n" + "\n".join(lines))

    notes = list(contract.formatting_notes)
    if not contract.allow_citations:
        notes.append("Do not add [Source: ...] citations to this answer.")
    if notes:
        parts.append("## Citations and Formatting\n" + "\n".join(f"- {n}" for n in notes))

    if contract.forbidden_phrases or contract.forbidden_with_statistics:
        phrases = "\n".join(
            f'- "{p}"' for p in [*contract.forbidden_phrases, *contract.forbidden_with_statistics]
        )
        parts.append(f"## Never Write\n{phrases}")

    return "\n\n".join(parts)


def assemble_prompt(
    contract: AnswerContract,
    user_message: str,
    data_blocks: dict[str, str],
) -> AssembledPrompt:
    """Combine a contract and named data blocks into one prompt.

    ``data_blocks`` map an upper-case label (``PATTERN_CARD``,
    ``COMPUTED_STATISTICS``...) to already-serialized, already-redacted text.
    Empty blocks are left out.
    """
    parts: list[str] = [render_contract(contract)]

    for label, block in data_blocks.items():
        if block:
            parts.append(f"{label}:\n{block}")

    if contract.closing_reminder:
        parts.append(f"Remember: {contract.closing_reminder}")

    return AssembledPrompt(
        system_message="\n\n".join(parts),
        user_message=user_message,
        metadata={
            "contract_id": contract.id,
            "contract_version": contract.version,
            "data_blocks": [label for label, block in data_blocks.items() if block],
        },
    )
