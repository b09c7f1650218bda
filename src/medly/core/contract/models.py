"""Data models for answer contracts."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class OutputSection:
    """One heading of the response layout and what goes under it."""

    heading: str
    guidance: str = ""


@dataclass
class AnswerContract:
    """The behavioral contract a generated answer must honor for one intent.

    The same object is rendered into the system prompt and checked against
    the generated text afterwards.
    """

    id: str
    version: str
    intent: str
    display_name: str
    role: str
    rules: list[str] = field(default_factory=list)
    output_sections: list[OutputSection] = field(default_factory=list)
    formatting_notes: list[str] = field(default_factory=list)
    forbidden_phrases: list[str] = field(default_factory=list)
    # Only enforced when pre-computed statistics were supplied.
    forbidden_with_statistics: list[str] = field(default_factory=list)
    required_sections: list[str] = field(default_factory=list)
    allow_citations: bool = True
    requires_statistics: bool = False
    closing_reminder: str = ""
    tags: list[str] = field(default_factory=list)


@dataclass
class AssembledPrompt:
    """The final prompt handed to the generation backend."""

    system_message: str
    user_message: str
    metadata: dict[str, object] = field(default_factory=dict)
