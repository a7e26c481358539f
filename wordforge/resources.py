"""Read-only assets shared by every pipeline."""

from dataclasses import dataclass
from pathlib import Path

import config


@dataclass(frozen=True)
class Resources:
    """Instruction template and structural grammar, loaded once at startup."""

    prompt_template: str
    grammar: str


def load_prompt_template(path: Path = config.WORD_ENTRY_PROMPT) -> str:
    """Load the prompt template from file."""
    with open(path, "r", encoding="utf-8") as f:
        template = f.read()
    if "{word}" not in template:
        raise ValueError(f"Prompt template {path} has no {{word}} placeholder")
    return template


def load_grammar(path: Path = config.WORD_ENTRY_GRAMMAR) -> str:
    """Load the GBNF grammar that constrains generation."""
    with open(path, "r", encoding="utf-8") as f:
        grammar = f.read()
    if not grammar.strip():
        raise ValueError(f"Grammar file {path} is empty")
    return grammar


def load_resources(
    prompt_path: Path = config.WORD_ENTRY_PROMPT,
    grammar_path: Path = config.WORD_ENTRY_GRAMMAR,
) -> Resources:
    """Load every static asset the pipeline needs."""
    return Resources(
        prompt_template=load_prompt_template(prompt_path),
        grammar=load_grammar(grammar_path),
    )
