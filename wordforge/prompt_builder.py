"""Prompt composition for a single requested word."""

import json
import unicodedata
from dataclasses import dataclass

import config

# Unicode categories that may never appear inside a word
_FORBIDDEN_CATEGORIES = {"Cc", "Zl", "Zp"}


class InputError(ValueError):
    """Raised when a word or a batch is rejected before any engine call."""

    pass


@dataclass(frozen=True)
class Prompt:
    """A prompt ready for the engine, together with the word it was built for."""

    word: str
    text: str


def sanitize_word(word: str, max_length: int = config.MAX_WORD_LENGTH) -> str:
    """
    Validate a raw word and return its trimmed form.

    Args:
        word: Word as received from the caller
        max_length: Maximum number of code points after trimming

    Returns:
        The trimmed word

    Raises:
        InputError: If the word is empty, too long or contains control characters
    """
    if not isinstance(word, str):
        raise InputError("word must be a string")

    trimmed = word.strip()
    if not trimmed:
        raise InputError("word must not be empty")
    if len(trimmed) > max_length:
        raise InputError(f"word exceeds {max_length} characters")

    for ch in trimmed:
        if unicodedata.category(ch) in _FORBIDDEN_CATEGORIES:
            raise InputError(f"word contains a control character (U+{ord(ch):04X})")

    return trimmed


def escape_for_template(word: str) -> str:
    """Escape a word for the quoted `Word:` field of the instruction template."""
    return json.dumps(word, ensure_ascii=False)[1:-1]


def build_prompt(word: str, template: str, max_length: int = config.MAX_WORD_LENGTH) -> Prompt:
    """
    Compose the fixed instruction with a sanitized word.

    Args:
        word: Word as received from the caller
        template: Instruction template with a `{word}` placeholder
        max_length: Maximum word length in code points

    Returns:
        Prompt carrying the trimmed word and the full prompt text

    Raises:
        InputError: If the word is rejected
    """
    trimmed = sanitize_word(word, max_length=max_length)
    return Prompt(word=trimmed, text=template.format(word=escape_for_template(trimmed)))
