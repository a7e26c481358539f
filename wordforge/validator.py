"""Response validation: strict JSON parse, schema contract, semantic invariants."""

import json
from typing import Any

from pydantic import ValidationError

from wordforge.models import (
    FailureKind,
    Meaning,
    ValidationOutcome,
    Violation,
    WordEntry,
)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def _unique_keys(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    obj: dict[str, Any] = {}
    for key, value in pairs:
        if key in obj:
            raise ValueError(f"duplicate key {key!r}")
        obj[key] = value
    return obj


def parse_strict_json(raw_text: str) -> Any:
    """
    Parse text as a single strict JSON document.

    Rejects trailing content, comments, NaN/Infinity and duplicate object keys.

    Raises:
        ValueError: If the text is not strict JSON
    """
    if not isinstance(raw_text, str):
        raise ValueError(f"expected text, got {type(raw_text).__name__}")
    return json.loads(raw_text, parse_constant=_reject_constant, object_pairs_hook=_unique_keys)


def format_path(loc: tuple[int | str, ...]) -> str:
    """Render a pydantic error location as `meanings[0].definition`."""
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path or "$"


def _fold(text: str) -> str:
    return text.strip().casefold()


def check_semantics(entry: WordEntry, headword: str) -> list[Violation]:
    """
    Check invariants the schema cannot express.

    Args:
        entry: Schema-valid word entry
        headword: Word the entry describes

    Returns:
        Violations in meaning order; empty when the entry is consistent
    """
    violations = []

    seen_pos: dict[str, int] = {}
    for i, meaning in enumerate(entry.meanings):
        pos = meaning.part_of_speech
        if pos in seen_pos:
            violations.append(
                Violation(
                    code=FailureKind.DUPLICATE_POS,
                    path=f"meanings[{i}].partOfSpeech",
                    message=f"'{pos}' already used by meanings[{seen_pos[pos]}]",
                )
            )
        else:
            seen_pos[pos] = i

    key = _fold(headword)
    for i, meaning in enumerate(entry.meanings):
        for field in ("synonyms", "antonyms"):
            for j, item in enumerate(getattr(meaning, field)):
                if _fold(item) == key:
                    violations.append(
                        Violation(
                            code=FailureKind.INVALID_SYNONYM,
                            path=f"meanings[{i}].{field}[{j}]",
                            message=f"{field[:-1]} '{item}' repeats the headword",
                        )
                    )

    return violations


def validate_response(raw_text: str, headword: str | None = None) -> ValidationOutcome:
    """
    Validate raw engine output against the word entry contract.

    Steps run in order and stop at the first failing step:
    strict JSON parse, schema check, semantic invariants.

    Args:
        raw_text: Text produced by the engine
        headword: Requested word; defaults to the entry's own `word` field

    Returns:
        ValidationOutcome carrying the parsed entry or the ordered violations
    """
    try:
        document = parse_strict_json(raw_text)
    except (ValueError, RecursionError) as e:
        return ValidationOutcome(
            valid=False,
            violations=(Violation(code=FailureKind.MALFORMED_JSON, message=str(e)),),
        )

    if not isinstance(document, dict):
        return ValidationOutcome(
            valid=False,
            violations=(
                Violation(
                    code=FailureKind.MALFORMED_JSON,
                    message=f"expected a JSON object, got {type(document).__name__}",
                ),
            ),
        )

    # The text is known to be strict JSON here; pydantic re-parses it in JSON mode
    try:
        entry = WordEntry.model_validate_json(raw_text)
    except ValidationError as e:
        return ValidationOutcome(
            valid=False,
            violations=tuple(
                Violation(
                    # pydantic's parser is stricter than json, e.g. on lone surrogates
                    code=(
                        FailureKind.MALFORMED_JSON
                        if err["type"] == "json_invalid"
                        else FailureKind.SCHEMA_VIOLATION
                    ),
                    path=format_path(err["loc"]),
                    message=err["msg"],
                )
                for err in e.errors()
            ),
        )

    semantic = check_semantics(entry, headword if headword is not None else entry.word)
    if semantic:
        return ValidationOutcome(valid=False, violations=tuple(semantic))

    return ValidationOutcome(valid=True, parsed_object=entry)


def _clean_terms(items: list[str]) -> list[str]:
    cleaned = []
    for item in items:
        term = item.strip().lower()
        if term and term not in cleaned:
            cleaned.append(term)
    return cleaned


def normalize_entry(entry: WordEntry, word: str) -> WordEntry:
    """
    Apply deterministic clean-ups to a valid entry.

    The requested word replaces the generated `word`, the phonetic transcription
    is wrapped in slashes, and synonyms/antonyms are trimmed, lowercased and
    de-duplicated in order.
    """
    inner = entry.phonetic.strip().strip("/")
    meanings: list[Meaning] = [
        meaning.model_copy(
            update={
                "synonyms": _clean_terms(meaning.synonyms),
                "antonyms": _clean_terms(meaning.antonyms),
            }
        )
        for meaning in entry.meanings
    ]
    return entry.model_copy(update={"word": word, "phonetic": f"/{inner}/", "meanings": meanings})
