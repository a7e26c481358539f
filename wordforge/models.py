"""Pydantic data models for the wordforge generation service."""

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

import config


class FailureKind(str, Enum):
    """Category attached to a failed attempt or a failed word."""

    INPUT_ERROR = "input_error"
    ENGINE_UNAVAILABLE = "engine_unavailable"
    ENGINE_TIMEOUT = "engine_timeout"
    ENGINE_ABORTED = "engine_aborted"
    MALFORMED_JSON = "malformed_json"
    SCHEMA_VIOLATION = "schema_violation"
    DUPLICATE_POS = "duplicate_pos"
    INVALID_SYNONYM = "invalid_synonym"
    REQUEST_TIMEOUT = "request_timeout"
    INTERNAL_ERROR = "internal_error"


# Kinds the AttemptController absorbs with another attempt
RETRYABLE_KINDS = frozenset(
    {
        FailureKind.ENGINE_TIMEOUT,
        FailureKind.MALFORMED_JSON,
        FailureKind.SCHEMA_VIOLATION,
        FailureKind.DUPLICATE_POS,
        FailureKind.INVALID_SYNONYM,
    }
)


# ---------------------------------------------------------------------------
# Schema contract for a generated word entry
# ---------------------------------------------------------------------------

PartOfSpeech = Literal[
    "noun",
    "verb",
    "adjective",
    "adverb",
    "pronoun",
    "preposition",
    "conjunction",
    "interjection",
    "article",
    "determiner",
    "numeral",
    "participle",
    "gerund",
]

Difficulty = Literal["beginner", "intermediate", "advanced"]


class ContractModel(BaseModel):
    """Base for the word entry contract: strict types, no extra fields, camelCase keys."""

    model_config = ConfigDict(
        strict=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Translations(ContractModel):
    """Translations of one sense into the nine target languages."""

    es: str = Field(min_length=1)
    fr: str = Field(min_length=1)
    de: str = Field(min_length=1)
    zh: str = Field(min_length=1)
    ja: str = Field(min_length=1)
    it: str = Field(min_length=1)
    pt: str = Field(min_length=1)
    ru: str = Field(min_length=1)
    ar: str = Field(min_length=1)


class Meaning(ContractModel):
    """One part-of-speech-specific sense of the word."""

    definition: str = Field(min_length=30, max_length=480)
    part_of_speech: PartOfSpeech
    example_sentence: str = Field(min_length=1)
    grammar_tip: str = Field(min_length=1)
    synonyms: list[str] = Field(max_length=8)
    antonyms: list[str] = Field(max_length=6)
    translations: Translations


class WordEntry(ContractModel):
    """The complete linguistic description returned for a word."""

    word: str = Field(min_length=1)
    base_form: str = Field(min_length=1)
    phonetic: str = Field(min_length=1)
    difficulty: Difficulty
    language: Literal["english"]
    meanings: list[Meaning] = Field(min_length=1, max_length=4)


# ---------------------------------------------------------------------------
# Pipeline records
# ---------------------------------------------------------------------------


class WordRequest(BaseModel):
    """A sanitized word accepted for generation."""

    model_config = ConfigDict(frozen=True)

    word: str = Field(min_length=1, max_length=config.MAX_WORD_LENGTH)


class SamplingConfig(BaseModel):
    """Decoding parameters for one engine call."""

    model_config = ConfigDict(frozen=True)

    temperature: float = Field(default=config.DEFAULT_TEMPERATURE, ge=0)
    top_p: float = Field(default=config.DEFAULT_TOP_P, gt=0, le=1)
    min_p: float = Field(default=config.DEFAULT_MIN_P, ge=0, le=1)
    repeat_penalty: float = Field(default=config.DEFAULT_REPEAT_PENALTY, ge=0)
    max_tokens: int = Field(default=config.DEFAULT_MAX_TOKENS, ge=1)

    def relaxed(self) -> "SamplingConfig":
        """Derive a lower-entropy variant for a retry.

        Temperature is halved and top_p is capped; the receiver is unchanged.
        """
        return self.model_copy(
            update={
                "temperature": round(self.temperature / 2, 4),
                "top_p": min(self.top_p, config.RELAXED_TOP_P_CAP),
            }
        )


class Violation(BaseModel):
    """A single reason a raw output was rejected."""

    model_config = ConfigDict(frozen=True)

    code: FailureKind
    path: str = "$"
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


class ValidationOutcome(BaseModel):
    """Result of validating one raw engine output."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    parsed_object: Optional[WordEntry] = None
    violations: tuple[Violation, ...] = ()

    @property
    def failure_kind(self) -> FailureKind | None:
        """Category of the first violation, if any."""
        return self.violations[0].code if self.violations else None


class GenerationAttempt(BaseModel):
    """Record of one engine call and what became of its output."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    config: SamplingConfig
    raw_output: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    violations: tuple[Violation, ...] = ()


class WordResult(BaseModel):
    """Terminal outcome for one requested word."""

    word: str
    ok: bool
    data: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    category: Optional[FailureKind] = Field(default=None, exclude=True)

    @classmethod
    def success(cls, word: str, data: dict[str, Any]) -> "WordResult":
        return cls(word=word, ok=True, data=data)

    @classmethod
    def failure(cls, word: str, category: FailureKind, message: str) -> "WordResult":
        return cls(word=word, ok=False, error=f"{category.value}: {message}", category=category)

    def to_response(self) -> dict[str, Any]:
        """Serialize to the public `{word, ok, data?, error?}` shape."""
        return self.model_dump(exclude_none=True)


# ---------------------------------------------------------------------------
# HTTP request bodies
# ---------------------------------------------------------------------------


class WordPayload(BaseModel):
    """Body of POST /v1/word."""

    word: str


class WordsPayload(BaseModel):
    """Body of POST /v1/words."""

    words: list[str]


class CheckpointData(BaseModel):
    """Progress of an offline generation run."""

    processed_words: list[str] = Field(default_factory=list)
    # word -> failure category of its latest attempt
    failed_words: dict[str, str] = Field(default_factory=dict)
    last_index: int = 0
    updated_at: Optional[str] = None
