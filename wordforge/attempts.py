"""Per-word pipeline: build -> generate -> validate, with bounded retries."""

from enum import Enum
from typing import Optional

import config
from wordforge.engine import (
    EngineAbortedError,
    EngineTimeoutError,
    EngineUnavailableError,
    InferenceEngine,
)
from wordforge.logger import get_logger
from wordforge.models import (
    RETRYABLE_KINDS,
    FailureKind,
    GenerationAttempt,
    SamplingConfig,
    ValidationOutcome,
    Violation,
    WordResult,
)
from wordforge.prompt_builder import InputError, Prompt, build_prompt
from wordforge.resources import Resources
from wordforge.validator import normalize_entry, validate_response


class PipelineState(str, Enum):
    """States of one word's pipeline."""

    IDLE = "idle"
    BUILDING = "building"
    GENERATING = "generating"
    VALIDATING = "validating"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES = frozenset({PipelineState.SUCCEEDED, PipelineState.FAILED})

# Allowed transitions; anything else is a programming error
TRANSITIONS = {
    PipelineState.IDLE: {PipelineState.BUILDING, PipelineState.FAILED},
    PipelineState.BUILDING: {PipelineState.GENERATING, PipelineState.FAILED},
    PipelineState.GENERATING: {
        PipelineState.VALIDATING,
        PipelineState.RETRYING,
        PipelineState.FAILED,
    },
    PipelineState.VALIDATING: {
        PipelineState.SUCCEEDED,
        PipelineState.RETRYING,
        PipelineState.FAILED,
    },
    PipelineState.RETRYING: {PipelineState.GENERATING, PipelineState.FAILED},
    PipelineState.SUCCEEDED: set(),
    PipelineState.FAILED: set(),
}


class AttemptController:
    """
    Drives one word through generation and validation.

    The controller is single-use: `run()` walks the state machine from IDLE to
    a terminal state and returns exactly one WordResult. Attempt records are
    appended once their outcome is known and never modified.
    """

    def __init__(
        self,
        word: str,
        engine: InferenceEngine,
        resources: Resources,
        sampling: SamplingConfig,
        max_attempts: int = config.DEFAULT_MAX_ATTEMPTS,
        max_word_length: int = config.MAX_WORD_LENGTH,
    ):
        """
        Initialize the controller.

        Args:
            word: Word exactly as requested
            engine: Inference engine to call
            resources: Shared prompt template and grammar
            sampling: Base sampling configuration for the first attempt
            max_attempts: Engine calls allowed before giving up
            max_word_length: Maximum word length in code points
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.word = word
        self.engine = engine
        self.resources = resources
        self.max_attempts = max_attempts
        self.max_word_length = max_word_length

        self.state = PipelineState.IDLE
        self.transitions: list[tuple[PipelineState, PipelineState]] = []
        self.attempts: list[GenerationAttempt] = []
        self.result: Optional[WordResult] = None

        self._sampling = sampling
        self._prompt: Optional[Prompt] = None
        self._raw_output: Optional[str] = None
        self.logger = get_logger()

    def _transition(self, target: PipelineState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal transition {self.state.value} -> {target.value}")
        self.transitions.append((self.state, target))
        self.state = target

    async def run(self) -> WordResult:
        """
        Run the pipeline to a terminal state.

        Returns:
            The single WordResult for this word
        """
        if self.state is not PipelineState.IDLE:
            raise RuntimeError("AttemptController instances are single-use")

        try:
            self._transition(PipelineState.BUILDING)
            while self.state not in TERMINAL_STATES:
                if self.state is PipelineState.BUILDING:
                    self._build()
                elif self.state is PipelineState.GENERATING:
                    await self._generate()
                elif self.state is PipelineState.VALIDATING:
                    self._validate()
                elif self.state is PipelineState.RETRYING:
                    self._retry()
        except Exception as e:
            # Unexpected failure inside the pipeline itself; never retried
            self.logger.exception(f"INTERNAL error in pipeline for '{self.word}': {e}")
            self.state = PipelineState.FAILED
            self.result = WordResult.failure(
                self.word, FailureKind.INTERNAL_ERROR, f"internal error: {type(e).__name__}"
            )

        return self.result

    # -- state handlers ---------------------------------------------------

    def _build(self) -> None:
        try:
            self._prompt = build_prompt(
                self.word, self.resources.prompt_template, max_length=self.max_word_length
            )
        except InputError as e:
            self._fail(FailureKind.INPUT_ERROR, str(e))
            return
        self._transition(PipelineState.GENERATING)

    async def _generate(self) -> None:
        index = len(self.attempts)
        try:
            self._raw_output = await self.engine.generate(
                self._prompt, self.resources.grammar, self._sampling
            )
        except EngineUnavailableError as e:
            self._record(index, failure_kind=FailureKind.ENGINE_UNAVAILABLE)
            self.logger.error(f"Engine unavailable while generating '{self._prompt.word}': {e}")
            self._fail(FailureKind.ENGINE_UNAVAILABLE, str(e))
            return
        except EngineAbortedError as e:
            self._record(index, failure_kind=FailureKind.ENGINE_ABORTED)
            self._fail(FailureKind.ENGINE_ABORTED, str(e))
            return
        except EngineTimeoutError as e:
            violation = Violation(code=FailureKind.ENGINE_TIMEOUT, message=str(e))
            self._record(index, failure_kind=FailureKind.ENGINE_TIMEOUT, violations=(violation,))
            self._retry_or_fail()
            return

        self._transition(PipelineState.VALIDATING)

    def _validate(self) -> None:
        index = len(self.attempts)
        outcome: ValidationOutcome = validate_response(self._raw_output, headword=self._prompt.word)

        if outcome.valid:
            self._record(index, raw_output=self._raw_output)
            entry = normalize_entry(outcome.parsed_object, self._prompt.word)
            self._transition(PipelineState.SUCCEEDED)
            self.result = WordResult.success(self.word, entry.model_dump(by_alias=True))
            return

        self._record(
            index,
            raw_output=self._raw_output,
            failure_kind=outcome.failure_kind,
            violations=outcome.violations,
        )
        self.logger.warning(
            f"Attempt {index + 1}/{self.max_attempts} for '{self._prompt.word}' rejected: "
            f"{outcome.failure_kind.value} ({len(outcome.violations)} violation(s))"
        )
        self._retry_or_fail()

    def _retry(self) -> None:
        self._sampling = self._sampling.relaxed()
        self._raw_output = None
        self._transition(PipelineState.GENERATING)

    # -- helpers ----------------------------------------------------------

    def _record(
        self,
        index: int,
        raw_output: Optional[str] = None,
        failure_kind: Optional[FailureKind] = None,
        violations: tuple[Violation, ...] = (),
    ) -> None:
        self.attempts.append(
            GenerationAttempt(
                index=index,
                config=self._sampling,
                raw_output=raw_output,
                failure_kind=failure_kind,
                violations=violations,
            )
        )

    def _retry_or_fail(self) -> None:
        last = self.attempts[-1]
        if last.failure_kind in RETRYABLE_KINDS and len(self.attempts) < self.max_attempts:
            self._transition(PipelineState.RETRYING)
            return
        message = "; ".join(str(v) for v in last.violations) or last.failure_kind.value
        self._fail(last.failure_kind, message)

    def _fail(self, kind: FailureKind, message: str) -> None:
        self._transition(PipelineState.FAILED)
        self.result = WordResult.failure(self.word, kind, message)
