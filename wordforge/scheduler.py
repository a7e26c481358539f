"""Bounded-concurrency scheduling of word pipelines."""

import asyncio
from contextlib import asynccontextmanager
from typing import Callable

import config
from wordforge.aggregator import ResultAggregator
from wordforge.attempts import AttemptController
from wordforge.logger import get_logger
from wordforge.models import FailureKind, WordResult
from wordforge.prompt_builder import InputError, sanitize_word

ControllerFactory = Callable[[str], AttemptController]


class AdmissionPool:
    """
    Fixed-capacity pool of permissions to call the inference engine.

    One pool is shared by every request in the process, so the number of
    simultaneous engine callers never exceeds `capacity`.
    """

    def __init__(self, capacity: int = config.DEFAULT_ADMISSION_CAPACITY):
        if capacity < 1:
            raise ValueError("Admission capacity must be at least 1")
        self.capacity = capacity
        self._semaphore = asyncio.Semaphore(capacity)
        self._active = 0
        self.peak = 0

    @property
    def active(self) -> int:
        """Number of slots currently held."""
        return self._active

    @asynccontextmanager
    async def slot(self):
        """Hold one slot for the duration of the block; released on every exit path."""
        async with self._semaphore:
            self._active += 1
            self.peak = max(self.peak, self._active)
            try:
                yield
            finally:
                self._active -= 1


class BatchScheduler:
    """
    Runs word pipelines under a shared admission pool.

    Every word gets its own task; a task waits for a slot, runs its
    AttemptController, and records the result at the word's input position.
    """

    def __init__(
        self,
        pool: AdmissionPool,
        controller_factory: ControllerFactory,
        max_batch_size: int = config.DEFAULT_MAX_BATCH_SIZE,
        request_timeout: float | None = config.REQUEST_TIMEOUT,
    ):
        """
        Initialize the scheduler.

        Args:
            pool: Process-wide admission pool
            controller_factory: Builds a fresh AttemptController for a word
            max_batch_size: Largest accepted batch
            request_timeout: Seconds a pipeline may take, admission wait included
        """
        self.pool = pool
        self.controller_factory = controller_factory
        self.max_batch_size = max_batch_size
        self.request_timeout = request_timeout
        self.logger = get_logger()

    async def _admitted(self, word: str) -> WordResult:
        async with self.pool.slot():
            return await self.controller_factory(word).run()

    async def run_one(self, word: str) -> WordResult:
        """
        Run a single word's pipeline to completion.

        Failures of any kind are returned as an `ok=False` result; only
        cancellation of the caller propagates.
        """
        # Rejected words never queue for a slot
        try:
            sanitize_word(word)
        except InputError as e:
            return WordResult.failure(word, FailureKind.INPUT_ERROR, str(e))

        try:
            return await asyncio.wait_for(self._admitted(word), timeout=self.request_timeout)
        except asyncio.TimeoutError:
            self.logger.warning(f"Pipeline for '{word}' exceeded {self.request_timeout}s")
            return WordResult.failure(
                word,
                FailureKind.REQUEST_TIMEOUT,
                f"no result within {self.request_timeout}s",
            )
        except Exception as e:
            self.logger.exception(f"INTERNAL error scheduling '{word}': {e}")
            return WordResult.failure(
                word, FailureKind.INTERNAL_ERROR, f"internal error: {type(e).__name__}"
            )

    async def run(self, words: list[str]) -> list[WordResult]:
        """
        Run a batch of words and return their results in input order.

        Args:
            words: Words in the order the caller sent them

        Returns:
            One WordResult per word, positioned like the input

        Raises:
            InputError: If the batch exceeds the configured maximum size
        """
        if len(words) > self.max_batch_size:
            raise InputError(
                f"batch of {len(words)} words exceeds the maximum of {self.max_batch_size}"
            )

        aggregator = ResultAggregator(len(words))

        async def run_and_record(index: int, word: str) -> None:
            aggregator.record(index, await self.run_one(word))

        await asyncio.gather(*(run_and_record(i, word) for i, word in enumerate(words)))

        self.logger.info(
            f"Batch of {len(words)} finished: {aggregator.succeeded} ok, {aggregator.failed} failed"
        )
        return aggregator.results()
