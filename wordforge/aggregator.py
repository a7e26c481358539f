"""Ordered assembly of per-word results."""

from typing import Optional

from wordforge.models import WordResult


class ResultAggregator:
    """Collects one WordResult per input position, in any completion order."""

    def __init__(self, size: int):
        self._slots: list[Optional[WordResult]] = [None] * size

    def record(self, index: int, result: WordResult) -> None:
        """Store the result for the word at `index`."""
        if self._slots[index] is not None:
            raise RuntimeError(f"Result for position {index} already recorded")
        self._slots[index] = result

    @property
    def complete(self) -> bool:
        return all(slot is not None for slot in self._slots)

    @property
    def succeeded(self) -> int:
        return sum(1 for slot in self._slots if slot is not None and slot.ok)

    @property
    def failed(self) -> int:
        return sum(1 for slot in self._slots if slot is not None and not slot.ok)

    def results(self) -> list[WordResult]:
        """Return the results in input order."""
        missing = [i for i, slot in enumerate(self._slots) if slot is None]
        if missing:
            raise RuntimeError(f"Batch incomplete, no result for positions {missing}")
        return list(self._slots)
