"""Resume state for offline generation runs."""

import fcntl
import os
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from wordforge.models import CheckpointData, WordResult


class CheckpointManager:
    """
    Keeps which words of a word list are done and which failed, and why.

    The file is rewritten after every scheduler chunk, so an interrupted run
    loses at most the chunk in flight.
    """

    def __init__(self, checkpoint_path: Path):
        self.checkpoint_path = checkpoint_path
        self._lock_path = checkpoint_path.with_suffix(".lock")
        self._data: Optional[CheckpointData] = None

    @contextmanager
    def _file_lock(self):
        """Exclusive fcntl lock shared by every process using this checkpoint."""
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def load(self) -> CheckpointData:
        if self._data is None:
            with self._file_lock():
                if self.checkpoint_path.exists():
                    self._data = CheckpointData.model_validate_json(
                        self.checkpoint_path.read_text(encoding="utf-8")
                    )
                else:
                    self._data = CheckpointData()
        return self._data

    def _write(self) -> None:
        # Write then rename, so a crash never leaves a truncated checkpoint
        tmp_path = self.checkpoint_path.with_suffix(".tmp")
        with self._file_lock():
            tmp_path.write_text(self._data.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp_path, self.checkpoint_path)

    def record_results(self, results: list[WordResult], last_index: int) -> None:
        """
        Record one chunk of pipeline results and persist them.

        A success clears an earlier failure of the same word, so a resumed run
        that retries failures leaves a clean checkpoint behind.

        Args:
            results: Results of the chunk, in input order
            last_index: Position of the chunk's last word in the word list
        """
        data = self.load()
        for result in results:
            if result.ok:
                if result.word not in data.processed_words:
                    data.processed_words.append(result.word)
                data.failed_words.pop(result.word, None)
            else:
                data.failed_words[result.word] = result.category.value
        data.last_index = last_index
        data.updated_at = datetime.now().isoformat(timespec="seconds")
        self._write()

    def is_processed(self, word: str) -> bool:
        return word in self.load().processed_words

    def failed_words(self) -> dict[str, str]:
        """Failed words mapped to the failure category of their last run."""
        return dict(self.load().failed_words)

    def reset(self) -> None:
        """Forget all progress and delete the file."""
        self._data = CheckpointData()
        self.checkpoint_path.unlink(missing_ok=True)

    @property
    def processed_count(self) -> int:
        return len(self.load().processed_words)

    @property
    def failed_count(self) -> int:
        return len(self.load().failed_words)
