"""
Tests for offline generation and checkpointing
"""
import json

import pytest

from tests.helpers import ScriptedEngine, entry_json
from wordforge.checkpoint import CheckpointManager
from wordforge.engine import EngineUnavailableError
from wordforge.generation import chunked, load_output, load_vocabulary_words, run_generation
from wordforge.models import FailureKind, WordResult


@pytest.fixture
def vocabulary(tmp_path):
    path = tmp_path / "vocabulary.txt"
    path.write_text("beautiful\n\nrun\n  xyzzyqq  \nrun\nlantern\n", encoding="utf-8")
    return path


@pytest.fixture
def paths(tmp_path):
    return {
        "output_path": tmp_path / "out" / "entries.json",
        "checkpoint_path": tmp_path / "checkpoints" / "progress.json",
    }


def nonsense_fails(word, n):
    if word == "xyzzyqq":
        return "not an entry"
    return entry_json(word)


def test_load_vocabulary_skips_blanks_and_duplicates(vocabulary):
    assert load_vocabulary_words(vocabulary) == ["beautiful", "run", "xyzzyqq", "lantern"]


def test_load_vocabulary_large_file_keeps_first_occurrences(tmp_path):
    path = tmp_path / "large.txt"
    words = [f"word{i}" for i in range(50000)]
    path.write_text("\n".join(words + words[:100]), encoding="utf-8")

    assert load_vocabulary_words(path) == words


def test_chunked():
    assert chunked(["a", "b", "c", "d", "e"], 2) == [["a", "b"], ["c", "d"], ["e"]]
    assert chunked([], 3) == []


def test_load_output_missing_file(tmp_path):
    assert load_output(tmp_path / "missing.json") == []


def test_generation_writes_successful_entries(settings, resources, vocabulary, paths):
    engine = ScriptedEngine(nonsense_fails)

    entries = run_generation(
        settings, input_path=vocabulary, engine=engine, resources=resources, chunk_size=2, **paths
    )

    assert [e["word"] for e in entries] == ["beautiful", "run", "lantern"]
    assert load_output(paths["output_path"]) == entries

    checkpoint = CheckpointManager(paths["checkpoint_path"])
    assert checkpoint.processed_count == 3
    assert checkpoint.failed_words() == {"xyzzyqq": "malformed_json"}
    assert checkpoint.load().last_index == 3


def test_dry_run_limits_words(settings, resources, tmp_path, paths):
    vocabulary = tmp_path / "many.txt"
    vocabulary.write_text("\n".join(f"word{i}" for i in range(25)), encoding="utf-8")
    engine = ScriptedEngine()

    entries = run_generation(
        settings, input_path=vocabulary, dry_run=True, engine=engine, resources=resources, **paths
    )

    assert len(entries) == 10
    assert len(engine.calls) == 10


def test_resume_skips_processed_words_and_retries_failures(settings, resources, vocabulary, paths):
    run_generation(
        settings,
        input_path=vocabulary,
        engine=ScriptedEngine(nonsense_fails),
        resources=resources,
        **paths,
    )

    engine = ScriptedEngine()
    entries = run_generation(
        settings, input_path=vocabulary, resume=True, engine=engine, resources=resources, **paths
    )

    assert [w for w, _ in engine.calls] == ["xyzzyqq"]
    assert [e["word"] for e in entries] == ["beautiful", "run", "lantern", "xyzzyqq"]
    checkpoint = CheckpointManager(paths["checkpoint_path"])
    assert checkpoint.failed_words() == {}
    assert checkpoint.processed_count == 4


def test_resume_with_everything_done_makes_no_calls(settings, resources, vocabulary, paths):
    run_generation(settings, input_path=vocabulary, engine=ScriptedEngine(), resources=resources, **paths)

    engine = ScriptedEngine()
    entries = run_generation(
        settings, input_path=vocabulary, resume=True, engine=engine, resources=resources, **paths
    )

    assert engine.calls == []
    assert len(entries) == 4


def test_fresh_run_resets_checkpoint(settings, resources, vocabulary, paths):
    run_generation(settings, input_path=vocabulary, engine=ScriptedEngine(), resources=resources, **paths)

    engine = ScriptedEngine()
    run_generation(settings, input_path=vocabulary, engine=engine, resources=resources, **paths)

    assert len(engine.calls) == 4


def test_engine_down_stops_after_current_chunk(settings, resources, vocabulary, paths):
    def script(word, n):
        if word == "xyzzyqq":
            return EngineUnavailableError("refused")
        return entry_json(word)

    engine = ScriptedEngine(script)

    entries = run_generation(
        settings, input_path=vocabulary, engine=engine, resources=resources, chunk_size=1, **paths
    )

    # lantern is never attempted
    assert [w for w, _ in engine.calls] == ["beautiful", "run", "xyzzyqq"]
    assert [e["word"] for e in entries] == ["beautiful", "run"]
    assert CheckpointManager(paths["checkpoint_path"]).failed_words() == {"xyzzyqq": "engine_unavailable"}


def test_chunk_size_is_capped_by_batch_limit(settings, resources, vocabulary, paths):
    small = settings.model_copy(update={"max_batch_size": 1})

    entries = run_generation(
        small, input_path=vocabulary, engine=ScriptedEngine(), resources=resources, chunk_size=50, **paths
    )

    assert len(entries) == 4


def ok(word):
    return WordResult.success(word, {"word": word})


def failed(word, kind=FailureKind.MALFORMED_JSON):
    return WordResult.failure(word, kind, "bad output")


class TestCheckpointManager:
    def test_new_checkpoint_is_empty(self, tmp_path):
        checkpoint = CheckpointManager(tmp_path / "cp.json")
        assert checkpoint.processed_count == 0
        assert checkpoint.failed_count == 0
        assert not checkpoint.is_processed("run")

    def test_record_results_persists(self, tmp_path):
        path = tmp_path / "cp.json"
        CheckpointManager(path).record_results([ok("run"), failed("xyzzyqq")], 1)

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["processed_words"] == ["run"]
        assert data["failed_words"] == {"xyzzyqq": "malformed_json"}
        assert data["last_index"] == 1
        assert data["updated_at"]
        assert not path.with_suffix(".tmp").exists()

        reloaded = CheckpointManager(path)
        assert reloaded.is_processed("run")
        assert reloaded.failed_words() == {"xyzzyqq": "malformed_json"}

    def test_success_clears_earlier_failure(self, tmp_path):
        checkpoint = CheckpointManager(tmp_path / "cp.json")
        checkpoint.record_results([failed("run")], 0)
        checkpoint.record_results([ok("run")], 0)

        assert checkpoint.failed_words() == {}
        assert checkpoint.processed_count == 1

    def test_latest_failure_category_wins(self, tmp_path):
        checkpoint = CheckpointManager(tmp_path / "cp.json")
        checkpoint.record_results([failed("run")], 0)
        checkpoint.record_results([failed("run", FailureKind.ENGINE_UNAVAILABLE)], 0)

        assert checkpoint.failed_words() == {"run": "engine_unavailable"}

    def test_words_are_not_duplicated(self, tmp_path):
        checkpoint = CheckpointManager(tmp_path / "cp.json")
        checkpoint.record_results([ok("run"), failed("walk")], 1)
        checkpoint.record_results([ok("run"), failed("walk")], 1)

        assert checkpoint.processed_count == 1
        assert checkpoint.failed_count == 1

    def test_reset_removes_file(self, tmp_path):
        path = tmp_path / "cp.json"
        checkpoint = CheckpointManager(path)
        checkpoint.record_results([ok("run")], 0)

        checkpoint.reset()

        assert not path.exists()
        assert checkpoint.processed_count == 0
