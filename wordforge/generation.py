"""Offline generation: word list file -> JSON entries, with checkpoint/resume."""

import asyncio
import json
from pathlib import Path

from tqdm import tqdm

import config
from config import Settings
from wordforge.checkpoint import CheckpointManager
from wordforge.engine import InferenceEngine
from wordforge.logger import get_logger
from wordforge.models import FailureKind, WordResult
from wordforge.resources import Resources, load_resources
from wordforge.scheduler import BatchScheduler
from wordforge.service import build_engine, build_scheduler


class EngineDownError(RuntimeError):
    """Raised when a chunk reports the engine unavailable; the run stops early."""

    pass


def load_vocabulary_words(path: Path = config.VOCABULARY_TXT) -> list[str]:
    """Load words from a text file (one word per line, blank lines skipped)."""
    words = []
    seen = set()
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            word = line.strip()
            if word and word not in seen:
                seen.add(word)
                words.append(word)
    return words


def load_output(path: Path) -> list[dict]:
    """Load previously generated entries from JSON."""
    if not path.exists():
        return []
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def save_output(entries: list[dict], path: Path) -> None:
    """Save generated entries to JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(entries, f, ensure_ascii=False, indent=2)


def chunked(words: list[str], size: int) -> list[list[str]]:
    """Split words into consecutive chunks of at most `size`."""
    return [words[i : i + size] for i in range(0, len(words), size)]


async def generate_entries(
    words: list[str],
    scheduler: BatchScheduler,
    checkpoint: CheckpointManager,
    output_path: Path,
    chunk_size: int = config.DEFAULT_CHUNK_SIZE,
    existing: list[dict] | None = None,
) -> list[dict]:
    """
    Generate entries for `words` chunk by chunk, saving after every chunk.

    Args:
        words: Words still to process, in order
        scheduler: Scheduler running the pipelines
        checkpoint: Progress checkpoint
        output_path: JSON file receiving all successful entries
        chunk_size: Words per scheduler batch (capped at the scheduler's maximum)
        existing: Entries from an earlier run to keep

    Returns:
        All successful entries, earlier ones first

    Raises:
        EngineDownError: If a chunk reports the engine unavailable
    """
    logger = get_logger()
    entries_by_word = {entry["word"]: entry for entry in existing or []}
    size = min(chunk_size, scheduler.max_batch_size)
    processed = 0

    with tqdm(total=len(words), desc="  Generating") as pbar:
        for chunk in chunked(words, size):
            results: list[WordResult] = await scheduler.run(chunk)
            processed += len(chunk)

            for result in results:
                if result.ok:
                    entries_by_word[result.word] = result.data
                else:
                    logger.warning(f"  Failed: {result.word} - {result.error}")

            checkpoint.record_results(results, processed - 1)
            save_output(list(entries_by_word.values()), output_path)
            pbar.update(len(chunk))

            if any(r.category is FailureKind.ENGINE_UNAVAILABLE for r in results):
                raise EngineDownError(
                    f"Engine unavailable after {processed}/{len(words)} words; progress saved"
                )

    return list(entries_by_word.values())


def run_generation(
    settings: Settings,
    input_path: Path = config.VOCABULARY_TXT,
    output_path: Path | None = None,
    checkpoint_path: Path = config.GENERATION_CHECKPOINT,
    resume: bool = False,
    dry_run: bool = False,
    chunk_size: int = config.DEFAULT_CHUNK_SIZE,
    engine: InferenceEngine | None = None,
    resources: Resources | None = None,
) -> list[dict]:
    """
    Run offline generation over a word list file.

    Args:
        settings: Process settings (engine, sampling, pipeline limits)
        input_path: Word list, one word per line
        output_path: Output JSON path. If None, generates one with the current timestamp.
        checkpoint_path: Checkpoint file
        resume: Skip words already processed and keep earlier entries
        dry_run: Only process the first few words
        chunk_size: Words per scheduler batch
        engine: Engine to use; built from settings (and closed afterwards) if omitted
        resources: Static assets; loaded from the configured paths if omitted

    Returns:
        All successful entries
    """
    logger = get_logger()

    if output_path is None:
        output_path = config.get_output_path()

    logger.info("Generating word entries...")

    words = load_vocabulary_words(input_path)
    logger.info(f"  Loaded {len(words)} words from {input_path}")

    if dry_run:
        words = words[: config.DRY_RUN_LIMIT]
        logger.info(f"  Dry run: processing {len(words)} words")

    checkpoint = CheckpointManager(checkpoint_path)
    if not resume:
        checkpoint.reset()

    existing = load_output(output_path) if resume else []
    words_to_process = [w for w in words if not checkpoint.is_processed(w)] if resume else words

    if not words_to_process:
        logger.info("  No words to process (all already completed)")
        return existing

    logger.info(f"  Processing {len(words_to_process)} words...")

    async def generate() -> list[dict]:
        active_engine = engine or build_engine(settings)
        try:
            scheduler = build_scheduler(
                settings,
                active_engine,
                resources or load_resources(settings.prompt_path, settings.grammar_path),
            )
            return await generate_entries(
                words_to_process,
                scheduler,
                checkpoint,
                output_path,
                chunk_size=chunk_size,
                existing=existing,
            )
        finally:
            if engine is None:
                await active_engine.aclose()

    try:
        entries = asyncio.run(generate())
    except EngineDownError as e:
        logger.error(f"  {e}")
        logger.error("  Stopping early. Use --resume to continue once the engine is back.")
        return load_output(output_path)

    logger.info(f"  Saved {len(entries)} entries to: {output_path}")
    logger.info(f"  Successfully processed: {checkpoint.processed_count}")
    logger.info(f"  Failed: {checkpoint.failed_count}")

    failed_words = checkpoint.failed_words()
    if failed_words:
        sample = [f"{word} ({category})" for word, category in list(failed_words.items())[:5]]
        logger.warning(f"Failed words ({len(failed_words)}): {', '.join(sample)}")
        if len(failed_words) > 5:
            logger.warning(f"  ... and {len(failed_words) - 5} more")

    return entries
