"""Wiring of settings into the engine, resources and scheduler."""

from functools import partial

from config import Settings
from wordforge.attempts import AttemptController
from wordforge.engine import InferenceEngine, MockEngine
from wordforge.llama_client import LlamaServerEngine
from wordforge.models import SamplingConfig
from wordforge.resources import Resources
from wordforge.scheduler import AdmissionPool, BatchScheduler


def sampling_from_settings(settings: Settings) -> SamplingConfig:
    """Base sampling configuration; the token budget never exceeds the context size."""
    return SamplingConfig(
        temperature=settings.temperature,
        top_p=settings.top_p,
        min_p=settings.min_p,
        repeat_penalty=settings.repeat_penalty,
        max_tokens=min(settings.max_tokens, settings.context_size),
    )


def build_engine(settings: Settings) -> InferenceEngine:
    """Create the engine selected by `engine_backend`."""
    if settings.engine_backend == "mock":
        return MockEngine()
    return LlamaServerEngine(settings.engine_urls, timeout=settings.engine_timeout)


def build_scheduler(
    settings: Settings,
    engine: InferenceEngine,
    resources: Resources,
    pool: AdmissionPool | None = None,
) -> BatchScheduler:
    """
    Create a scheduler whose pipelines share `engine`, `resources` and `pool`.

    Args:
        settings: Process settings
        engine: Engine every pipeline calls
        resources: Prompt template and grammar
        pool: Admission pool; a new one of `admission_capacity` slots if omitted

    Returns:
        Configured BatchScheduler
    """
    factory = partial(
        AttemptController,
        engine=engine,
        resources=resources,
        sampling=sampling_from_settings(settings),
        max_attempts=settings.max_attempts,
    )
    return BatchScheduler(
        pool or AdmissionPool(settings.admission_capacity),
        factory,
        max_batch_size=settings.max_batch_size,
        request_timeout=settings.request_timeout,
    )
