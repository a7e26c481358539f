"""
Pytest configuration and fixtures
"""
import pytest

from config import Settings
from tests.helpers import ScriptedEngine
from wordforge.models import SamplingConfig
from wordforge.resources import Resources, load_resources


@pytest.fixture(scope="session")
def resources() -> Resources:
    """The real prompt template and grammar shipped with the project."""
    return load_resources()


@pytest.fixture
def engine() -> ScriptedEngine:
    return ScriptedEngine()


@pytest.fixture
def sampling() -> SamplingConfig:
    return SamplingConfig(temperature=0.4, top_p=0.9, min_p=0.05, repeat_penalty=1.1, max_tokens=512)


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        engine_backend="mock",
        admission_capacity=8,
        max_attempts=2,
        max_batch_size=32,
        request_timeout=5,
    )
