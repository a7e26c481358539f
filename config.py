"""Configuration settings for the wordforge generation service."""

from datetime import datetime
from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Base paths
PROJECT_ROOT = Path(__file__).parent
DATA_DIR = PROJECT_ROOT / "data"
OUTPUT_DIR = PROJECT_ROOT / "output"
CHECKPOINTS_DIR = PROJECT_ROOT / "checkpoints"
PROMPTS_DIR = PROJECT_ROOT / "prompts"
GRAMMARS_DIR = PROJECT_ROOT / "grammars"
LOGS_DIR = PROJECT_ROOT / "logs"

# Static assets (loaded once at startup, read-only afterwards)
WORD_ENTRY_PROMPT = PROMPTS_DIR / "word_entry.txt"
WORD_ENTRY_GRAMMAR = GRAMMARS_DIR / "word_entry.gbnf"

# Input files
VOCABULARY_TXT = DATA_DIR / "vocabulary.txt"

# Checkpoint files
GENERATION_CHECKPOINT = CHECKPOINTS_DIR / "generation_progress.json"


def get_output_path(timestamp: datetime | None = None) -> Path:
    """Generate output path with datetime suffix.

    Args:
        timestamp: Datetime to use for suffix. If None, uses current time.

    Returns:
        Path like output/word_entries_20260131_143022.json
    """
    if timestamp is None:
        timestamp = datetime.now()
    suffix = timestamp.strftime("%Y%m%d_%H%M%S")
    return OUTPUT_DIR / f"word_entries_{suffix}.json"


# Input limits
MAX_WORD_LENGTH = 64  # code points
DEFAULT_MAX_BATCH_SIZE = 32

# Engine settings
DEFAULT_ENGINE_URL = "http://127.0.0.1:8081"
ENGINE_TIMEOUT = 90  # seconds, per generation call
ENGINE_CONNECT_RETRIES = 3
ENGINE_SERVER_BINARY = "llama-server"

# Sampling defaults
DEFAULT_MAX_TOKENS = 1024
DEFAULT_TEMPERATURE = 0.4
DEFAULT_TOP_P = 0.9
DEFAULT_MIN_P = 0.05
DEFAULT_REPEAT_PENALTY = 1.1
RELAXED_TOP_P_CAP = 0.8

# Pipeline settings
DEFAULT_ADMISSION_CAPACITY = 8
DEFAULT_MAX_ATTEMPTS = 2
REQUEST_TIMEOUT = 120  # seconds, per request (admission wait included)

# Offline generation
DEFAULT_CHUNK_SIZE = 50
DRY_RUN_LIMIT = 10


class Settings(BaseSettings):
    """Process-wide settings, read once at startup.

    Values come from ``WORDFORGE_*`` environment variables or a ``.env`` file;
    CLI flags in ``main.py`` override them before the object is frozen.
    """

    model_config = SettingsConfigDict(
        env_prefix="WORDFORGE_",
        env_file=".env",
        extra="ignore",
        frozen=True,
        protected_namespaces=(),
    )

    # HTTP
    bind_host: str = "0.0.0.0"
    bind_port: int = Field(default=8080, ge=1, le=65535)

    # Engine
    engine_backend: str = Field(default="llama-server", pattern="^(llama-server|mock)$")
    engine_urls: Annotated[list[str], NoDecode] = Field(default_factory=lambda: [DEFAULT_ENGINE_URL])
    engine_timeout: float = Field(default=ENGINE_TIMEOUT, gt=0)
    model_path: Path | None = None
    context_size: int = Field(default=4096, ge=256)
    gpu_layers: int = Field(default=28, ge=0)

    # Sampling
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, ge=1)
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0)
    top_p: float = Field(default=DEFAULT_TOP_P, gt=0, le=1)
    min_p: float = Field(default=DEFAULT_MIN_P, ge=0, le=1)
    repeat_penalty: float = Field(default=DEFAULT_REPEAT_PENALTY, ge=0)

    # Pipeline
    admission_capacity: int = Field(default=DEFAULT_ADMISSION_CAPACITY, ge=1)
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    max_batch_size: int = Field(default=DEFAULT_MAX_BATCH_SIZE, ge=1)
    request_timeout: float = Field(default=REQUEST_TIMEOUT, gt=0)

    # Assets
    prompt_path: Path = WORD_ENTRY_PROMPT
    grammar_path: Path = WORD_ENTRY_GRAMMAR

    @field_validator("engine_urls", mode="before")
    @classmethod
    def parse_engine_urls(cls, v):
        """Parse engine URLs from a comma-separated string."""
        if isinstance(v, str):
            return [url.strip().rstrip("/") for url in v.split(",") if url.strip()]
        return v
