"""Launching a local llama.cpp server that matches the service settings."""

import subprocess
from contextlib import contextmanager
from urllib.parse import urlparse

import httpx
from tenacity import RetryError, retry, retry_if_result, stop_after_delay, wait_fixed

import config
from config import Settings
from wordforge.logger import get_logger


class EngineLaunchError(RuntimeError):
    """Raised when the engine process cannot be started or never becomes healthy."""

    pass


def build_server_command(settings: Settings) -> list[str]:
    """
    Build the llama.cpp server command line for the first engine URL.

    The server gets one parallel slot per admission slot, so the admission
    pool never admits more callers than the engine can serve.

    Raises:
        EngineLaunchError: If no model path is configured
    """
    if settings.model_path is None:
        raise EngineLaunchError("model_path is required to launch the engine")

    url = urlparse(settings.engine_urls[0])
    return [
        config.ENGINE_SERVER_BINARY,
        "--model",
        str(settings.model_path),
        "--host",
        url.hostname or "127.0.0.1",
        "--port",
        str(url.port or 8081),
        "--ctx-size",
        str(settings.context_size),
        "--n-gpu-layers",
        str(settings.gpu_layers),
        "--parallel",
        str(settings.admission_capacity),
    ]


def wait_until_healthy(base_url: str, timeout: float = 120.0) -> None:
    """Block until the server's `/health` endpoint answers 200."""

    @retry(
        stop=stop_after_delay(timeout),
        wait=wait_fixed(1),
        retry=retry_if_result(lambda healthy: not healthy),
    )
    def check() -> bool:
        try:
            return httpx.get(f"{base_url}/health", timeout=2.0).status_code == 200
        except httpx.HTTPError:
            return False

    try:
        check()
    except RetryError as e:
        raise EngineLaunchError(f"Engine at {base_url} not healthy after {timeout}s") from e


@contextmanager
def launched_engine(settings: Settings):
    """Start the llama.cpp server for the lifetime of the block."""
    logger = get_logger()
    cmd = build_server_command(settings)
    logger.info(f"Launching engine: {' '.join(cmd)}")

    config.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    engine_log = open(config.LOGS_DIR / "engine.log", "a", encoding="utf-8")
    try:
        process = subprocess.Popen(cmd, stdout=engine_log, stderr=subprocess.STDOUT)
    except FileNotFoundError as e:
        engine_log.close()
        raise EngineLaunchError(f"{config.ENGINE_SERVER_BINARY} not found on PATH") from e

    try:
        wait_until_healthy(settings.engine_urls[0])
        logger.info("Engine is healthy")
        yield process
    finally:
        process.terminate()
        try:
            process.wait(timeout=10)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
        engine_log.close()
        logger.info("Engine stopped")
