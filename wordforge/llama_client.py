"""llama.cpp server client for grammar-constrained generation."""

import itertools
from typing import Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

import config
from wordforge.engine import (
    EngineAbortedError,
    EngineTimeoutError,
    EngineUnavailableError,
    InferenceEngine,
)
from wordforge.logger import get_logger
from wordforge.models import SamplingConfig
from wordforge.prompt_builder import Prompt


def build_completion_payload(prompt: Prompt, grammar: str, sampling: SamplingConfig) -> dict:
    """
    Build the request body for the llama.cpp `/completion` endpoint.

    Args:
        prompt: Prompt for one word
        grammar: GBNF grammar constraining the output
        sampling: Decoding parameters

    Returns:
        JSON-serializable payload
    """
    return {
        "prompt": prompt.text,
        "grammar": grammar,
        "temperature": sampling.temperature,
        "top_p": sampling.top_p,
        "min_p": sampling.min_p,
        "repeat_penalty": sampling.repeat_penalty,
        "n_predict": sampling.max_tokens,
        "stream": False,
        "cache_prompt": True,
    }


@retry(
    stop=stop_after_attempt(config.ENGINE_CONNECT_RETRIES),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    retry=retry_if_exception_type(httpx.ConnectError),
    reraise=True,
)
async def post_completion(client: httpx.AsyncClient, url: str, payload: dict) -> httpx.Response:
    """POST a completion request, retrying only when the connection cannot be made."""
    return await client.post(url, json=payload)


class LlamaServerEngine(InferenceEngine):
    """
    Engine backed by one or more llama.cpp HTTP servers.

    Each base URL is one independently usable model context; calls are spread
    over them round-robin. Cancelling the awaiting task closes the in-flight
    request, which makes the server stop generating for it.
    """

    name = "llama-server"

    def __init__(
        self,
        base_urls: list[str],
        timeout: float = config.ENGINE_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the engine.

        Args:
            base_urls: Server base URLs, e.g. http://127.0.0.1:8081
            timeout: Read timeout for one generation call, in seconds
            client: Optional preconfigured HTTP client (used by tests)
        """
        if not base_urls:
            raise ValueError("At least one engine URL is required")
        self.base_urls = [url.rstrip("/") for url in base_urls]
        self._next_url = itertools.cycle(self.base_urls)
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=5.0))
        self.logger = get_logger()

    async def generate(self, prompt: Prompt, grammar: str, sampling: SamplingConfig) -> str:
        url = f"{next(self._next_url)}/completion"
        payload = build_completion_payload(prompt, grammar, sampling)

        try:
            response = await post_completion(self._client, url, payload)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            raise EngineUnavailableError(f"Cannot reach engine at {url}: {e}") from e
        except httpx.TimeoutException as e:
            raise EngineTimeoutError(f"Engine did not answer in time ({url})") from e
        except (httpx.RemoteProtocolError, httpx.ReadError) as e:
            raise EngineAbortedError(f"Engine connection dropped mid-generation: {e}") from e
        except httpx.HTTPError as e:
            raise EngineUnavailableError(f"Engine request failed: {e}") from e

        if response.status_code != 200:
            raise EngineUnavailableError(
                f"Engine returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise EngineUnavailableError(f"Engine returned a non-JSON envelope: {e}") from e

        content = data.get("content") if isinstance(data, dict) else None
        if not isinstance(content, str):
            raise EngineUnavailableError("Engine response has no 'content' field")

        if data.get("stopped_limit"):
            self.logger.debug(f"Generation for '{prompt.word}' hit the token budget")

        return content

    async def probe(self) -> dict[str, bool]:
        """Check every configured server's `/health` endpoint."""
        status = {}
        for base_url in self.base_urls:
            try:
                response = await self._client.get(f"{base_url}/health", timeout=5.0)
                status[base_url] = response.status_code == 200
            except httpx.HTTPError:
                status[base_url] = False
        return status

    async def aclose(self) -> None:
        await self._client.aclose()
