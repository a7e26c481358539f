"""HTTP API: single-word and batch generation endpoints."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from config import Settings
from wordforge.engine import InferenceEngine
from wordforge.logger import get_logger
from wordforge.models import FailureKind, WordPayload, WordsPayload
from wordforge.prompt_builder import InputError
from wordforge.resources import Resources, load_resources
from wordforge.service import build_engine, build_scheduler

logger = get_logger()

# Single-word failures; content failures after retries map to 502
STATUS_BY_KIND = {
    FailureKind.INPUT_ERROR: 400,
    FailureKind.ENGINE_UNAVAILABLE: 503,
    FailureKind.REQUEST_TIMEOUT: 504,
    FailureKind.INTERNAL_ERROR: 500,
}

DISCONNECT_POLL_INTERVAL = 0.5  # seconds


class ClientDisconnected(Exception):
    """Raised when the HTTP client goes away before its result is ready."""

    pass


def error_response(status_code: int, category: FailureKind, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "category": category.value})


async def run_until_disconnect(request: Request, work: Awaitable[Any]) -> Any:
    """
    Await `work` in its own task, cancelling it if the client disconnects.

    Cancellation reaches the admission wait and the engine call, and every
    held admission slot is released as the task unwinds.

    Raises:
        ClientDisconnected: If the client went away first
    """
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_INTERVAL)
            if done:
                return task.result()
            if await request.is_disconnected():
                raise ClientDisconnected()
    finally:
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)


def create_app(
    settings: Settings,
    engine: Optional[InferenceEngine] = None,
    resources: Optional[Resources] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Process settings
        engine: Engine to use; built from settings (and closed on shutdown) if omitted
        resources: Static assets; loaded from the configured paths if omitted

    Returns:
        FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        active_engine = engine or build_engine(settings)
        active_resources = resources or load_resources(settings.prompt_path, settings.grammar_path)
        app.state.engine = active_engine
        app.state.scheduler = build_scheduler(settings, active_engine, active_resources)
        logger.info(
            f"Engine '{active_engine.name}' ready, admission capacity {settings.admission_capacity}"
        )
        try:
            yield
        finally:
            if engine is None:
                await active_engine.aclose()

    app = FastAPI(title="wordforge", lifespan=lifespan)

    @app.exception_handler(RequestValidationError)
    async def invalid_body_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        return error_response(400, FailureKind.INPUT_ERROR, f"invalid request body: {details}")

    @app.exception_handler(ClientDisconnected)
    async def disconnected_handler(request: Request, exc: ClientDisconnected):
        logger.info(f"Client disconnected from {request.url.path}, work cancelled")
        return JSONResponse(status_code=499, content={"error": "client disconnected"})

    @app.post("/v1/word")
    async def generate_word(payload: WordPayload, request: Request):
        """Generate the linguistic description of one word."""
        scheduler = request.app.state.scheduler
        result = await run_until_disconnect(request, scheduler.run_one(payload.word))

        if result.ok:
            logger.info(f"POST /v1/word '{payload.word}' -> ok")
            return JSONResponse(content=result.data)

        status_code = STATUS_BY_KIND.get(result.category, 502)
        logger.warning(f"POST /v1/word '{payload.word}' -> {status_code} {result.error}")
        return error_response(status_code, result.category, result.error)

    @app.post("/v1/words")
    async def generate_words(payload: WordsPayload, request: Request):
        """Generate descriptions for a list of words; per-item status, always 200."""
        scheduler = request.app.state.scheduler
        try:
            results = await run_until_disconnect(request, scheduler.run(payload.words))
        except InputError as e:
            return error_response(400, FailureKind.INPUT_ERROR, str(e))

        return JSONResponse(content=[r.to_response() for r in results])

    @app.get("/health")
    async def health(request: Request):
        """Report the engine in use and current admission pool usage."""
        pool = request.app.state.scheduler.pool
        return {
            "status": "ok",
            "engine": request.app.state.engine.name,
            "admission": {"capacity": pool.capacity, "active": pool.active, "peak": pool.peak},
        }

    return app
