"""
Tests for the HTTP API
"""
import asyncio

import pytest
from fastapi.testclient import TestClient

from tests.helpers import ScriptedEngine, entry_json
from wordforge import api
from wordforge.api import ClientDisconnected, create_app, run_until_disconnect
from wordforge.engine import EngineUnavailableError


def nonsense_fails(word, n):
    if word == "xyzzyqq":
        return "I do not know this word."
    return entry_json(word)


@pytest.fixture
def scripted():
    return ScriptedEngine(nonsense_fails)


@pytest.fixture
def client(settings, resources, scripted):
    app = create_app(settings, engine=scripted, resources=resources)
    with TestClient(app) as test_client:
        yield test_client


def test_single_word_success(client):
    response = client.post("/v1/word", json={"word": "beautiful"})

    assert response.status_code == 200
    body = response.json()
    assert body["word"] == "beautiful"
    assert body["language"] == "english"
    assert "partOfSpeech" in body["meanings"][0]


def test_single_word_content_failure_is_502(client, scripted):
    response = client.post("/v1/word", json={"word": "xyzzyqq"})

    assert response.status_code == 502
    assert response.json()["category"] == "malformed_json"
    assert response.json()["error"].startswith("malformed_json: ")
    assert len(scripted.calls_for("xyzzyqq")) == 2


@pytest.mark.parametrize("word", ["", "   ", "a" * 65, "ru\u0000n"])
def test_single_word_invalid_input_is_400(client, scripted, word):
    response = client.post("/v1/word", json={"word": word})

    assert response.status_code == 400
    assert response.json()["category"] == "input_error"
    assert scripted.calls == []


@pytest.mark.parametrize("body", [{}, {"word": 5}, {"words": ["run"]}])
def test_malformed_body_is_400(client, body):
    response = client.post("/v1/word", json=body)

    assert response.status_code == 400
    assert response.json()["category"] == "input_error"


def test_engine_down_is_503(settings, resources):
    engine = ScriptedEngine(lambda word, n: EngineUnavailableError("refused"))
    with TestClient(create_app(settings, engine=engine, resources=resources)) as client:
        response = client.post("/v1/word", json={"word": "run"})

    assert response.status_code == 503
    assert response.json()["category"] == "engine_unavailable"


def test_request_timeout_is_504(settings, resources):
    engine = ScriptedEngine(delay=2)
    fast = settings.model_copy(update={"request_timeout": 0.05})
    with TestClient(create_app(fast, engine=engine, resources=resources)) as client:
        response = client.post("/v1/word", json={"word": "run"})

    assert response.status_code == 504
    assert response.json()["category"] == "request_timeout"


def test_internal_error_is_500(settings, resources):
    engine = ScriptedEngine(lambda word, n: RuntimeError("bug"))
    with TestClient(create_app(settings, engine=engine, resources=resources)) as client:
        response = client.post("/v1/word", json={"word": "run"})

    assert response.status_code == 500
    assert response.json()["category"] == "internal_error"


def test_batch_mixed_results_in_order(client):
    response = client.post("/v1/words", json={"words": ["beautiful", "run", "xyzzyqq"]})

    assert response.status_code == 200
    items = response.json()
    assert [item["word"] for item in items] == ["beautiful", "run", "xyzzyqq"]
    assert [item["ok"] for item in items] == [True, True, False]
    assert items[0]["data"]["word"] == "beautiful"
    assert "error" not in items[0]
    assert "data" not in items[2]
    assert items[2]["error"].startswith("malformed_json: ")


def test_batch_invalid_word_is_reported_per_item(client):
    items = client.post("/v1/words", json={"words": ["run", ""]}).json()

    assert items[0]["ok"]
    assert not items[1]["ok"]
    assert items[1]["error"].startswith("input_error: ")


def test_empty_batch(client):
    response = client.post("/v1/words", json={"words": []})

    assert response.status_code == 200
    assert response.json() == []


def test_batch_over_maximum_is_400(settings, resources, scripted):
    small = settings.model_copy(update={"max_batch_size": 2})
    with TestClient(create_app(small, engine=scripted, resources=resources)) as client:
        response = client.post("/v1/words", json={"words": ["a", "b", "c"]})

    assert response.status_code == 400
    assert "exceeds the maximum of 2" in response.json()["error"]
    assert scripted.calls == []


def test_batch_with_non_string_item_is_400(client):
    response = client.post("/v1/words", json={"words": ["run", 7]})
    assert response.status_code == 400


def test_batch_engine_down_still_200(settings, resources):
    engine = ScriptedEngine(lambda word, n: EngineUnavailableError("refused"))
    with TestClient(create_app(settings, engine=engine, resources=resources)) as client:
        response = client.post("/v1/words", json={"words": ["run", "walk"]})

    assert response.status_code == 200
    assert all(item["error"].startswith("engine_unavailable: ") for item in response.json())


def test_health_reports_engine_and_pool(client):
    body = client.get("/health").json()

    assert body["status"] == "ok"
    assert body["engine"] == "scripted"
    assert body["admission"] == {"capacity": 8, "active": 0, "peak": 0}


def test_mock_backend_from_settings(settings, resources):
    with TestClient(create_app(settings, resources=resources)) as client:
        response = client.post("/v1/word", json={"word": "lantern"})
        health = client.get("/health").json()

    assert response.status_code == 200
    assert response.json()["word"] == "lantern"
    assert health["engine"] == "mock"


class FakeRequest:
    def __init__(self, disconnect_after: int):
        self.polls = 0
        self.disconnect_after = disconnect_after

    async def is_disconnected(self) -> bool:
        self.polls += 1
        return self.polls >= self.disconnect_after


@pytest.mark.asyncio
async def test_disconnect_cancels_work(monkeypatch):
    monkeypatch.setattr(api, "DISCONNECT_POLL_INTERVAL", 0.01)
    cancelled = asyncio.Event()

    async def work():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    with pytest.raises(ClientDisconnected):
        await run_until_disconnect(FakeRequest(disconnect_after=2), work())

    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_disconnect_releases_admission_slots(monkeypatch, settings, resources):
    monkeypatch.setattr(api, "DISCONNECT_POLL_INTERVAL", 0.01)
    engine = ScriptedEngine(delay=10)
    app = create_app(settings, engine=engine, resources=resources)

    async with app.router.lifespan_context(app):
        scheduler = app.state.scheduler
        with pytest.raises(ClientDisconnected):
            await run_until_disconnect(FakeRequest(disconnect_after=3), scheduler.run(["a", "b"]))
        await asyncio.sleep(0.01)

        assert scheduler.pool.active == 0
        assert engine.cancelled == 2


@pytest.mark.asyncio
async def test_connected_client_gets_result(monkeypatch):
    monkeypatch.setattr(api, "DISCONNECT_POLL_INTERVAL", 0.01)

    async def work():
        await asyncio.sleep(0.03)
        return "done"

    assert await run_until_disconnect(FakeRequest(disconnect_after=1000), work()) == "done"
