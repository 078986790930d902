"""Shared test fixtures for the BMO gateway."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from bmo_server.config import Settings
from bmo_server.services.container import CacheServices

FAKE_MP3 = b"\xff\xfb\x90\x00" * 64


class FakeClock:
    """Settable stand-in for time.time."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """Plays both Anthropic and Fish Audio behind an httpx.MockTransport.

    Set ``gate`` to an asyncio.Event to hold every request until it is set.
    """

    def __init__(self):
        self.chat_requests: list[dict] = []
        self.tts_requests: list[dict] = []
        self.chat_status = 200
        self.chat_error: dict = {"type": "error", "error": {"type": "overloaded_error"}}
        self.tts_status = 200
        self.tts_error: dict = {"status": 402, "message": "Insufficient balance"}
        self.gate: asyncio.Event | None = None
        self.fail_transport = False

    async def handler(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        if "anthropic" in request.url.host:
            self.chat_requests.append({"headers": dict(request.headers), "json": payload})
        else:
            self.tts_requests.append({"headers": dict(request.headers), "json": payload})

        if self.gate is not None:
            await self.gate.wait()
        if self.fail_transport:
            raise httpx.ConnectError("connection refused", request=request)

        if "anthropic" in request.url.host:
            if self.chat_status != 200:
                return httpx.Response(self.chat_status, json=self.chat_error)
            last = payload["messages"][-1]["content"]
            return httpx.Response(
                200,
                json={
                    "id": "msg_test",
                    "type": "message",
                    "role": "assistant",
                    "content": [{"type": "text", "text": f"BMO heard: {last}"}],
                },
            )

        if self.tts_status != 200:
            return httpx.Response(self.tts_status, json=self.tts_error)
        return httpx.Response(200, content=FAKE_MP3, headers={"content-type": "audio/mpeg"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def make_settings(**overrides) -> Settings:
    values = {
        "anthropic_api_key": "sk-ant-test",
        "fish_audio_api_key": "FAK_test",
        "cache_dir": "",
        "deployment_mode": "container",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest_asyncio.fixture
async def services(settings, upstream):
    http_client = httpx.AsyncClient(transport=upstream.transport)
    svc = CacheServices.create(settings, http_client)
    yield svc
    await svc.aclose()


@pytest_asyncio.fixture
async def app(services):
    """FastAPI app with test services injected."""
    from bmo_server.main import app as fastapi_app

    fastapi_app.state.services = services
    yield fastapi_app
    del fastapi_app.state.services


@pytest_asyncio.fixture
async def client(app):
    """Async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
