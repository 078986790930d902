"""Tests for AsyncBMOClient.

Uses httpx mock transport to simulate gateway responses without real HTTP calls,
plus one end-to-end pass through the real app.
"""

from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport

from bmo_client import (
    APOLOGY_MESSAGE,
    AsyncBMOClient,
    AuthenticationError,
    BackendUnavailableError,
    BMOClientError,
    RateLimitError,
)

HISTORY = [{"role": "user", "content": "Hi BMO!"}]


def _mock_transport(status: int, json_body: dict | None = None, content: bytes | None = None, headers=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if content is not None:
            return httpx.Response(status, content=content, headers=headers or {})
        return httpx.Response(status, json=json_body, headers=headers or {})

    return httpx.MockTransport(handler)


def _refusing_transport():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.MockTransport(handler)


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_returns_text(self):
        transport = _mock_transport(200, {"content": [{"type": "text", "text": "Hello friend!"}]})
        async with AsyncBMOClient("http://test", transport=transport) as client:
            assert await client.send_message(HISTORY) == "Hello friend!"

    @pytest.mark.asyncio
    async def test_401_raises_auth_error(self):
        transport = _mock_transport(401, {"type": "error"})
        async with AsyncBMOClient("http://test", transport=transport) as client:
            with pytest.raises(AuthenticationError):
                await client.send_message(HISTORY)

    @pytest.mark.asyncio
    async def test_429_raises_rate_limit(self):
        transport = _mock_transport(429, {"type": "error"}, headers={"retry-after": "30"})
        async with AsyncBMOClient("http://test", transport=transport) as client:
            with pytest.raises(RateLimitError) as exc_info:
                await client.send_message(HISTORY)
        assert exc_info.value.retry_after == 30

    @pytest.mark.asyncio
    async def test_500_raises_client_error(self):
        transport = _mock_transport(500, {"error": "Anthropic API key not configured on server"})
        async with AsyncBMOClient("http://test", transport=transport) as client:
            with pytest.raises(BMOClientError) as exc_info:
                await client.send_message(HISTORY)
        assert exc_info.value.status_code == 500
        assert not isinstance(exc_info.value, BackendUnavailableError)

    @pytest.mark.asyncio
    async def test_unreachable_backend_is_distinct(self):
        async with AsyncBMOClient("http://localhost:3001", transport=_refusing_transport()) as client:
            with pytest.raises(BackendUnavailableError) as exc_info:
                await client.send_message(HISTORY)
        assert "http://localhost:3001" in str(exc_info.value)
        assert exc_info.value.status_code is None


class TestGracefulDegradation:
    @pytest.mark.asyncio
    async def test_reply_apologizes_when_backend_down(self):
        async with AsyncBMOClient("http://test", transport=_refusing_transport()) as client:
            reply = await client.reply(HISTORY)
        assert reply.text == APOLOGY_MESSAGE
        assert reply.mood == "sad"

    @pytest.mark.asyncio
    async def test_reply_apologizes_on_malformed_body(self):
        transport = _mock_transport(200, {"unexpected": True})
        async with AsyncBMOClient("http://test", transport=transport) as client:
            reply = await client.reply(HISTORY)
        assert reply.mood == "sad"

    @pytest.mark.asyncio
    async def test_speak_returns_none_on_failure(self):
        transport = _mock_transport(402, {"message": "Insufficient balance"})
        async with AsyncBMOClient("http://test", transport=transport) as client:
            assert await client.speak("Hello") is None

    @pytest.mark.asyncio
    async def test_synthesize_reads_cache_header(self):
        transport = _mock_transport(
            200, content=b"ID3audio", headers={"content-type": "audio/mpeg", "x-cache": "HIT"}
        )
        async with AsyncBMOClient("http://test", transport=transport) as client:
            clip = await client.synthesize("Hello")
        assert clip.audio == b"ID3audio"
        assert clip.cached is True


class TestAgainstGateway:
    @pytest.mark.asyncio
    async def test_round_trip_through_app(self, app, upstream):
        async with AsyncBMOClient("http://test", transport=ASGITransport(app=app)) as client:
            first = await client.reply(HISTORY, system="You are BMO")
            second = await client.reply(HISTORY, system="You are BMO")
            clip = await client.speak("Hello friend!")
            health = await client.health()

        assert first.text == "BMO heard: Hi BMO!"
        assert first.cache_status == "MISS"
        assert second.cache_status == "HIT"
        assert clip is not None and clip.cache_status == "MISS"
        assert health["cache"]["chat_entries"] == 1
        assert len(upstream.chat_requests) == 1
