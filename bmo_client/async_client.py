"""Asynchronous client for the BMO gateway."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import httpx

from bmo_client.exceptions import (
    AuthenticationError,
    BackendUnavailableError,
    BMOClientError,
    RateLimitError,
)
from bmo_client.models import APOLOGY_MESSAGE, Reply, SpeechClip

logger = logging.getLogger(__name__)


class AsyncBMOClient:
    """Async client for a BMO gateway.

    Usage:
        async with AsyncBMOClient(base_url="http://localhost:3001") as client:
            reply = await client.reply([{"role": "user", "content": "Hi BMO!"}])
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3001",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(base_url=self._base_url, timeout=timeout, transport=transport)

    async def send_message(
        self,
        history: Sequence[dict],
        system: str | None = None,
        user: dict | None = None,
    ) -> str:
        """Send the conversation and return BMO's reply text.

        Raises:
            BackendUnavailableError: The gateway could not be reached.
            AuthenticationError: The gateway's upstream key was rejected.
            RateLimitError: The upstream quota is exhausted.
            BMOClientError: Any other failure status.
        """
        text, _ = await self._chat(history, system, user)
        return text

    async def reply(
        self,
        history: Sequence[dict],
        system: str | None = None,
        user: dict | None = None,
    ) -> Reply:
        """Like send_message, but never raises: failures become an in-character apology."""
        try:
            text, cache_status = await self._chat(history, system, user)
        except BMOClientError as e:
            logger.error("Error communicating with BMO backend: %s", e)
            return Reply(text=APOLOGY_MESSAGE, mood="sad")
        return Reply(text=text, cache_status=cache_status)

    async def synthesize(self, text: str) -> SpeechClip:
        resp = await self._post("/api/tts", {"text": text})
        return SpeechClip(
            audio=resp.content,
            cache_status=resp.headers.get("x-cache"),
            content_type=resp.headers.get("content-type", "audio/mpeg"),
        )

    async def speak(self, text: str) -> SpeechClip | None:
        """Synthesize *text*, or return None so the caller can carry on text-only."""
        try:
            return await self.synthesize(text)
        except BMOClientError as e:
            logger.warning("TTS unavailable, continuing without voice: %s", e)
            return None

    async def preload(self, phrases: Sequence[str] | None = None) -> dict:
        body = {"phrases": list(phrases)} if phrases else {}
        resp = await self._post("/api/tts/preload", body)
        return resp.json()

    async def health(self) -> dict:
        try:
            resp = await self._http.get("/health")
        except httpx.TransportError as e:
            raise BackendUnavailableError(self._base_url) from e
        _raise_for_status(resp)
        return resp.json()

    async def _chat(
        self, history: Sequence[dict], system: str | None, user: dict | None
    ) -> tuple[str, str | None]:
        body: dict = {"messages": list(history)}
        if system:
            body["system"] = system
        if user:
            body["user"] = user
        resp = await self._post("/api/chat", body)
        try:
            text = resp.json()["content"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise BMOClientError(f"Malformed chat reply: {e}", status_code=resp.status_code) from e
        return text, resp.headers.get("x-cache")

    async def _post(self, path: str, body: dict) -> httpx.Response:
        try:
            resp = await self._http.post(path, json=body)
        except httpx.TransportError as e:
            raise BackendUnavailableError(self._base_url) from e
        _raise_for_status(resp)
        return resp

    async def close(self):
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()


def _raise_for_status(resp: httpx.Response) -> None:
    if resp.status_code < 400:
        return
    if resp.status_code == 401:
        raise AuthenticationError()
    if resp.status_code == 429:
        retry_after = resp.headers.get("retry-after")
        raise RateLimitError(int(retry_after) if retry_after and retry_after.isdigit() else None)
    if resp.status_code == 500:
        raise BMOClientError(
            f"Backend server error: {resp.text[:200]}", status_code=500
        )
    raise BMOClientError(f"API error: {resp.status_code} - {resp.text[:200]}", status_code=resp.status_code)
