"""Upstream gateway — Anthropic chat completion and Fish Audio speech synthesis."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from bmo_server.config import Settings
from bmo_server.models.chat import ChatMessage

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Base upstream gateway error."""


class GatewayNotConfiguredError(GatewayError):
    """Raised when the credential for an upstream service is missing."""

    def __init__(self, service: str, env_var: str):
        super().__init__(f"{service} API key not configured on server")
        self.service = service
        self.env_var = env_var

    @property
    def hint(self) -> str:
        return f"Add {self.env_var} to the .env file and restart the server"


class UpstreamRejectedError(GatewayError):
    """Raised when an upstream service answers with a non-2xx status."""

    def __init__(self, service: str, status_code: int, body: Any):
        super().__init__(f"{service} API error: {status_code}")
        self.service = service
        self.status_code = status_code
        self.body = body


class UpstreamUnavailableError(GatewayError):
    """Raised when an upstream service cannot be reached at all."""


class UpstreamGateway:
    """Thin HTTP client for both upstream services. No retries, no caching."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self._settings = settings
        self._client = client or httpx.AsyncClient(timeout=settings.upstream_timeout_seconds)

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        await self._client.aclose()

    async def complete_chat(self, messages: Sequence[ChatMessage], system_prompt: str) -> str:
        """Send the conversation to the chat model and return its reply text.

        Raises:
            GatewayNotConfiguredError: If no Anthropic API key is set.
            UpstreamRejectedError: If the API answers with a non-2xx status.
            UpstreamUnavailableError: If the API cannot be reached.
        """
        s = self._settings
        if not s.anthropic_api_key:
            raise GatewayNotConfiguredError("Anthropic", "ANTHROPIC_API_KEY")

        payload: dict = {
            "model": s.chat_model,
            "max_tokens": s.chat_max_tokens,
            "temperature": s.chat_temperature,
            "messages": [m.model_dump() for m in messages],
        }
        if system_prompt:
            payload["system"] = system_prompt
        headers = {
            "x-api-key": s.anthropic_api_key,
            "anthropic-version": s.anthropic_version,
            "Content-Type": "application/json",
        }

        logger.info("Forwarding %d messages to Anthropic", len(messages))
        resp = await self._post("Anthropic", s.anthropic_api_url, payload, headers)
        data = resp.json()
        text = "".join(
            block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"
        )
        logger.info("Anthropic reply received (%d chars)", len(text))
        return text

    async def synthesize_speech(self, text: str) -> bytes:
        """Synthesize *text* with the BMO voice. Returns MP3 bytes.

        Raises:
            GatewayNotConfiguredError: If no Fish Audio API key is set.
            UpstreamRejectedError: If the API answers with a non-2xx status.
            UpstreamUnavailableError: If the API cannot be reached.
        """
        s = self._settings
        if not s.fish_audio_api_key:
            raise GatewayNotConfiguredError("Fish Audio", "FISH_AUDIO_API_KEY")

        payload = {
            "reference_id": s.fish_audio_voice_id,
            "text": text,
            "format": s.tts_format,
            "mp3_bitrate": s.tts_mp3_bitrate,
            "latency": s.tts_latency,
        }
        headers = {
            "Authorization": f"Bearer {s.fish_audio_api_key}",
            "Content-Type": "application/json",
        }

        logger.info("Synthesizing speech with Fish Audio: %r", text[:50])
        resp = await self._post("Fish Audio", s.fish_audio_api_url, payload, headers)
        logger.info("Fish Audio returned %.2f KB of audio", len(resp.content) / 1024)
        return resp.content

    async def _post(self, service: str, url: str, payload: dict, headers: dict) -> httpx.Response:
        try:
            resp = await self._client.post(url, json=payload, headers=headers)
        except httpx.RequestError as e:
            logger.error("%s request failed: %s", service, e)
            raise UpstreamUnavailableError(f"Cannot reach {service} API: {e}") from e

        if resp.is_success:
            return resp

        body = _error_body(resp)
        logger.error("%s API error: %s %s", service, resp.status_code, str(body)[:200])
        if resp.status_code == 401:
            logger.error("%s rejected the credential: API key is invalid or expired", service)
        elif resp.status_code == 429:
            logger.error("%s rate limit exceeded or out of credits", service)
        raise UpstreamRejectedError(service, resp.status_code, body)


def _error_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return {"error": resp.text} if resp.text else {}
