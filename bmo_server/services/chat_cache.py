"""Chat completion cache — fingerprinted, expiring, with in-flight deduplication."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from bmo_server.models.chat import CacheStatus, ChatMessage, UserContext
from bmo_server.services.fingerprint import chat_fingerprint, request_key, trim_window
from bmo_server.services.singleflight import SingleFlight
from bmo_server.services.ttl_store import BoundedTTLStore

logger = logging.getLogger(__name__)

ChatFetcher = Callable[[Sequence[ChatMessage], str], Awaitable[str]]


@dataclass(frozen=True)
class ChatResult:
    text: str
    status: CacheStatus
    fingerprint: str


def build_system_prompt(base: str, user: UserContext | None) -> str:
    """Append the user's profile summary to *base*, if there is one."""
    summary = user.summary() if user else ""
    if not summary:
        return base
    if not base:
        return summary
    return f"{base}\n\n{summary}"


class ChatResponseCache:
    def __init__(
        self,
        store: BoundedTTLStore[str],
        flights: SingleFlight[str],
        window: int = 4,
        ttl: float = 1800,
        user_scoped: bool = True,
        standalone_keys: bool = True,
    ):
        if window <= 0:
            raise ValueError("window must be positive")
        self._store = store
        self._flights = flights
        self._window = window
        self._ttl = ttl
        self._user_scoped = user_scoped
        self._standalone_keys = standalone_keys

    @property
    def store(self) -> BoundedTTLStore[str]:
        return self._store

    @property
    def in_flight(self) -> int:
        return self._flights.in_flight

    def fingerprint(self, history: Sequence[ChatMessage], user: UserContext | None = None) -> str:
        trimmed = trim_window(history, self._window)
        return chat_fingerprint(
            trimmed, self._window, self._standalone_keys, scope=self._scope(user)
        )

    async def get_or_fetch(
        self,
        history: Sequence[ChatMessage],
        fetcher: ChatFetcher,
        system_prompt: str = "",
        user: UserContext | None = None,
    ) -> ChatResult:
        """Return the cached reply for *history*, or fetch, cache and return it.

        Only the last ``window`` messages are considered, both for the key and
        for the upstream call.
        """
        if not history:
            raise ValueError("conversation history is empty")

        trimmed = trim_window(history, self._window)
        scope = self._scope(user)
        fingerprint = chat_fingerprint(trimmed, self._window, self._standalone_keys, scope=scope)

        cached = self._store.get(fingerprint)
        if cached is not None:
            logger.debug("Chat cache hit: %s", fingerprint)
            return ChatResult(cached, CacheStatus.HIT, fingerprint)

        prompt = build_system_prompt(system_prompt, user)

        async def produce() -> str:
            text = await fetcher(trimmed, prompt)
            self._store.set(fingerprint, text, self._ttl)
            return text

        text, joined = await self._flights.run(request_key(trimmed, prompt, scope), produce)
        status = CacheStatus.DEDUP if joined else CacheStatus.MISS
        logger.debug("Chat cache %s: %s", status.value.lower(), fingerprint)
        return ChatResult(text, status, fingerprint)

    def _scope(self, user: UserContext | None) -> str | None:
        if self._user_scoped and user is not None:
            return f"user:{user.id}"
        return None
