"""TTS audio cache — normalized-text keys, expiring clips, in-flight deduplication."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from bmo_server.models.chat import CacheStatus
from bmo_server.services.fingerprint import normalize_speech_text, speech_fingerprint
from bmo_server.services.singleflight import SingleFlight
from bmo_server.services.ttl_store import BoundedTTLStore

logger = logging.getLogger(__name__)

Synthesizer = Callable[[str], Awaitable[bytes]]

COMMON_PHRASES = (
    "Hello!",
    "Hi friend!",
    "BMO is thinking...",
    "Okay!",
    "Yay!",
    "Hmm, let BMO think about that.",
    "BMO does not know.",
    "Goodbye, friend!",
)


class SpeechAudioCache:
    def __init__(
        self,
        store: BoundedTTLStore[bytes],
        flights: SingleFlight[bytes],
        ttl: float = 3600,
    ):
        self._store = store
        self._flights = flights
        self._ttl = ttl
        self._background: set[asyncio.Task] = set()

    @property
    def store(self) -> BoundedTTLStore[bytes]:
        return self._store

    @property
    def in_flight(self) -> int:
        return self._flights.in_flight

    def is_cached(self, text: str) -> bool:
        return speech_fingerprint(text) in self._store

    async def get_or_synthesize(self, text: str, synthesizer: Synthesizer) -> tuple[bytes, CacheStatus]:
        """Return audio for *text*, synthesizing it only when no clip is cached.

        Raises:
            ValueError: If *text* has nothing speakable after normalization.
        """
        if not normalize_speech_text(text):
            raise ValueError("text is empty after normalization")

        key = speech_fingerprint(text)
        cached = self._store.get(key)
        if cached is not None:
            logger.debug("TTS cache hit: %s", key)
            return cached, CacheStatus.HIT

        async def produce() -> bytes:
            audio = await synthesizer(text)
            self._store.set(key, audio, self._ttl)
            return audio

        audio, joined = await self._flights.run(key, produce)
        status = CacheStatus.DEDUP if joined else CacheStatus.MISS
        logger.info("TTS %s: %s (%d bytes)", status.value.lower(), key, len(audio))
        return audio, status

    async def preload(self, phrases: Iterable[str], synthesizer: Synthesizer) -> int:
        """Prime the cache with *phrases*. Never raises; returns how many succeeded."""
        phrases = list(phrases)
        results = await asyncio.gather(
            *(self.get_or_synthesize(p, synthesizer) for p in phrases),
            return_exceptions=True,
        )
        loaded = 0
        for phrase, result in zip(phrases, results):
            if isinstance(result, BaseException):
                logger.info("TTS preload failed for %r (non-critical): %s", phrase, result)
            else:
                loaded += 1
        logger.info("TTS preload complete: %d/%d phrases cached", loaded, len(results))
        return loaded

    def schedule_preload(
        self, phrases: Iterable[str], synthesizer: Synthesizer
    ) -> tuple[int, int]:
        """Start preloading in the background. Returns ``(queued, already_cached)``."""
        unique = list(dict.fromkeys(p for p in phrases if normalize_speech_text(p)))
        pending = [p for p in unique if not self.is_cached(p)]
        already_cached = len(unique) - len(pending)
        if pending:
            task = asyncio.create_task(self.preload(pending, synthesizer))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
        return len(pending), already_cached

    async def wait_for_background(self) -> None:
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    def cancel_background(self) -> None:
        for task in list(self._background):
            task.cancel()
