"""Per-process service container — one instance built at startup, shared by all routes."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from bmo_server.config import Settings
from bmo_server.models.chat import CacheOccupancy
from bmo_server.services.chat_cache import ChatResponseCache
from bmo_server.services.singleflight import SingleFlight
from bmo_server.services.snapshot_storage import get_clip_storage, get_snapshot_storage
from bmo_server.services.tts_cache import SpeechAudioCache
from bmo_server.services.ttl_store import BoundedTTLStore
from bmo_server.services.upstream import UpstreamGateway

logger = logging.getLogger(__name__)


@dataclass
class CacheServices:
    settings: Settings
    gateway: UpstreamGateway
    chat_cache: ChatResponseCache
    tts_cache: SpeechAudioCache

    @classmethod
    def create(cls, settings: Settings, http_client: httpx.AsyncClient | None = None) -> CacheServices:
        chat_store: BoundedTTLStore[str] = BoundedTTLStore(
            capacity=settings.chat_cache_max_entries,
            name="chat_cache",
            storage=get_snapshot_storage(
                settings.cache_dir, "chat_cache", settings.cache_snapshot_max_bytes
            ),
        )
        tts_store: BoundedTTLStore[bytes] = BoundedTTLStore(
            capacity=settings.tts_cache_max_entries,
            name="tts_cache",
            storage=get_snapshot_storage(
                settings.cache_dir, "tts_cache", settings.cache_snapshot_max_bytes
            ),
            clips=get_clip_storage(settings.cache_dir, "tts_cache"),
        )
        return cls(
            settings=settings,
            gateway=UpstreamGateway(settings, http_client),
            chat_cache=ChatResponseCache(
                chat_store,
                SingleFlight("chat"),
                window=settings.chat_context_window,
                ttl=settings.chat_cache_ttl_seconds,
                user_scoped=settings.chat_cache_user_scoped,
                standalone_keys=settings.chat_standalone_keys,
            ),
            tts_cache=SpeechAudioCache(
                tts_store,
                SingleFlight("tts"),
                ttl=settings.tts_cache_ttl_seconds,
            ),
        )

    def occupancy(self) -> CacheOccupancy:
        return CacheOccupancy(
            chat_entries=len(self.chat_cache.store),
            tts_entries=len(self.tts_cache.store),
            chat_in_flight=self.chat_cache.in_flight,
            tts_in_flight=self.tts_cache.in_flight,
        )

    def sweep(self) -> int:
        """Drop expired entries from both stores. Returns the number removed."""
        return self.chat_cache.store.purge_expired() + self.tts_cache.store.purge_expired()

    def clear(self) -> None:
        self.chat_cache.store.clear()
        self.tts_cache.store.clear()
        logger.info("Chat and TTS caches cleared")

    async def aclose(self) -> None:
        self.tts_cache.cancel_background()
        await self.gateway.aclose()
