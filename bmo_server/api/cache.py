"""Cache administration routes."""

from __future__ import annotations

from fastapi import APIRouter

from bmo_server.api.dependencies import ServicesDep

router = APIRouter(prefix="/api/cache", tags=["cache"])


@router.get("")
async def cache_stats(services: ServicesDep):
    return {
        "chat": services.chat_cache.store.stats(),
        "tts": services.tts_cache.store.stats(),
        "in_flight": {
            "chat": services.chat_cache.in_flight,
            "tts": services.tts_cache.in_flight,
        },
    }


@router.delete("")
async def clear_cache(services: ServicesDep):
    services.clear()
    return {"message": "Cache cleared successfully"}
