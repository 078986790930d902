"""BMO gateway — FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bmo_server import __version__
from bmo_server.api.dependencies import ServicesDep
from bmo_server.config import settings
from bmo_server.models.chat import HealthResponse
from bmo_server.services.container import CacheServices

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


async def _cache_sweep_loop(services: CacheServices, interval: float):
    """Background task: purge expired cache entries on a fixed interval."""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = services.sweep()
            if removed:
                logger.info("Cache sweep: removed %d expired entries", removed)
        except Exception:
            logger.exception("Cache sweep failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting BMO gateway...")
    services = getattr(app.state, "services", None)
    owned = services is None
    if owned:
        services = CacheServices.create(settings)
        app.state.services = services

    sweep_task = None
    if settings.deployment_mode != "lambda":
        # Container mode: sweep expired entries independently of traffic
        sweep_task = asyncio.create_task(
            _cache_sweep_loop(services, settings.cache_sweep_interval_seconds)
        )

    logger.info(
        "BMO gateway ready (mode=%s, chat key loaded=%s, tts key loaded=%s)",
        settings.deployment_mode,
        settings.is_chat_configured,
        settings.is_tts_configured,
    )
    yield

    if sweep_task:
        sweep_task.cancel()
    if owned:
        # a later startup builds fresh services instead of reusing a closed client
        del app.state.services
        await services.aclose()
    logger.info("BMO gateway stopped")


app = FastAPI(
    title="BMO Gateway",
    description="Caching proxy for BMO chat completions and text-to-speech",
    version=__version__,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_origin_regex=settings.cors_origin_regex or None,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Cache"],
)

# Import and register routers
from bmo_server.api.cache import router as cache_router  # noqa: E402
from bmo_server.api.chat import router as chat_router  # noqa: E402
from bmo_server.api.tts import router as tts_router  # noqa: E402

app.include_router(chat_router)
app.include_router(tts_router)
app.include_router(cache_router)


@app.get("/health", response_model=HealthResponse)
async def health(services: ServicesDep):
    return HealthResponse(
        status="ok",
        service="bmo",
        version=__version__,
        chat_configured=services.settings.is_chat_configured,
        tts_configured=services.settings.is_tts_configured,
        cache=services.occupancy(),
    )


@app.get("/")
async def root():
    return {"service": "bmo", "docs": "/docs"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("bmo_server.main:app", host="0.0.0.0", port=3001)
