"""TTS proxy routes — cached speech synthesis and background preload."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response, status
from fastapi.responses import JSONResponse

from bmo_server.api.dependencies import ServicesDep, gateway_error_response, internal_error_response
from bmo_server.models.chat import PreloadRequest, PreloadResponse, TTSRequest
from bmo_server.models.common import ErrorResponse
from bmo_server.services.tts_cache import COMMON_PHRASES
from bmo_server.services.upstream import GatewayError, GatewayNotConfiguredError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tts", tags=["tts"])


@router.post("", response_class=Response)
async def synthesize(body: TTSRequest, services: ServicesDep):
    """Return MP3 audio for the text. ``X-Cache`` tells the client whether it was cached."""
    try:
        audio, cache_status = await services.tts_cache.get_or_synthesize(
            body.text, services.gateway.synthesize_speech
        )
    except ValueError as e:
        return JSONResponse(
            status_code=400, content=ErrorResponse(error=str(e)).model_dump(exclude_none=True)
        )
    except GatewayError as e:
        return gateway_error_response(e)
    except Exception as e:
        logger.exception("Error in TTS endpoint")
        return internal_error_response(e)

    return Response(
        content=audio,
        media_type="audio/mpeg",
        headers={"X-Cache": cache_status.value},
    )


@router.post("/preload", response_model=PreloadResponse, status_code=status.HTTP_202_ACCEPTED)
async def preload(services: ServicesDep, body: PreloadRequest | None = None):
    """Warm the TTS cache in the background with common phrases."""
    phrases = body.phrases if body and body.phrases else list(COMMON_PHRASES)
    if not services.settings.is_tts_configured:
        # nothing could be synthesized
        return gateway_error_response(GatewayNotConfiguredError("Fish Audio", "FISH_AUDIO_API_KEY"))
    queued, already_cached = services.tts_cache.schedule_preload(
        phrases, services.gateway.synthesize_speech
    )
    logger.info("TTS preload queued %d phrases (%d already cached)", queued, already_cached)
    return PreloadResponse(queued=queued, already_cached=already_cached)
