"""Chat proxy route — cached, deduplicated access to the chat model."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response

from bmo_server.api.dependencies import ServicesDep, gateway_error_response, internal_error_response
from bmo_server.models.chat import ChatRequest, ChatResponse, ContentBlock
from bmo_server.services.upstream import GatewayError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


@router.post("/chat", response_model=ChatResponse)
async def chat(body: ChatRequest, response: Response, services: ServicesDep):
    """Reply to a conversation, serving repeats from the response cache."""
    try:
        result = await services.chat_cache.get_or_fetch(
            body.messages,
            services.gateway.complete_chat,
            system_prompt=body.system,
            user=body.user,
        )
    except GatewayError as e:
        return gateway_error_response(e)
    except Exception as e:
        logger.exception("Error in chat endpoint")
        return internal_error_response(e)

    response.headers["X-Cache"] = result.status.value
    return ChatResponse(content=[ContentBlock(type="text", text=result.text)])
