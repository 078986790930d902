"""Route dependencies and shared error translation."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, Request
from fastapi.responses import JSONResponse

from bmo_server.config import settings
from bmo_server.models.common import ErrorResponse
from bmo_server.services.container import CacheServices
from bmo_server.services.upstream import (
    GatewayError,
    GatewayNotConfiguredError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)


def get_services(request: Request) -> CacheServices:
    """Return the process-wide CacheServices.

    Normally built during lifespan. Without lifespan events (Lambda) they are
    built on the first request and reused by later invocations.
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        logger.info("Building cache services on first request")
        services = CacheServices.create(settings)
        request.app.state.services = services
    return services


ServicesDep = Annotated[CacheServices, Depends(get_services)]


def gateway_error_response(error: GatewayError) -> JSONResponse:
    """Map a gateway failure to the response the client sees."""
    if isinstance(error, GatewayNotConfiguredError):
        return _error(500, ErrorResponse(error=str(error), hint=error.hint))
    if isinstance(error, UpstreamRejectedError):
        return JSONResponse(status_code=error.status_code, content=error.body)
    if isinstance(error, UpstreamUnavailableError):
        return _error(502, ErrorResponse(error="Upstream service unreachable", message=str(error)))
    return internal_error_response(error)


def internal_error_response(error: Exception) -> JSONResponse:
    return _error(
        500, ErrorResponse(error="Internal server error", message=str(error) or type(error).__name__)
    )


def _error(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))
