"""Health check endpoint."""

import logging

from fastapi import APIRouter, Request

from attom_gateway.api.models import HealthResponse
from attom_gateway.config import get_config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=HealthResponse)
def health(request: Request):
    """Report upstream configuration and cache statistics."""
    config = get_config()
    attom_ok = bool(config.api_key)
    service = getattr(request.app.state, "service", None)

    return HealthResponse(
        status="healthy" if attom_ok else "degraded",
        attom_configured=attom_ok,
        address_normalization=bool(config.google_maps_api_key and config.use_address_normalization),
        cache=service.stats() if service is not None else {},
    )
