"""Shared FastAPI dependencies."""

import logging

from fastapi import HTTPException, Request

from attom_gateway.errors import ConfigurationError
from attom_gateway.service import AttomService

logger = logging.getLogger(__name__)


def get_service(request: Request) -> AttomService:
    """Return the app-wide service, creating it on first use."""
    service = getattr(request.app.state, "service", None)
    if service is None:
        try:
            service = AttomService()
        except ConfigurationError as exc:
            logger.error("Gateway is not configured: %s", exc)
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        request.app.state.service = service
    return service
