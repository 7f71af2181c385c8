"""ATTOM Gateway FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from attom_gateway.api.auth import request_logging_middleware
from attom_gateway.config import get_config
from attom_gateway.errors import ConfigurationError
from attom_gateway.service import AttomService
from attom_gateway.utils import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle handler."""
    config = get_config()
    setup_logging(config.log_level, config.log_file)

    try:
        config.validate_api_keys()
    except ConfigurationError as e:
        logger.critical("%s", e)
        sys.exit(1)

    if not config.demo_mode and not config.gateway_token:
        logger.critical("ATTOM_GATEWAY_TOKEN is not set. Use ATTOM_DEMO_MODE=true to skip.")
        sys.exit(1)

    app.state.service = AttomService(config=config)
    logger.info(
        "ATTOM gateway starting - upstream=%s, retries=%d, normalization=%s",
        config.api_base_url, config.api_retries, bool(config.google_maps_api_key),
    )
    yield
    await app.state.service.aclose()
    logger.info("ATTOM gateway shutdown - HTTP clients closed")


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    app = FastAPI(
        title="ATTOM Gateway",
        description="Query gateway for ATTOM property data with identifier fallback resolution",
        version="0.1.0",
        lifespan=lifespan,
    )

    config = get_config()

    # CORS - restricted to configured origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    # Request logging and X-Request-ID middleware
    app.add_middleware(BaseHTTPMiddleware, dispatch=request_logging_middleware)

    from attom_gateway.api.routes.endpoints import router as endpoints_router
    from attom_gateway.api.routes.health import router as health_router
    from attom_gateway.api.routes.query import router as query_router

    app.include_router(query_router)
    app.include_router(endpoints_router)
    app.include_router(health_router)

    return app


app = create_app()
