"""Bearer-token check and request tracing for the gateway API."""

import hmac
import logging
import time
import uuid

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from attom_gateway.config import get_config

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

_bearer_scheme = HTTPBearer(auto_error=False)


def require_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> None:
    """Reject callers without the configured ``ATTOM_GATEWAY_TOKEN``.

    Demo mode accepts everyone. A gateway started without a token outside
    demo mode answers 503 rather than serving the upstream key openly.
    """
    cfg = get_config()
    if cfg.demo_mode:
        return
    if not cfg.gateway_token:
        raise HTTPException(status_code=503, detail="Gateway token is not configured.")

    presented = credentials.credentials if credentials else ""
    if not hmac.compare_digest(presented.encode(), cfg.gateway_token.encode()):
        raise HTTPException(
            status_code=401,
            detail="Missing or invalid bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def request_logging_middleware(request: Request, call_next):
    """Tag each request with an id and log method, path, status and timing."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    request.state.request_id = request_id
    start = time.monotonic()

    response = await call_next(request)

    response.headers[REQUEST_ID_HEADER] = request_id
    logger.info(
        "[%s] %s %s -> %d (%d ms)",
        request_id, request.method, request.url.path, response.status_code,
        int((time.monotonic() - start) * 1000),
    )
    return response
