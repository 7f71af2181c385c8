"""Query endpoint - runs one ATTOM query by endpoint id."""

from __future__ import annotations

import logging
import math
import time

from fastapi import APIRouter, Depends, HTTPException

from attom_gateway.api.auth import require_token
from attom_gateway.api.dependencies import get_service
from attom_gateway.api.models import ErrorDetail, QueryRequest, QueryResponse
from attom_gateway.errors import (
    InvalidQuery,
    RateLimited,
    TransportError,
    UnknownEndpoint,
    UpstreamSignal,
    classify_upstream_error,
)
from attom_gateway.service import AttomService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["query"])

_SIGNAL_STATUS: dict[UpstreamSignal, int] = {
    UpstreamSignal.no_record: 404,
    UpstreamSignal.no_result: 404,
    UpstreamSignal.rate_limited: 429,
    UpstreamSignal.unauthorized: 502,
}


def _upstream_http_error(kind: str, exc: TransportError) -> HTTPException:
    signal = classify_upstream_error(exc)
    status_code = _SIGNAL_STATUS.get(signal, 502) if signal else 502
    logger.warning(
        "Upstream failure for %s (signal=%s, status=%s, attempts=%d)",
        kind, signal.value if signal else None, exc.status, exc.attempts,
    )
    detail = ErrorDetail(
        message=exc.message,
        signal=signal.value if signal else None,
        status=exc.status,
        body=exc.body,
    )
    return HTTPException(status_code=status_code, detail=detail.model_dump())


@router.post("/query", response_model=QueryResponse, dependencies=[Depends(require_token)])
async def run_query(request: QueryRequest, service: AttomService = Depends(get_service)):
    """Resolve missing identifiers as needed and return the upstream response."""
    start = time.monotonic()
    try:
        data = await service.query(request.kind, request.params, use_cache=request.use_cache)
    except UnknownEndpoint as exc:
        raise HTTPException(status_code=404, detail=ErrorDetail(message=str(exc)).model_dump())
    except InvalidQuery as exc:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(message=str(exc), missing=exc.missing).model_dump(),
        )
    except RateLimited as exc:
        raise HTTPException(
            status_code=429,
            detail=ErrorDetail(message=str(exc)).model_dump(),
            headers={"Retry-After": str(math.ceil(exc.retry_after))},
        )
    except TransportError as exc:
        raise _upstream_http_error(request.kind, exc) from exc
    except Exception:
        logger.exception("Query failed for kind=%s", request.kind)
        raise HTTPException(status_code=500, detail="Query failed")

    logger.info("Query %s completed in %d ms", request.kind, int((time.monotonic() - start) * 1000))
    return QueryResponse(kind=request.kind, data=data)
