"""Endpoint discovery - lists the registered upstream endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from attom_gateway.api.auth import require_token
from attom_gateway.api.models import EndpointInfo, EndpointListResponse
from attom_gateway.endpoints.models import EndpointCategory, EndpointDescriptor
from attom_gateway.endpoints.registry import get_registry

router = APIRouter(prefix="/api", tags=["endpoints"])


def _to_info(endpoint: EndpointDescriptor) -> EndpointInfo:
    return EndpointInfo(
        key=endpoint.key,
        path=endpoint.path,
        category=endpoint.category.value,
        description=endpoint.description,
        required_params=sorted(endpoint.required_params),
        optional_params=sorted(endpoint.optional_params),
        fallback_strategy=endpoint.fallback_strategy.value,
        preferred_geo_subtype=endpoint.preferred_geo_subtype,
        cache_ttl_seconds=endpoint.cache.ttl_seconds,
    )


@router.get("/endpoints", response_model=EndpointListResponse, dependencies=[Depends(require_token)])
def list_endpoints(category: str | None = None):
    """List endpoints, optionally filtered by category."""
    registry = get_registry()
    if category is None:
        endpoints = list(registry)
    else:
        try:
            endpoints = registry.by_category(EndpointCategory(category))
        except ValueError:
            valid = ", ".join(c.value for c in EndpointCategory)
            raise HTTPException(status_code=400, detail=f"Unknown category '{category}'. Valid: {valid}")
    return EndpointListResponse(count=len(endpoints), endpoints=[_to_info(e) for e in endpoints])
