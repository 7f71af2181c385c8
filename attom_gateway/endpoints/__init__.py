"""Endpoint descriptors and the static endpoint registry."""

from attom_gateway.endpoints.models import (
    BulkField,
    CachePolicy,
    DateWindow,
    EndpointCategory,
    EndpointDescriptor,
    FallbackStrategy,
)
from attom_gateway.endpoints.registry import ENDPOINTS, EndpointRegistry, get_registry

__all__ = [
    "BulkField",
    "CachePolicy",
    "DateWindow",
    "ENDPOINTS",
    "EndpointCategory",
    "EndpointDescriptor",
    "EndpointRegistry",
    "FallbackStrategy",
    "get_registry",
]
