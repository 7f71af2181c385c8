"""Query resolution: fallback resolvers, dispatcher and comparables policy."""

from attom_gateway.query.comparables import ComparablesRetryPolicy
from attom_gateway.query.dispatcher import QueryDispatcher, make_cache_key
from attom_gateway.query.resolvers import FallbackResolver, extract_property_id, select_geo_id

__all__ = [
    "ComparablesRetryPolicy",
    "FallbackResolver",
    "QueryDispatcher",
    "extract_property_id",
    "make_cache_key",
    "select_geo_id",
]
