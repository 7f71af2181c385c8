"""High-level service wiring the gateway components together.

``AttomService`` owns one transport, cache, request-context store, resolver,
dispatcher and comparables policy. Inbound surfaces (HTTP API, CLI) talk to
the service only.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping

from attom_gateway.cache import RequestContext, RequestContextStore, TTLCache
from attom_gateway.clients.places import PlacesNormalizer
from attom_gateway.clients.transport import AttomTransport
from attom_gateway.config import Config, get_config
from attom_gateway.endpoints.models import BulkField, EndpointCategory, EndpointDescriptor
from attom_gateway.endpoints.registry import EndpointRegistry, get_registry
from attom_gateway.errors import InvalidQuery
from attom_gateway.limits import KindRateLimiter
from attom_gateway.query.comparables import (
    COMPARABLES_BY_ADDRESS,
    COMPARABLES_BY_PROP_ID,
    ComparablesRetryPolicy,
)
from attom_gateway.query.dispatcher import QueryDispatcher
from attom_gateway.query.resolvers import FallbackResolver
from attom_gateway.utils import dig

logger = logging.getLogger(__name__)


class AttomService:
    """Entry point for running ATTOM queries by endpoint id."""

    def __init__(
        self,
        config: Config | None = None,
        transport: AttomTransport | None = None,
        registry: EndpointRegistry | None = None,
        cache: TTLCache | None = None,
        normalizer: PlacesNormalizer | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        limiter: KindRateLimiter | None = None,
    ) -> None:
        self.config = config or get_config()
        self.registry = registry or get_registry()
        self.cache = cache if cache is not None else TTLCache()
        self.contexts = RequestContextStore()
        self.transport = transport or AttomTransport(config=self.config, sleep=sleep)
        self.normalizer = normalizer or PlacesNormalizer(config=self.config)
        self.resolver = FallbackResolver(
            self.transport,
            self.cache,
            self.contexts,
            normalizer=self.normalizer,
            sleep=sleep,
            config=self.config,
        )
        self.dispatcher = QueryDispatcher(
            self.transport,
            self.resolver,
            self.registry,
            self.cache,
            self.contexts,
        )
        self.comparables = ComparablesRetryPolicy(self.dispatcher, self.resolver)
        self.limiter = limiter or KindRateLimiter(
            self.config.kind_rate_limit,
            self.config.rate_limit_window_seconds,
        )

    # -- Queries --------------------------------------------------------------

    async def query(
        self,
        kind: str,
        params: Mapping[str, Any] | None = None,
        use_cache: bool = True,
    ) -> Any:
        """Run the query ``kind`` and return the upstream response.

        Responses are memoised for the endpoint's cache TTL unless
        ``use_cache`` is False or the endpoint opts out of memory caching.
        Queries that go upstream spend the kind's request budget and raise
        RateLimited once it is gone.
        """
        endpoint = self.registry.get(kind)
        unsatisfied = self.dispatcher.unsatisfied_params(kind, params)
        if unsatisfied:
            raise InvalidQuery(kind, unsatisfied)

        caching = use_cache and endpoint.cache.use_memory and endpoint.cache.ttl_seconds > 0
        cache_key = f"response:{self.dispatcher.cache_key(kind, params)}"
        if caching:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("Serving %s from cache", kind)
                return cached

        self.limiter.acquire(kind)
        if kind == COMPARABLES_BY_ADDRESS:
            data = await self.comparables.by_address(params or {})
        elif kind == COMPARABLES_BY_PROP_ID:
            data = await self.comparables.by_prop_id(params or {})
        else:
            data = await self.dispatcher.execute(kind, params)

        if caching:
            self.cache.set(cache_key, data, endpoint.cache.ttl_seconds)
        return data

    async def get_property_basic_profile(self, address1: str, address2: str) -> Any:
        return await self.query("propertyBasicProfile", {"address1": address1, "address2": address2})

    async def get_property_detail_owner(
        self,
        attomid: str | None = None,
        address1: str | None = None,
        address2: str | None = None,
    ) -> Any:
        return await self.query(
            "propertyDetailOwner",
            {"attomid": attomid, "address1": address1, "address2": address2},
        )

    async def get_sales_history_snapshot(
        self,
        attomid: str | None = None,
        address1: str | None = None,
        address2: str | None = None,
    ) -> Any:
        return await self.query(
            "salesHistorySnapshot",
            {"attomid": attomid, "address1": address1, "address2": address2},
        )

    async def get_sales_comparables_address(self, **params: Any) -> Any:
        return await self.query(COMPARABLES_BY_ADDRESS, params)

    async def get_sales_comparables_prop_id(self, **params: Any) -> Any:
        return await self.query(COMPARABLES_BY_PROP_ID, params)

    async def get_school_profile_for_geo_id(self, geo_id: str) -> Any | None:
        return await self.resolver.school_by_geo_id(geo_id)

    async def get_community_profile_for_geo_id(self, geo_id: str) -> Any | None:
        return await self.resolver.community_by_geo_id(geo_id)

    async def prefetch_address(self, address1: str, address2: str) -> RequestContext:
        """Resolve and remember the id and geo ids for an address."""
        return await self.resolver.prefetch_address(address1, address2)

    # -- Discovery ------------------------------------------------------------

    def list_endpoints(self, category: EndpointCategory | str | None = None) -> list[EndpointDescriptor]:
        if category is None:
            return list(self.registry)
        return self.registry.by_category(category)

    @staticmethod
    def is_bulk_field_available(data: Any, field: BulkField | str) -> bool:
        """True when an all-events response carries ``field``."""
        return dig(data, "property", 0, BulkField(field).value) is not None

    def stats(self) -> dict[str, Any]:
        return {
            "cache": self.cache.stats(),
            "contexts": len(self.contexts),
            "in_flight": self.dispatcher.in_flight_count,
        }

    async def aclose(self) -> None:
        await self.transport.aclose()
        await self.normalizer.aclose()
