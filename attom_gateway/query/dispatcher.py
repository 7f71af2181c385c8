"""Query dispatcher: turns ``(endpoint id, loose params)`` into one upstream call.

Flow per request::

    validate -> join in-flight request or start one -> resolve fallbacks
             -> inject derived params -> call upstream -> return

Identical concurrent requests (same endpoint id and same non-None params)
share a single round-trip. The in-flight entry is removed as soon as the
round-trip settles, success or failure.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from attom_gateway.cache import RequestContextStore, TTLCache
from attom_gateway.clients.places import split_address
from attom_gateway.clients.transport import AttomTransport
from attom_gateway.endpoints.models import BulkField, EndpointDescriptor, FallbackStrategy
from attom_gateway.endpoints.registry import EndpointRegistry, get_registry
from attom_gateway.errors import InvalidQuery, TransportError
from attom_gateway.query.dates import DERIVED_PARAMS, apply_derived_params
from attom_gateway.query.resolvers import FallbackResolver, select_geo_id
from attom_gateway.utils import dig, drop_none, stringify_param

logger = logging.getLogger(__name__)

ALLEVENTS_DETAIL_PATH = "/propertyapi/v1.0.0/allevents/detail"
ID_PARAM_NAMES = ("attomid", "attomId", "id", "propid", "propId")
DEFAULT_GEO_SUBTYPE = "N2"

_ID_STRATEGIES = (FallbackStrategy.address_to_attomid, FallbackStrategy.try_allevents_first)


def make_cache_key(endpoint_id: str, params: Mapping[str, Any]) -> str:
    """``endpoint_id:k1=v1&k2=v2`` over non-None params, sorted by name."""
    pairs = sorted((k, stringify_param(v)) for k, v in params.items() if v is not None)
    return f"{endpoint_id}:" + "&".join(f"{k}={v}" for k, v in pairs)


def extract_bulk_fields(record: Any, fields: tuple[BulkField, ...]) -> dict[str, Any] | None:
    """Project an all-events record onto ``fields``; None if any is absent."""
    prop = dig(record, "property", 0)
    if not isinstance(prop, dict) or not fields:
        return None
    if any(prop.get(field.value) is None for field in fields):
        return None
    projected = {"identifier": prop.get("identifier")}
    projected.update({field.value: prop[field.value] for field in fields})
    return {"status": record.get("status"), "property": [projected]}


class QueryDispatcher:
    """Validates, deduplicates and executes endpoint queries."""

    def __init__(
        self,
        transport: AttomTransport,
        resolver: FallbackResolver | None = None,
        registry: EndpointRegistry | None = None,
        cache: TTLCache | None = None,
        contexts: RequestContextStore | None = None,
    ) -> None:
        self.transport = transport
        self.registry = registry or get_registry()
        self.cache = cache if cache is not None else TTLCache()
        self.contexts = contexts if contexts is not None else RequestContextStore()
        self.resolver = resolver or FallbackResolver(transport, self.cache, self.contexts)
        self._in_flight: dict[str, asyncio.Task] = {}

    # -- Validation -----------------------------------------------------------

    @staticmethod
    def _prepare(endpoint: EndpointDescriptor, params: Mapping[str, Any] | None) -> dict[str, Any]:
        prepared = drop_none(dict(params or {}))
        for name, value in endpoint.defaults.items():
            prepared.setdefault(name, value)
        return prepared

    def unsatisfied_params(self, endpoint_id: str, params: Mapping[str, Any] | None) -> list[str]:
        """Required params that neither the caller nor a fallback can supply."""
        endpoint = self.registry.get(endpoint_id)
        return self._unsatisfied(endpoint, self._prepare(endpoint, params))

    def _unsatisfied(self, endpoint: EndpointDescriptor, params: dict[str, Any]) -> list[str]:
        missing = set(self.registry.missing_params(endpoint.key, params))
        if not missing:
            return []
        if endpoint.date_window is not None:
            missing -= DERIVED_PARAMS[endpoint.date_window]

        strategy = endpoint.fallback_strategy
        has_pair = bool(params.get("address1") and params.get("address2"))

        if strategy in _ID_STRATEGIES:
            if self._known_id(params) is not None or has_pair:
                missing -= set(ID_PARAM_NAMES)
            else:
                missing |= {k for k in ("address1", "address2") if not params.get(k)}
        elif strategy == FallbackStrategy.address_to_geoid:
            geo_missing = {name for name in missing if "geoid" in name.lower()}
            if has_pair or params.get("address"):
                missing -= geo_missing
            elif geo_missing:
                missing.add("address")
        elif strategy == FallbackStrategy.attomid_to_id:
            if params.get("attomid") or has_pair:
                missing.discard("id")

        return sorted(missing)

    def is_valid(self, endpoint_id: str, params: Mapping[str, Any] | None) -> bool:
        """True when the request can be executed, possibly via fallbacks."""
        return not self.unsatisfied_params(endpoint_id, params)

    def cache_key(self, endpoint_id: str, params: Mapping[str, Any] | None) -> str:
        endpoint = self.registry.get(endpoint_id)
        return make_cache_key(endpoint_id, self._prepare(endpoint, params))

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    # -- Execution ------------------------------------------------------------

    async def execute(self, endpoint_id: str, params: Mapping[str, Any] | None = None) -> Any:
        """Run a query. Raises UnknownEndpoint, InvalidQuery or TransportError."""
        endpoint = self.registry.get(endpoint_id)
        prepared = self._prepare(endpoint, params)
        unsatisfied = self._unsatisfied(endpoint, prepared)
        if unsatisfied:
            raise InvalidQuery(endpoint_id, unsatisfied)

        key = make_cache_key(endpoint_id, prepared)
        task = self._in_flight.get(key)
        if task is not None:
            logger.debug("Joining in-flight request %s", key)
        else:
            task = asyncio.ensure_future(self._run(key, endpoint, prepared))
            self._in_flight[key] = task
        return await asyncio.shield(task)

    async def _run(self, key: str, endpoint: EndpointDescriptor, params: dict[str, Any]) -> Any:
        try:
            id_looked_up = False
            if self.registry.can_use_bulk_record(endpoint.key):
                # One id lookup serves both the bulk read and the direct call
                params = await self._fill_property_id(endpoint, params)
                id_looked_up = True
                bulk = await self._try_bulk_record(endpoint, params)
                if bulk is not None:
                    logger.info("Answered %s from the all-events record", endpoint.key)
                    return bulk

            resolved = await self._resolve_fallback(endpoint, params, id_looked_up)
            resolved = apply_derived_params(endpoint.date_window, resolved)
            final = endpoint.filter_params(resolved)
            logger.info("Executing %s with params %s", endpoint.key, sorted(final))
            return await self.transport.fetch(endpoint.path, final)
        finally:
            self._in_flight.pop(key, None)

    # -- Fallbacks ------------------------------------------------------------

    @staticmethod
    def _known_id(params: Mapping[str, Any]) -> str | None:
        for name in ID_PARAM_NAMES:
            if params.get(name) is not None:
                return str(params[name])
        return None

    @staticmethod
    def _id_param(endpoint: EndpointDescriptor) -> str:
        for name in ID_PARAM_NAMES:
            if name in endpoint.required_params:
                return name
        return "attomid"

    @staticmethod
    def _geo_param(endpoint: EndpointDescriptor) -> str:
        for name in sorted(endpoint.required_params):
            if "geoid" in name.lower():
                return name
        return "geoIdV4"

    @staticmethod
    def _address_lines(params: Mapping[str, Any]) -> tuple[str, str] | None:
        if params.get("address1") and params.get("address2"):
            return str(params["address1"]), str(params["address2"])
        address = params.get("address")
        if not address:
            return None
        split = split_address(str(address))
        if split is not None:
            return split.address1, split.address2
        return str(address), ""

    async def _id_from_address(self, params: Mapping[str, Any]) -> str | None:
        if not (params.get("address1") and params.get("address2")):
            return None
        return await self.resolver.resolve_id_from_address(str(params["address1"]), str(params["address2"]))

    async def _fill_property_id(self, endpoint: EndpointDescriptor, params: dict[str, Any]) -> dict[str, Any]:
        resolved = dict(params)
        id_param = self._id_param(endpoint)
        if resolved.get(id_param) is None:
            resolved[id_param] = self._known_id(resolved) or await self._id_from_address(resolved)
        return resolved

    async def _resolve_fallback(
        self,
        endpoint: EndpointDescriptor,
        params: dict[str, Any],
        id_looked_up: bool = False,
    ) -> dict[str, Any]:
        """Fill missing identifiers. Unresolved ones are simply left out.

        ``id_looked_up`` means the property id lookup already ran for this
        request; a miss is not retried.
        """
        resolved = dict(params)
        strategy = endpoint.fallback_strategy

        if strategy in _ID_STRATEGIES:
            if not id_looked_up:
                resolved = await self._fill_property_id(endpoint, resolved)

        elif strategy == FallbackStrategy.address_to_geoid:
            geo_param = self._geo_param(endpoint)
            subtype = endpoint.preferred_geo_subtype or DEFAULT_GEO_SUBTYPE
            if resolved.get(geo_param) is None:
                lines = self._address_lines(resolved)
                if lines is not None:
                    resolved[geo_param] = await self.resolver.resolve_geo_id_from_address(*lines, subtype)
            elif isinstance(resolved[geo_param], str):
                resolved[geo_param] = select_geo_id(resolved[geo_param], subtype)

        elif strategy == FallbackStrategy.attomid_to_id:
            if resolved.get("id") is None:
                resolved["id"] = resolved.get("attomid") or await self._id_from_address(resolved)

        if any(resolved.get(name) is None for name in endpoint.required_params):
            logger.warning(
                "Fallback for %s left required params unresolved: %s",
                endpoint.key, sorted(n for n in endpoint.required_params if resolved.get(n) is None),
            )
        return resolved

    async def _try_bulk_record(self, endpoint: EndpointDescriptor, params: dict[str, Any]) -> dict[str, Any] | None:
        property_id = self._known_id(params)
        if property_id is None:
            return None
        try:
            record = await self.transport.fetch(ALLEVENTS_DETAIL_PATH, {"id": property_id})
        except TransportError as exc:
            logger.warning("All-events lookup for %s failed, calling %s directly: %s", property_id, endpoint.key, exc)
            return None
        return extract_bulk_fields(record, endpoint.bulk_fields)
