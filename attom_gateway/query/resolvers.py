"""Fallback resolvers for identifiers the caller did not supply.

Each resolver checks the request context, then the TTL cache, then asks the
upstream inside a bounded retry loop. Whatever it learns is merged back into
the context and the cache. Failed attempts are logged and swallowed; a
resolver that gives up returns ``None`` (or an empty mapping) and never
raises for upstream failures.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Callable

from attom_gateway.cache import (
    RequestContext,
    RequestContextStore,
    TTLCache,
    address_key,
    ttl_for_path,
)
from attom_gateway.clients.places import PlacesNormalizer
from attom_gateway.clients.transport import AttomTransport
from attom_gateway.config import Config, get_config
from attom_gateway.errors import TransportError
from attom_gateway.utils import dig

logger = logging.getLogger(__name__)

PROPERTY_DETAIL_PATH = "/propertyapi/v1.0.0/property/detail"
BUILDING_PERMITS_PATH = "/propertyapi/v1.0.0/property/buildingpermits"
BASIC_PROFILE_PATH = "/propertyapi/v1.0.0/property/basicprofile"
SCHOOL_PROFILE_PATH = "/v4/school/profile"
COMMUNITY_PATH = "/v4/neighborhood/community"

# Subtype -> id prefixes that identify it inside a comma-separated geoIdV4.
# The subtype code itself is always accepted as a prefix.
SUBTYPE_PATTERNS: dict[str, tuple[str, ...]] = {
    "SB": ("ccd2bc", "786e30", "a1cc1b"),
    "DB": ("ea629d",),
    "ZI": ("9df4a0",),
    "N2": (),
    "N4": (),
}

_SIZE_FIELDS = ("livingsize", "universalsize", "bldgsize", "grosssize")


# ═══════════════════════════════════════════════════════════════════
# RESPONSE HELPERS
# ═══════════════════════════════════════════════════════════════════

def select_geo_id(raw: str, subtype: str | None) -> str:
    """Pick the entry for ``subtype`` out of a comma-separated geoIdV4.

    A value without a comma is returned unchanged. Otherwise the first entry
    starting with one of the subtype's prefixes wins, else the first entry.
    """
    if "," not in raw:
        return raw
    entries = [entry.strip() for entry in raw.split(",") if entry.strip()]
    if not entries:
        return ""
    if subtype:
        prefixes = (subtype,) + SUBTYPE_PATTERNS.get(subtype, ())
        for entry in entries:
            if entry.startswith(prefixes):
                return entry
    return entries[0]


def _as_id(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def extract_property_id(response: Any) -> str | None:
    """Find the ATTOM property id in a lookup response."""
    if not isinstance(response, dict):
        return None

    found = _as_id(dig(response, "status", "attomId"))
    if found:
        return found

    properties = response.get("property")
    if not isinstance(properties, list):
        return None

    for prop in properties:
        if not isinstance(prop, dict):
            continue
        found = _as_id(dig(prop, "identifier", "attomId")) or _as_id(prop.get("attomId"))
        if found:
            return found

    legacy_id = dig(properties, 0, "identifier", "Id")
    if legacy_id:
        logger.debug("Lookup returned identifier.Id=%s without attomId; ignoring", legacy_id)
    return None


def subtype_of(entry: str) -> str | None:
    """The subtype a single geoIdV4 entry belongs to, judged by its prefix."""
    for subtype, patterns in SUBTYPE_PATTERNS.items():
        if entry.startswith((subtype,) + patterns):
            return subtype
    return None


def extract_geo_ids(response: Any, subtype: str | None = None) -> dict[str, str]:
    """Return the ``location.geoIdV4`` map of the first property record.

    A comma-separated string is split and each entry keyed by the subtype its
    prefix identifies. When ``subtype`` matched no entry it still gets the
    best candidate from :func:`select_geo_id`.
    """
    geo = dig(response, "property", 0, "location", "geoIdV4")
    if isinstance(geo, dict):
        return {k: v for k, v in geo.items() if isinstance(v, str) and v}
    if not isinstance(geo, str) or not geo.strip():
        return {}

    found: dict[str, str] = {}
    for entry in (part.strip() for part in geo.split(",")):
        matched = subtype_of(entry) if entry else None
        if matched and matched not in found:
            found[matched] = entry
    if subtype and subtype not in found:
        candidate = select_geo_id(geo.strip(), subtype)
        if candidate:
            found[subtype] = candidate
    return found


def extract_living_size(response: Any) -> int | None:
    size = dig(response, "property", 0, "building", "size")
    if not isinstance(size, dict):
        return None
    for name in _SIZE_FIELDS:
        try:
            value = int(float(size.get(name) or 0))
        except (TypeError, ValueError):
            continue
        if value > 0:
            return value
    return None


# ═══════════════════════════════════════════════════════════════════
# RESOLVER
# ═══════════════════════════════════════════════════════════════════

class FallbackResolver:
    """Resolves property ids and geo ids through auxiliary lookups."""

    def __init__(
        self,
        transport: AttomTransport,
        cache: TTLCache | None = None,
        contexts: RequestContextStore | None = None,
        normalizer: PlacesNormalizer | None = None,
        max_attempts: int | None = None,
        delay: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        config: Config | None = None,
    ) -> None:
        cfg = config or get_config()
        self.transport = transport
        self.cache = cache if cache is not None else TTLCache()
        self.contexts = contexts if contexts is not None else RequestContextStore()
        self.normalizer = normalizer if cfg.use_address_normalization else None
        self.max_attempts = max_attempts or cfg.fallback_max_attempts
        self.delay = cfg.fallback_delay if delay is None else delay
        self.default_ttl = cfg.cache_ttl_default
        self._sleep = sleep

    # -- Plumbing -------------------------------------------------------------

    def _ttl(self, path: str) -> int:
        return ttl_for_path(path, self.default_ttl)

    async def _fetch(self, path: str, query: dict[str, Any]) -> Any:
        # The attempt loop below owns retries for lookups.
        return await self.transport.fetch(path, query, max_retries=0)

    async def _with_retries(
        self,
        label: str,
        call: Callable[[], Awaitable[Any]],
        accept: Callable[[Any], bool],
    ) -> Any | None:
        """Run ``call`` until ``accept`` approves a result or attempts run out."""
        for attempt in range(self.max_attempts):
            try:
                result = await call()
            except TransportError as exc:
                logger.warning(
                    "[Fallback] %s failed (attempt %d/%d): %s",
                    label, attempt + 1, self.max_attempts, exc,
                )
            else:
                if accept(result):
                    return result
                logger.warning(
                    "[Fallback] %s returned no usable data (attempt %d/%d)",
                    label, attempt + 1, self.max_attempts,
                )
            if attempt < self.max_attempts - 1:
                await self._sleep(self.delay)

        logger.warning("[Fallback] %s gave up after %d attempts", label, self.max_attempts)
        return None

    async def _normalized(self, address1: str, address2: str) -> tuple[str, str]:
        if self.normalizer is None:
            return address1, address2
        normalized = await self.normalizer.normalize(address1, address2)
        if normalized is None:
            return address1, address2
        logger.info(
            "[Fallback] Normalized address: %s -> %s | %s",
            normalized.formatted_address, normalized.address1, normalized.address2,
        )
        return normalized.address1, normalized.address2

    def _remember_record(self, context: RequestContext, record: Any, subtype: str | None = None) -> None:
        context.remember_id(extract_property_id(record))
        context.merge_geo_ids(extract_geo_ids(record, subtype))

    # -- Property id ----------------------------------------------------------

    async def resolve_id_from_address(self, address1: str, address2: str) -> str | None:
        """ATTOM property id for an address, or None when not found."""
        context = self.contexts.for_address(address1, address2)
        if context.resolved_id:
            return context.resolved_id

        cache_key = f"attomid:{address_key(address1, address2)}"
        cached = self.cache.get(cache_key)
        if cached:
            context.remember_id(cached)
            return cached

        line1, line2 = await self._normalized(address1, address2)
        query = {"address1": line1, "address2": line2}
        for path in (BUILDING_PERMITS_PATH, BASIC_PROFILE_PATH):
            record = await self._with_retries(
                f"{path} lookup for '{line1}, {line2}'",
                partial(self._fetch, path, query),
                lambda r: extract_property_id(r) is not None,
            )
            if record is None:
                continue
            self._remember_record(context, record)
            property_id = context.resolved_id
            if property_id:
                self.cache.set(cache_key, property_id, self._ttl(path))
                logger.info("[Fallback] Resolved attomId %s for '%s, %s'", property_id, address1, address2)
                return property_id

        logger.warning("[Fallback] Could not resolve attomId for '%s, %s'", address1, address2)
        return None

    # -- Geo ids --------------------------------------------------------------

    async def resolve_geo_id_from_address(
        self,
        address1: str,
        address2: str,
        subtype: str = "N2",
    ) -> str | None:
        """geoIdV4 of ``subtype`` for an address, or None when not found."""
        context = self.contexts.for_address(address1, address2)
        raw = context.geo_ids.get(subtype)
        if raw:
            return select_geo_id(raw, subtype)

        addr_key = address_key(address1, address2)
        cached = self.cache.get(f"geoIdV4:{addr_key}:{subtype}")
        if cached:
            context.merge_geo_ids({subtype: cached})
            return select_geo_id(cached, subtype)

        line1, line2 = await self._normalized(address1, address2)
        record = await self._with_retries(
            f"geoIdV4 lookup for '{line1}, {line2}'",
            partial(self._fetch, BUILDING_PERMITS_PATH, {"address1": line1, "address2": line2}),
            lambda r: bool(extract_geo_ids(r, subtype)),
        )
        if record is not None:
            self._remember_record(context, record, subtype)

        ttl = self._ttl(BUILDING_PERMITS_PATH)
        for known_subtype, value in context.geo_ids.items():
            self.cache.set(f"geoIdV4:{addr_key}:{known_subtype}", value, ttl)

        raw = context.geo_ids.get(subtype)
        if not raw:
            logger.warning("[Fallback] No %s geoIdV4 for '%s, %s'", subtype, address1, address2)
            return None
        return select_geo_id(raw, subtype)

    async def resolve_geo_ids_from_id(self, property_id: str) -> dict[str, str]:
        """Full subtype -> geoIdV4 map for a property id (possibly empty)."""
        context = self.contexts.for_id(property_id)
        if context.geo_ids:
            return dict(context.geo_ids)

        cache_key = f"geoIdV4:{property_id}"
        cached = self.cache.get(cache_key)
        if cached:
            context.merge_geo_ids(cached)
            return dict(context.geo_ids)

        record = await self._with_retries(
            f"property detail for attomId {property_id}",
            partial(self._fetch, PROPERTY_DETAIL_PATH, {"attomid": property_id}),
            lambda r: bool(extract_geo_ids(r)),
        )
        if record is not None:
            context.remember_id(property_id)
            context.merge_geo_ids(extract_geo_ids(record))
            self.cache.set(cache_key, dict(context.geo_ids), self._ttl(PROPERTY_DETAIL_PATH))
        return dict(context.geo_ids)

    # -- Area profiles --------------------------------------------------------

    async def school_by_geo_id(self, geo_id: str) -> Any | None:
        """School profile for an ``SB`` geoIdV4; None for any other id."""
        if not geo_id or not geo_id.startswith("SB"):
            logger.info("[Fallback] Not a school geoIdV4: %s", geo_id)
            return None
        return await self._profile(SCHOOL_PROFILE_PATH, f"school:geoIdV4:{geo_id}", geo_id)

    async def community_by_geo_id(self, geo_id: str) -> Any | None:
        """Community profile for an ``N2`` geoIdV4; None for any other id."""
        if not geo_id or not geo_id.startswith("N2"):
            logger.info("[Fallback] Not a neighborhood geoIdV4: %s", geo_id)
            return None
        return await self._profile(COMMUNITY_PATH, f"community:{geo_id}", geo_id)

    async def _profile(self, path: str, cache_key: str, geo_id: str) -> Any | None:
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        data = await self._with_retries(
            f"{path} for geoIdV4 {geo_id}",
            partial(self._fetch, path, {"geoIdV4": geo_id}),
            bool,
        )
        if data is not None:
            self.cache.set(cache_key, data, self._ttl(path))
        return data

    # -- Subject property -----------------------------------------------------

    async def building_size(
        self,
        property_id: str | None = None,
        address1: str | None = None,
        address2: str | None = None,
    ) -> int | None:
        """Living area in square feet of the subject property, or None."""
        if property_id:
            query = {"attomid": property_id}
            cache_key = f"size:id:{property_id}"
        elif address1 and address2:
            query = {"address1": address1, "address2": address2}
            cache_key = f"size:{address_key(address1, address2)}"
        else:
            return None

        cached = self.cache.get(cache_key)
        if cached:
            return cached

        record = await self._with_retries(
            f"building size for {query}",
            partial(self._fetch, PROPERTY_DETAIL_PATH, query),
            lambda r: extract_living_size(r) is not None,
        )
        size = extract_living_size(record)
        if size:
            self.cache.set(cache_key, size, self._ttl(PROPERTY_DETAIL_PATH))
        return size

    async def prefetch_address(self, address1: str, address2: str) -> RequestContext:
        """Warm the context for an address with one property detail call."""
        context = self.contexts.for_address(address1, address2)
        if context.resolved_id and context.geo_ids:
            return context

        record = await self._with_retries(
            f"property detail for '{address1}, {address2}'",
            partial(self._fetch, PROPERTY_DETAIL_PATH, {"address1": address1, "address2": address2}),
            lambda r: extract_property_id(r) is not None,
        )
        if record is None:
            return context

        self._remember_record(context, record)
        addr_key = address_key(address1, address2)
        ttl = self._ttl(PROPERTY_DETAIL_PATH)
        if context.resolved_id:
            self.cache.set(f"attomid:{addr_key}", context.resolved_id, ttl)
        for subtype, value in context.geo_ids.items():
            self.cache.set(f"geoIdV4:{addr_key}:{subtype}", value, ttl)
        return context
