"""Static registry of upstream ATTOM endpoints.

The table is built once at import time. Lookups raise
:class:`~attom_gateway.errors.UnknownEndpoint` for unregistered keys.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Mapping

from attom_gateway.endpoints.models import (
    BulkField,
    CachePolicy,
    DateWindow,
    EndpointCategory,
    EndpointDescriptor,
    FallbackStrategy,
)
from attom_gateway.errors import UnknownEndpoint

logger = logging.getLogger(__name__)

DEFAULT_CACHE = CachePolicy(ttl_seconds=3600)
PROPERTY_CACHE = CachePolicy(ttl_seconds=86400)
VOLATILE_CACHE = CachePolicy(ttl_seconds=900)
SCHOOL_CACHE = CachePolicy(ttl_seconds=259200)
LONG_CACHE = CachePolicy(ttl_seconds=604800)

ADDRESS_PAIR = ("address1", "address2")

COMPARABLES_DEFAULTS: dict[str, Any] = {
    "searchType": "Radius",
    "minComps": 1,
    "maxComps": 10,
    "miles": 5,
    "sameCity": "true",
    "useSameTargetCode": "true",
    "bedroomsRange": 1,
    "bathroomRange": 1,
    "sqFeetRange": 600,
    "lotSizeRange": 3000,
    "saleDateRange": 12,
    "yearBuiltRange": 20,
    "ownerOccupied": "Both",
    "distressed": "IncludeDistressed",
}
COMPARABLES_OPTIONS = frozenset(COMPARABLES_DEFAULTS)

PAGING = ("page", "pagesize")


def _endpoint(
    key: str,
    path: str,
    category: EndpointCategory,
    description: str,
    required: Iterable[str],
    optional: Iterable[str] = (),
    strategy: FallbackStrategy = FallbackStrategy.none,
    cache: CachePolicy = DEFAULT_CACHE,
    **extra: Any,
) -> EndpointDescriptor:
    return EndpointDescriptor(
        key=key,
        path=path,
        category=category,
        description=description,
        required_params=frozenset(required),
        optional_params=frozenset(optional),
        fallback_strategy=strategy,
        cache=cache,
        **extra,
    )


_C = EndpointCategory
_S = FallbackStrategy

ENDPOINTS: tuple[EndpointDescriptor, ...] = (
    # -- All events ----------------------------------------------------------
    _endpoint(
        "allEventsDetail", "/propertyapi/v1.0.0/allevents/detail", _C.allevents,
        "All events detail (property, AVM, assessment, sale, deed, mortgage)",
        ["id"], strategy=_S.attomid_to_id, cache=PROPERTY_CACHE,
    ),
    _endpoint(
        "allEventsSnapshot", "/propertyapi/v1.0.0/allevents/snapshot", _C.allevents,
        "All events snapshot",
        ["id"], strategy=_S.attomid_to_id, cache=PROPERTY_CACHE,
    ),
    # -- Property ------------------------------------------------------------
    _endpoint(
        "propertyBasicProfile", "/propertyapi/v1.0.0/property/basicprofile", _C.property,
        "Basic property profile", ADDRESS_PAIR, cache=PROPERTY_CACHE,
    ),
    _endpoint(
        "propertyExpandedProfile", "/propertyapi/v1.0.0/property/expandedprofile", _C.property,
        "Expanded property profile", ADDRESS_PAIR, cache=PROPERTY_CACHE,
    ),
    _endpoint(
        "propertyDetailOwner", "/propertyapi/v1.0.0/property/detailowner", _C.property,
        "Property detail with owner information",
        ["attomid"], strategy=_S.address_to_attomid, cache=PROPERTY_CACHE,
    ),
    _endpoint(
        "propertyDetailMortgage", "/propertyapi/v1.0.0/property/detailmortgage", _C.mortgage,
        "Property detail with mortgage information",
        ["attomid"], strategy=_S.address_to_attomid, cache=VOLATILE_CACHE,
    ),
    _endpoint(
        "propertyDetailMortgageOwner", "/propertyapi/v1.0.0/property/detailmortgageowner", _C.mortgage,
        "Property detail with mortgage and owner information",
        ["attomid"], strategy=_S.try_allevents_first, cache=VOLATILE_CACHE,
        bulk_fields=(BulkField.assessment, BulkField.mortgage),
    ),
    _endpoint(
        "propertyBuildingPermits", "/propertyapi/v1.0.0/property/buildingpermits", _C.permit,
        "Building permits for a property", ADDRESS_PAIR, cache=PROPERTY_CACHE,
    ),
    _endpoint(
        "propertyDetailsWithSchools", "/propertyapi/v4/property/detailwithschools", _C.school,
        "Property detail with assigned schools",
        ["attomid"], strategy=_S.address_to_attomid, cache=PROPERTY_CACHE,
    ),
    # -- Valuation -----------------------------------------------------------
    _endpoint(
        "propertyRentalAVM", "/propertyapi/v1.0.0/valuation/rentalavm", _C.rental,
        "Rental AVM", ["attomid"], strategy=_S.address_to_attomid, cache=VOLATILE_CACHE,
    ),
    _endpoint(
        "homeEquity", "/propertyapi/v1.0.0/valuation/homeequity", _C.avm,
        "Home equity estimate", ["attomid"], strategy=_S.address_to_attomid, cache=VOLATILE_CACHE,
    ),
    _endpoint(
        "avmSnapshot", "/propertyapi/v1.0.0/avm/snapshot", _C.avm,
        "AVM snapshot", ["attomid"], strategy=_S.address_to_attomid, cache=VOLATILE_CACHE,
    ),
    _endpoint(
        "avmDetail", "/propertyapi/v1.0.0/attomavm/detail", _C.avm,
        "ATTOM AVM detail", ADDRESS_PAIR, cache=VOLATILE_CACHE,
    ),
    _endpoint(
        "propertyAVMDetail", "/propertyapi/v1.0.0/attomavm/detail", _C.avm,
        "ATTOM AVM detail (property alias)", ADDRESS_PAIR, cache=VOLATILE_CACHE,
    ),
    _endpoint(
        "avmHistoryDetail", "/propertyapi/v1.0.0/avmhistory/detail", _C.avm,
        "AVM history", ADDRESS_PAIR, cache=VOLATILE_CACHE,
    ),
    # -- Assessment ----------------------------------------------------------
    _endpoint(
        "propertyAssessmentDetail", "/propertyapi/v1.0.0/assessment/detail", _C.assessment,
        "Assessment detail", ADDRESS_PAIR, cache=LONG_CACHE,
    ),
    _endpoint(
        "assessmentSnapshot", "/propertyapi/v1.0.0/assessment/snapshot", _C.assessment,
        "Assessment snapshot",
        ["attomid"], strategy=_S.try_allevents_first, cache=LONG_CACHE,
        bulk_fields=(BulkField.assessment,),
    ),
    _endpoint(
        "assessmentHistoryDetail", "/propertyapi/v1.0.0/assessmenthistory/detail", _C.assessment,
        "Assessment history", ["attomid"], strategy=_S.address_to_attomid, cache=LONG_CACHE,
    ),
    # -- Sales ---------------------------------------------------------------
    _endpoint(
        "salesHistorySnapshot", "/propertyapi/v1.0.0/saleshistory/snapshot", _C.sale,
        "Sales history snapshot for a property",
        ["attomid"], strategy=_S.address_to_attomid, cache=VOLATILE_CACHE,
    ),
    _endpoint(
        "salesHistoryBasic", "/propertyapi/v1.0.0/saleshistory/basichistory", _C.sale,
        "Basic sales history", ADDRESS_PAIR, cache=VOLATILE_CACHE,
    ),
    _endpoint(
        "salesHistoryExpanded", "/propertyapi/v1.0.0/saleshistory/expandedhistory", _C.sale,
        "Expanded sales history", ADDRESS_PAIR, cache=VOLATILE_CACHE,
    ),
    _endpoint(
        "salesHistoryDetail", "/propertyapi/v1.0.0/saleshistory/detail", _C.sale,
        "Sales history detail", ADDRESS_PAIR, cache=VOLATILE_CACHE,
    ),
    _endpoint(
        "saleDetail", "/propertyapi/v1.0.0/sale/detail", _C.sale,
        "Most recent sale detail", ADDRESS_PAIR, cache=PROPERTY_CACHE,
    ),
    _endpoint(
        "saleSnapshot", "/propertyapi/v1.0.0/sale/snapshot", _C.sale,
        "Sales within an area over a date window",
        ["geoIdV4", "startsalesearchdate", "endsalesearchdate"], PAGING,
        strategy=_S.address_to_geoid, cache=PROPERTY_CACHE,
        preferred_geo_subtype="N2", date_window=DateWindow.sales_dates,
    ),
    _endpoint(
        "salesAreaSnapshot", "/propertyapi/v1.0.0/saleshistory/snapshot", _C.sale,
        "Sales history for an area over a date window",
        ["geoIdV4", "startsalesearchdate", "endsalesearchdate"], PAGING,
        strategy=_S.address_to_geoid, cache=VOLATILE_CACHE,
        preferred_geo_subtype="N2", date_window=DateWindow.sales_dates,
    ),
    _endpoint(
        "transactionSalesTrend", "/propertyapi/v1.0.0/transaction/salestrend", _C.sale,
        "Sales trend for an area",
        ["geoIdV4", "interval", "startyear", "endyear"],
        strategy=_S.address_to_geoid, cache=VOLATILE_CACHE,
        preferred_geo_subtype="ZI", date_window=DateWindow.trend_years,
    ),
    _endpoint(
        "salesComparablesAddress",
        "/property/v2/salescomparables/address/{street}/{city}/{county}/{state}/{zip}",
        _C.sale, "Comparable sales by subject address",
        ["street", "city", "state", "zip"], {"county"} | COMPARABLES_OPTIONS,
        cache=PROPERTY_CACHE, defaults={"county": "-", **COMPARABLES_DEFAULTS},
    ),
    _endpoint(
        "salesComparablesPropId", "/property/v2/salescomparables/propid/{propId}",
        _C.sale, "Comparable sales by subject property id",
        ["propId"], COMPARABLES_OPTIONS,
        strategy=_S.address_to_attomid, cache=PROPERTY_CACHE, defaults=COMPARABLES_DEFAULTS,
    ),
    # -- Area / community / school -------------------------------------------
    _endpoint(
        "communityProfile", "/v4/neighborhood/community", _C.community,
        "Neighborhood community profile",
        ["geoIdV4"], strategy=_S.address_to_geoid, cache=LONG_CACHE, preferred_geo_subtype="N2",
    ),
    _endpoint(
        "schoolSearch", "/v4/school/search", _C.school,
        "Schools near a location",
        ["geoIdV4"], ["latitude", "longitude", "radius", "page", "pageSize"],
        strategy=_S.address_to_geoid, cache=PROPERTY_CACHE,
    ),
    _endpoint(
        "schoolProfile", "/v4/school/profile", _C.school,
        "School profile",
        ["geoIdV4"], strategy=_S.address_to_geoid, cache=SCHOOL_CACHE, preferred_geo_subtype="SB",
    ),
    _endpoint(
        "schoolDistrict", "/v4/school/district", _C.school,
        "School district profile",
        ["geoIdV4"], strategy=_S.address_to_geoid, cache=LONG_CACHE, preferred_geo_subtype="DB",
    ),
    _endpoint(
        "geographicBoundary", "/v4/area/boundary/detail", _C.area,
        "Boundary geometry for a geography",
        ["geoIdV4", "format"], strategy=_S.address_to_geoid, cache=LONG_CACHE,
        preferred_geo_subtype="N2", defaults={"format": "geojson"},
    ),
    _endpoint(
        "poiSearch", "/v4/poi/search", _C.poi,
        "Points of interest near an address",
        ["address", "categoryName", "radius"], ["point", "zipcode"], cache=VOLATILE_CACHE,
    ),
    _endpoint(
        "transportationNoise", "/transportationnoise", _C.transportation,
        "Transportation noise score", ["address"], cache=LONG_CACHE,
    ),
)


class EndpointRegistry:
    """Read-only lookup over endpoint descriptors."""

    def __init__(self, endpoints: Iterable[EndpointDescriptor] = ENDPOINTS) -> None:
        self._endpoints: dict[str, EndpointDescriptor] = {}
        for endpoint in endpoints:
            if endpoint.key in self._endpoints:
                raise ValueError(f"Duplicate endpoint key: {endpoint.key}")
            self._endpoints[endpoint.key] = endpoint

    # -- Lookup ---------------------------------------------------------------

    def get(self, endpoint_id: str) -> EndpointDescriptor:
        """Return the descriptor for ``endpoint_id``. Raises UnknownEndpoint."""
        try:
            return self._endpoints[endpoint_id]
        except KeyError:
            raise UnknownEndpoint(endpoint_id) from None

    def has_required_params(self, endpoint_id: str, params: Mapping[str, Any]) -> bool:
        """True iff every required parameter is present and not None."""
        endpoint = self.get(endpoint_id)
        return all(params.get(name) is not None for name in endpoint.required_params)

    def missing_params(self, endpoint_id: str, params: Mapping[str, Any]) -> list[str]:
        endpoint = self.get(endpoint_id)
        return sorted(name for name in endpoint.required_params if params.get(name) is None)

    def by_category(self, category: EndpointCategory | str) -> list[EndpointDescriptor]:
        category = EndpointCategory(category)
        return [e for e in self._endpoints.values() if e.category == category]

    def can_use_bulk_record(self, endpoint_id: str) -> bool:
        """True when the endpoint may be answered from the all-events record."""
        endpoint = self.get(endpoint_id)
        return endpoint.fallback_strategy == FallbackStrategy.try_allevents_first and bool(endpoint.bulk_fields)

    # -- Iteration ------------------------------------------------------------

    def keys(self) -> list[str]:
        return list(self._endpoints)

    def __contains__(self, endpoint_id: object) -> bool:
        return endpoint_id in self._endpoints

    def __iter__(self) -> Iterator[EndpointDescriptor]:
        return iter(self._endpoints.values())

    def __len__(self) -> int:
        return len(self._endpoints)


_registry: EndpointRegistry | None = None


def get_registry() -> EndpointRegistry:
    """Return the shared registry built from the static table."""
    global _registry
    if _registry is None:
        _registry = EndpointRegistry()
        logger.debug("Endpoint registry loaded with %d endpoints", len(_registry))
    return _registry
