"""Pydantic v2 models describing upstream endpoints."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field


class EndpointCategory(str, Enum):
    property = "property"
    assessment = "assessment"
    sale = "sale"
    mortgage = "mortgage"
    permit = "permit"
    rental = "rental"
    school = "school"
    community = "community"
    poi = "poi"
    allevents = "allevents"
    avm = "avm"
    transportation = "transportation"
    area = "area"


class FallbackStrategy(str, Enum):
    """How the dispatcher fills a missing identifier before calling upstream.

    address_to_attomid: resolve the property id from address1/address2.
    address_to_geoid: resolve a geoIdV4 of the preferred subtype from an address.
    attomid_to_id: copy (or resolve) attomid into the generic ``id`` parameter.
    try_allevents_first: read the bulk all-events record, then fall back to
        address_to_attomid for the direct call.
    """
    none = "none"
    address_to_attomid = "address-to-attomid"
    address_to_geoid = "address-to-geoid"
    attomid_to_id = "attomid-to-id"
    try_allevents_first = "try-allevents-first"


class BulkField(str, Enum):
    """Sections of the all-events record."""
    property = "property"
    avm = "avm"
    assessment = "assessment"
    sale = "sale"
    building = "building"
    deed = "deed"
    mortgage = "mortgage"
    tax = "tax"


class DateWindow(str, Enum):
    """Derived parameter windows injected when the caller omits them."""
    sales_dates = "sales-dates"
    trend_years = "trend-years"


class CachePolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    ttl_seconds: int = Field(default=3600, ge=0)
    use_memory: bool = True


class EndpointDescriptor(BaseModel):
    """Static description of one upstream endpoint."""

    model_config = ConfigDict(frozen=True)

    key: str
    path: str
    category: EndpointCategory
    description: str = ""
    required_params: frozenset[str] = Field(default_factory=frozenset)
    optional_params: frozenset[str] = Field(default_factory=frozenset)
    fallback_strategy: FallbackStrategy = FallbackStrategy.none
    preferred_geo_subtype: str | None = None
    bulk_fields: tuple[BulkField, ...] = ()
    date_window: DateWindow | None = None
    defaults: Mapping[str, Any] = Field(default_factory=dict)
    cache: CachePolicy = Field(default_factory=CachePolicy)

    @property
    def declared_params(self) -> frozenset[str]:
        return self.required_params | self.optional_params

    def filter_params(self, params: Mapping[str, Any]) -> dict[str, Any]:
        """Keep only declared, non-None parameters."""
        declared = self.declared_params
        return {k: v for k, v in params.items() if k in declared and v is not None}
