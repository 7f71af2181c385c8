"""Comparable-sales lookups with a single widened retry.

When the upstream reports that it cannot locate the subject property, the
search is widened around the subject's building size and reissued once.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from attom_gateway.errors import TransportError, UpstreamSignal, classify_upstream_error
from attom_gateway.query.dispatcher import QueryDispatcher
from attom_gateway.query.resolvers import FallbackResolver

logger = logging.getLogger(__name__)

COMPARABLES_BY_ADDRESS = "salesComparablesAddress"
COMPARABLES_BY_PROP_ID = "salesComparablesPropId"

DEFAULT_BUILDING_SIZE = 2000  # sq ft, used when the subject's size is unknown
SIZE_RANGE_FRACTION = 0.3
WIDENED_YEAR_BUILT_RANGE = 40


def widen_search(params: Mapping[str, Any], building_size: int) -> dict[str, Any]:
    """Return ``params`` with size and age ranges widened around the subject."""
    widened = dict(params)
    widened["sqFeetRange"] = max(1, round(building_size * SIZE_RANGE_FRACTION))
    widened["yearBuiltRange"] = WIDENED_YEAR_BUILT_RANGE
    return widened


class ComparablesRetryPolicy:
    """Runs comparables queries through the dispatcher, retrying once when
    the subject property is not found."""

    def __init__(
        self,
        dispatcher: QueryDispatcher,
        resolver: FallbackResolver | None = None,
        default_size: int = DEFAULT_BUILDING_SIZE,
    ) -> None:
        self.dispatcher = dispatcher
        self.resolver = resolver or dispatcher.resolver
        self.default_size = default_size

    async def by_address(self, params: Mapping[str, Any], retried: bool = False) -> Any:
        return await self._run(COMPARABLES_BY_ADDRESS, params, retried)

    async def by_prop_id(self, params: Mapping[str, Any], retried: bool = False) -> Any:
        return await self._run(COMPARABLES_BY_PROP_ID, params, retried)

    async def _run(self, endpoint_id: str, params: Mapping[str, Any], retried: bool) -> Any:
        try:
            return await self.dispatcher.execute(endpoint_id, params)
        except TransportError as exc:
            if retried or classify_upstream_error(exc) != UpstreamSignal.no_record:
                raise
            logger.info("%s found no subject record; widening search and retrying once", endpoint_id)

        size = await self._subject_size(params)
        widened = widen_search(params, size)
        logger.info(
            "Retrying %s with sqFeetRange=%s yearBuiltRange=%s",
            endpoint_id, widened["sqFeetRange"], widened["yearBuiltRange"],
        )
        return await self._run(endpoint_id, widened, retried=True)

    async def _subject_size(self, params: Mapping[str, Any]) -> int:
        property_id = params.get("propId") or params.get("attomid")
        address1 = params.get("address1") or params.get("street")
        address2 = params.get("address2")
        if not address2 and params.get("city"):
            address2 = f"{params.get('city')}, {params.get('state', '')} {params.get('zip', '')}".strip()

        size = await self.resolver.building_size(
            str(property_id) if property_id else None,
            str(address1) if address1 else None,
            address2,
        )
        if not size:
            logger.info("Building size unavailable; using default of %d sq ft", self.default_size)
            return self.default_size
        return size
