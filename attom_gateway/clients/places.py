"""Best-effort address normalization through Google Places.

Used before identifier lookups so that free-form addresses match the
upstream's address index. Every failure is logged and reported as ``None``;
callers then fall back to the address as given.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel

from attom_gateway.config import Config, get_config

logger = logging.getLogger(__name__)

_PLACES_URL = "https://maps.googleapis.com/maps/api/place"
_DEFAULT_TIMEOUT = 10.0


class NormalizedAddress(BaseModel):
    address1: str
    address2: str
    formatted_address: str = ""
    latitude: float | None = None
    longitude: float | None = None


def split_address(address: str) -> NormalizedAddress | None:
    """Split ``"street, city ST zip"`` at the first comma."""
    if "," not in address:
        return None
    street, rest = address.split(",", 1)
    street, rest = street.strip(), rest.strip()
    if not street or not rest:
        return None
    return NormalizedAddress(address1=street, address2=rest, formatted_address=f"{street}, {rest}")


def _component(components: list[dict[str, Any]], kind: str, name: str = "long_name") -> str:
    for component in components:
        if kind in component.get("types", []):
            return component.get(name, "")
    return ""


class PlacesNormalizer:
    """Google Places autocomplete + details lookup."""

    def __init__(
        self,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        config: Config | None = None,
    ) -> None:
        cfg = config or get_config()
        self.api_key = api_key if api_key is not None else cfg.google_maps_api_key
        self.timeout = timeout
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def _get_json(self, endpoint: str, params: dict[str, str]) -> dict[str, Any] | None:
        try:
            resp = await self._get_client().get(
                f"{_PLACES_URL}/{endpoint}/json",
                params={**params, "key": self.api_key},
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPStatusError, httpx.RequestError, ValueError) as exc:
            logger.warning("Google Places %s request failed: %s", endpoint, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("Google Places %s returned an unexpected body: %r", endpoint, data)
            return None
        if data.get("status") != "OK":
            logger.warning("Google Places %s returned status %s", endpoint, data.get("status"))
            return None
        return data

    async def suggest(self, text: str) -> list[dict[str, Any]]:
        data = await self._get_json("autocomplete", {"input": text, "types": "address"})
        return (data or {}).get("predictions", [])

    async def details(self, place_id: str) -> NormalizedAddress | None:
        data = await self._get_json(
            "details",
            {"place_id": place_id, "fields": "address_component,formatted_address,geometry"},
        )
        result = (data or {}).get("result")
        if not result:
            return None

        components = result.get("address_components", [])
        street = f"{_component(components, 'street_number')} {_component(components, 'route')}".strip()
        city = _component(components, "locality")
        state = _component(components, "administrative_area_level_1", "short_name")
        postal_code = _component(components, "postal_code")
        address2 = f"{city}, {state} {postal_code}".strip()
        location = result.get("geometry", {}).get("location", {})

        return NormalizedAddress(
            address1=street,
            address2=address2,
            formatted_address=result.get("formatted_address") or f"{street}, {address2}",
            latitude=location.get("lat"),
            longitude=location.get("lng"),
        )

    async def normalize(self, address1: str, address2: str = "") -> NormalizedAddress | None:
        """Return the canonical form of an address, or None."""
        if not self.enabled:
            return None
        text = ", ".join(part for part in (address1, address2) if part)
        suggestions = await self.suggest(text)
        if not suggestions:
            logger.info("No Places suggestions for '%s'", text)
            return split_address(text)
        place_id = suggestions[0].get("place_id")
        if not place_id:
            return None
        normalized = await self.details(place_id)
        if normalized is None or not normalized.address1:
            return None
        logger.debug("Normalized '%s' -> '%s'", text, normalized.formatted_address)
        return normalized
