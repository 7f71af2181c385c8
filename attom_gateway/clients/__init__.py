"""HTTP clients for the ATTOM API and the address normalizer."""

from attom_gateway.clients.places import NormalizedAddress, PlacesNormalizer
from attom_gateway.clients.transport import AttomTransport

__all__ = ["AttomTransport", "NormalizedAddress", "PlacesNormalizer"]
