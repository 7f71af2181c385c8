"""
ATTOM Gateway
Query resolution and fallback orchestration for the ATTOM property-data API
"""

__version__ = "0.1.0"
__author__ = "ATTOM Gateway Team"

from attom_gateway.config import Config, get_config
from attom_gateway.errors import (
    ConfigurationError,
    GatewayError,
    InvalidQuery,
    RateLimited,
    TransportError,
    UnknownEndpoint,
)
from attom_gateway.service import AttomService

__all__ = [
    "AttomService",
    "Config",
    "ConfigurationError",
    "GatewayError",
    "InvalidQuery",
    "RateLimited",
    "TransportError",
    "UnknownEndpoint",
    "get_config",
]
