"""Pydantic request/response models for the gateway API."""

import re
from typing import Any

from pydantic import BaseModel, Field, field_validator

_KIND_RE = re.compile(r"^[A-Za-z][A-Za-z0-9]*$")


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------

class QueryRequest(BaseModel):
    kind: str = Field(..., min_length=1, max_length=64)
    params: dict[str, Any] = Field(default_factory=dict)
    use_cache: bool = True

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        if not _KIND_RE.match(v):
            raise ValueError("kind may only contain letters and digits and must start with a letter.")
        return v

    @field_validator("params")
    @classmethod
    def validate_params(cls, v: dict[str, Any]) -> dict[str, Any]:
        for key, value in v.items():
            if isinstance(value, (dict, list)):
                raise ValueError(f"Parameter '{key}' must be a scalar value.")
        return v


class QueryResponse(BaseModel):
    kind: str
    data: Any = None


class ErrorDetail(BaseModel):
    message: str
    signal: str | None = None
    status: int | None = None
    body: str | None = None
    missing: list[str] = []


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

class EndpointInfo(BaseModel):
    key: str
    path: str
    category: str
    description: str = ""
    required_params: list[str] = []
    optional_params: list[str] = []
    fallback_strategy: str = "none"
    preferred_geo_subtype: str | None = None
    cache_ttl_seconds: int = 0


class EndpointListResponse(BaseModel):
    count: int = 0
    endpoints: list[EndpointInfo] = []


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str = "healthy"
    attom_configured: bool = False
    address_normalization: bool = False
    cache: dict = {}
