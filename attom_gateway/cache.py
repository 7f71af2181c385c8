"""In-memory TTL cache and per-address request context.

Entries expire lazily: an expired entry is removed the first time it is
read. There is no background sweep and no size bound.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

logger = logging.getLogger(__name__)

# Upstream path -> TTL (seconds) for values derived from that path.
ENDPOINT_TTL: dict[str, int] = {
    "/propertyapi/v1.0.0/property/detail": 86400,
    "/propertyapi/v1.0.0/property/basicprofile": 86400,
    "/propertyapi/v1.0.0/property/expandedprofile": 86400,
    "/propertyapi/v1.0.0/property/buildingpermits": 86400,
    "/propertyapi/v1.0.0/assessment/detail": 604800,
    "/propertyapi/v1.0.0/assessmenthistory/detail": 604800,
    "/v4/neighborhood/community": 604800,
    "/v4/school/district": 604800,
    "/transportationnoise": 604800,
    "/v4/school/profile": 259200,
    "/v4/school/search": 259200,
    "/v4/neighborhood/poi": 259200,
}

_COMPARABLES_PREFIX = "/property/v2/salescomparables/"


def ttl_for_path(path: str, default: int = 3600) -> int:
    """TTL in seconds for data fetched from ``path``."""
    if path.startswith(_COMPARABLES_PREFIX):
        return 86400
    return ENDPOINT_TTL.get(path, default)


@dataclass
class CacheEntry:
    """Single cache entry; expired once more than ``ttl_ms`` has elapsed."""
    data: Any
    stored_at_ms: float
    ttl_ms: float

    def is_expired(self, now_ms: float) -> bool:
        return now_ms - self.stored_at_ms > self.ttl_ms


class TTLCache:
    """Key/value store with per-entry time-to-live."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if entry.is_expired(self._now_ms()):
            del self._entries[key]
            self._misses += 1
            logger.debug("Cache entry expired: %s", key)
            return None
        self._hits += 1
        return entry.data

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._entries[key] = CacheEntry(
            data=value,
            stored_at_ms=self._now_ms(),
            ttl_ms=ttl_seconds * 1000.0,
        )

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / total if total else 0.0,
        }


# ═══════════════════════════════════════════════════════════════════
# REQUEST CONTEXT
# ═══════════════════════════════════════════════════════════════════

_WHITESPACE_RE = re.compile(r"\s+")


def _normalize_line(line: str | None) -> str:
    return _WHITESPACE_RE.sub(" ", (line or "").strip()).casefold()


def address_key(address1: str | None, address2: str | None) -> str:
    """Stable context key for an address pair."""
    return f"{_normalize_line(address1)}|{_normalize_line(address2)}"


@dataclass
class RequestContext:
    """Identifiers already resolved for one address (or property id)."""
    resolved_id: str | None = None
    geo_ids: dict[str, str] = field(default_factory=dict)

    def remember_id(self, value: str | None) -> None:
        if value:
            self.resolved_id = value

    def merge_geo_ids(self, geo_ids: Mapping[str, Any] | None) -> None:
        """Add non-empty string geo ids; never removes existing keys."""
        for subtype, value in (geo_ids or {}).items():
            if isinstance(value, str) and value:
                self.geo_ids[subtype] = value


class RequestContextStore:
    """Lazily created contexts keyed by address pair or property id."""

    def __init__(self) -> None:
        self._contexts: dict[str, RequestContext] = {}

    def get(self, key: str) -> RequestContext:
        context = self._contexts.get(key)
        if context is None:
            context = self._contexts[key] = RequestContext()
        return context

    def for_address(self, address1: str | None, address2: str | None) -> RequestContext:
        return self.get(address_key(address1, address2))

    def for_id(self, property_id: str) -> RequestContext:
        return self.get(f"id:{property_id}")

    def clear(self) -> None:
        self._contexts.clear()

    def __len__(self) -> int:
        return len(self._contexts)
