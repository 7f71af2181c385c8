"""Per-endpoint request budget protecting the shared ATTOM API key.

Every query that is about to leave for the upstream (response-cache hits do
not count) spends one slot in its endpoint's sliding window. A kind that has
used its budget is refused until the oldest slot ages out.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict, deque
from typing import Callable

from attom_gateway.errors import RateLimited

logger = logging.getLogger(__name__)


class KindRateLimiter:
    """Sliding-window budget of ``max_requests`` per endpoint kind.

    ``max_requests=0`` disables the limiter.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._slots: dict[str, deque[float]] = defaultdict(deque)

    @property
    def enabled(self) -> bool:
        return self.max_requests > 0

    def _prune(self, kind: str, now: float) -> deque[float]:
        slots = self._slots[kind]
        while slots and now - slots[0] >= self.window_seconds:
            slots.popleft()
        return slots

    def remaining(self, kind: str) -> int | None:
        """Slots left for ``kind`` in the current window; None when disabled."""
        if not self.enabled:
            return None
        return max(0, self.max_requests - len(self._prune(kind, self._clock())))

    def acquire(self, kind: str) -> None:
        """Spend one slot for ``kind`` or raise :class:`RateLimited`."""
        if not self.enabled:
            return
        now = self._clock()
        slots = self._prune(kind, now)
        if len(slots) >= self.max_requests:
            retry_after = self.window_seconds - (now - slots[0])
            logger.warning("Budget for %s exhausted; retry in %.1fs", kind, retry_after)
            raise RateLimited(kind, retry_after)
        slots.append(now)

    def reset(self) -> None:
        self._slots.clear()
