"""Tests for the per-endpoint request budget."""

import pytest

from attom_gateway.errors import RateLimited
from attom_gateway.limits import KindRateLimiter


@pytest.fixture
def limiter(clock) -> KindRateLimiter:
    return KindRateLimiter(3, window_seconds=60.0, clock=clock)


class TestKindRateLimiter:
    def test_allows_up_to_budget(self, limiter) -> None:
        for _ in range(3):
            limiter.acquire("avmSnapshot")
        with pytest.raises(RateLimited) as excinfo:
            limiter.acquire("avmSnapshot")
        assert excinfo.value.endpoint_id == "avmSnapshot"
        assert excinfo.value.retry_after == pytest.approx(60.0)

    def test_kinds_are_independent(self, limiter) -> None:
        for _ in range(3):
            limiter.acquire("avmSnapshot")
        limiter.acquire("salesHistorySnapshot")
        assert limiter.remaining("salesHistorySnapshot") == 2

    def test_slots_age_out(self, limiter, clock) -> None:
        limiter.acquire("avmSnapshot")
        clock.advance(30)
        limiter.acquire("avmSnapshot")
        limiter.acquire("avmSnapshot")

        with pytest.raises(RateLimited) as excinfo:
            limiter.acquire("avmSnapshot")
        assert excinfo.value.retry_after == pytest.approx(30.0)

        clock.advance(30)
        assert limiter.remaining("avmSnapshot") == 1
        limiter.acquire("avmSnapshot")

    def test_zero_disables(self, clock) -> None:
        limiter = KindRateLimiter(0, clock=clock)
        for _ in range(100):
            limiter.acquire("avmSnapshot")
        assert limiter.enabled is False
        assert limiter.remaining("avmSnapshot") is None

    def test_reset(self, limiter) -> None:
        for _ in range(3):
            limiter.acquire("avmSnapshot")
        limiter.reset()
        assert limiter.remaining("avmSnapshot") == 3
