"""Tests for gateway error types and upstream signal classification."""

import pytest

from attom_gateway.errors import (
    InvalidQuery,
    RateLimited,
    TransportError,
    UnknownEndpoint,
    UpstreamSignal,
    classify_upstream_error,
)


class TestErrorMessages:
    def test_unknown_endpoint(self) -> None:
        exc = UnknownEndpoint("nope")
        assert str(exc) == "Unknown endpoint key: nope"
        assert exc.endpoint_id == "nope"

    def test_invalid_query(self) -> None:
        exc = InvalidQuery("propertyDetailOwner", ["attomid"])
        assert "propertyDetailOwner" in str(exc)
        assert "attomid" in str(exc)
        assert exc.missing == ["attomid"]

    def test_transport_error_to_dict(self) -> None:
        exc = TransportError("boom", status=500, body="x", url="https://api.test/x", attempts=3)
        assert exc.to_dict() == {
            "message": "boom",
            "status": 500,
            "body": "x",
            "url": "https://api.test/x",
            "attempts": 3,
        }

    def test_rate_limited(self) -> None:
        exc = RateLimited("avmSnapshot", 12.4)
        assert str(exc) == "Request budget for avmSnapshot exhausted; retry in 12s"
        assert exc.retry_after == 12.4


class TestClassify:
    @pytest.mark.parametrize(
        "exc, expected",
        [
            (TransportError("x", status=400, body="Unable to locate a property record"), UpstreamSignal.no_record),
            (TransportError("Error: UNABLE TO LOCATE A PROPERTY RECORD", status=400), UpstreamSignal.no_record),
            (TransportError("x", status=200, body='{"msg": "SuccessWithoutResult"}'), UpstreamSignal.no_result),
            (TransportError("x", status=429), UpstreamSignal.rate_limited),
            (TransportError("x", status=401), UpstreamSignal.unauthorized),
            (TransportError("x", status=403), UpstreamSignal.unauthorized),
            (TransportError("x", status=500, body="oops"), None),
            (TransportError("Network error"), None),
        ],
    )
    def test_signals(self, exc, expected) -> None:
        assert classify_upstream_error(exc) == expected

    def test_non_transport_error(self) -> None:
        assert classify_upstream_error(ValueError("Unable to locate a property record")) is None
