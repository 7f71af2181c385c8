"""Tests for the widened comparables retry in attom_gateway/query/comparables.py."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from attom_gateway.errors import TransportError
from attom_gateway.query.comparables import ComparablesRetryPolicy, widen_search
from attom_gateway.query.dispatcher import QueryDispatcher
from attom_gateway.query.resolvers import PROPERTY_DETAIL_PATH, FallbackResolver
from tests.conftest import ATTOM_ID, ok, property_record

COMPS_BY_ADDRESS_PATH = "/property/v2/salescomparables/address/123 Main St/Springfield/-/IL/62701"
COMPS_BY_ID_PATH = f"/property/v2/salescomparables/propid/{ATTOM_ID}"

SUBJECT = {"street": "123 Main St", "city": "Springfield", "state": "IL", "zip": "62701"}


def not_found() -> httpx.Response:
    return httpx.Response(400, text='{"message": "Unable to locate a property record"}')


@pytest.fixture
def policy(make_transport, cache, contexts, fake_sleep, config) -> ComparablesRetryPolicy:
    # Single attempt per call so the policy's own retry is what is observed
    transport = make_transport(max_retries=0)
    resolver = FallbackResolver(transport, cache, contexts, sleep=fake_sleep, config=config)
    dispatcher = QueryDispatcher(transport, resolver, cache=cache, contexts=contexts)
    return ComparablesRetryPolicy(dispatcher, resolver)


class TestWidenSearch:
    def test_ranges_widened_around_size(self) -> None:
        widened = widen_search({"miles": 5}, 1500)
        assert widened == {"miles": 5, "sqFeetRange": 450, "yearBuiltRange": 40}

    def test_original_untouched(self) -> None:
        params = {"sqFeetRange": 600}
        widen_search(params, 2000)
        assert params == {"sqFeetRange": 600}


class TestComparablesRetry:
    def test_first_call_succeeds(self, policy, upstream) -> None:
        upstream.add(COMPS_BY_ADDRESS_PATH, ok(property=[{"comp": 1}]))

        result = asyncio.run(policy.by_address(SUBJECT))

        assert result["property"] == [{"comp": 1}]
        comps = upstream.calls(COMPS_BY_ADDRESS_PATH)
        assert len(comps) == 1
        assert comps[0].url.params["yearBuiltRange"] == "20"
        assert comps[0].url.params["searchType"] == "Radius"

    def test_no_record_retries_with_default_size(self, policy, upstream) -> None:
        upstream.add(COMPS_BY_ADDRESS_PATH, not_found(), ok(property=[{"comp": 1}]))

        result = asyncio.run(policy.by_address(SUBJECT))

        assert result["property"] == [{"comp": 1}]
        comps = upstream.calls(COMPS_BY_ADDRESS_PATH)
        assert len(comps) == 2
        assert comps[1].url.params["yearBuiltRange"] == "40"
        assert comps[1].url.params["sqFeetRange"] == "600"
        # Size lookup went out by address since no id was given
        detail = upstream.calls(PROPERTY_DETAIL_PATH)[0]
        assert detail.url.params["address1"] == "123 Main St"
        assert detail.url.params["address2"] == "Springfield, IL 62701"

    def test_retry_happens_at_most_once(self, policy, upstream) -> None:
        upstream.add(COMPS_BY_ADDRESS_PATH, not_found())

        with pytest.raises(TransportError):
            asyncio.run(policy.by_address(SUBJECT))

        assert len(upstream.calls(COMPS_BY_ADDRESS_PATH)) == 2

    def test_other_failures_are_not_retried(self, policy, upstream) -> None:
        upstream.add(COMPS_BY_ADDRESS_PATH, httpx.Response(500, text="boom"))

        with pytest.raises(TransportError) as excinfo:
            asyncio.run(policy.by_address(SUBJECT))

        assert excinfo.value.status == 500
        assert len(upstream.calls(COMPS_BY_ADDRESS_PATH)) == 1
        assert upstream.calls(PROPERTY_DETAIL_PATH) == []

    def test_prop_id_uses_subject_size(self, policy, upstream) -> None:
        upstream.add(COMPS_BY_ID_PATH, not_found(), ok(property=[]))
        upstream.add(PROPERTY_DETAIL_PATH, property_record(building={"size": {"livingsize": 1500}}))

        asyncio.run(policy.by_prop_id({"propId": ATTOM_ID}))

        comps = upstream.calls(COMPS_BY_ID_PATH)
        assert len(comps) == 2
        assert comps[1].url.params["sqFeetRange"] == "450"
        assert upstream.calls(PROPERTY_DETAIL_PATH)[0].url.params["attomid"] == ATTOM_ID
