"""Shared test fixtures for the ATTOM gateway test suite."""

import asyncio
import os

import httpx
import pytest

# Ensure test environment variables are set before any config import
os.environ["ATTOM_API_KEY"] = "test-attom-key"
os.environ["ATTOM_API_BASE_URL"] = "https://api.test"
os.environ["ATTOM_DEMO_MODE"] = "true"
os.environ["GOOGLE_MAPS_API_KEY"] = ""

from attom_gateway.cache import RequestContextStore, TTLCache  # noqa: E402
from attom_gateway.clients.places import PlacesNormalizer  # noqa: E402
from attom_gateway.clients.transport import AttomTransport  # noqa: E402
from attom_gateway.config import Config  # noqa: E402
from attom_gateway.query.resolvers import FallbackResolver  # noqa: E402
from attom_gateway.service import AttomService  # noqa: E402


ADDRESS1 = "123 Main St"
ADDRESS2 = "Springfield, IL 62701"
ATTOM_ID = "184713191"


class FakeUpstream:
    """Routes requests by URL path to queued responses.

    Each route holds a list of responses; they are consumed in order and the
    last one is repeated. A response may be a dict (sent as 200 JSON), an
    ``httpx.Response``, or a callable taking the request.
    """

    def __init__(self) -> None:
        self.routes: dict[str, list] = {}
        self.requests: list[httpx.Request] = []

    def add(self, path: str, *responses) -> None:
        self.routes.setdefault(path, []).extend(responses)

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        # Yield so concurrent callers genuinely overlap
        await asyncio.sleep(0)
        queue = self.routes.get(request.url.path)
        if not queue:
            return httpx.Response(404, json={"status": {"code": 404, "msg": "not mocked"}})
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(item):
            item = item(request)
        if isinstance(item, httpx.Response):
            return item
        return httpx.Response(200, json=item)


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def ok(**body) -> dict:
    """An upstream success body."""
    return {"status": {"code": 0, "msg": "SuccessWithResult"}, **body}


def property_record(attom_id: str = ATTOM_ID, geo_ids: dict | str | None = None, **extra) -> dict:
    prop = {"identifier": {"attomId": int(attom_id)}, **extra}
    if geo_ids is not None:
        prop["location"] = {"geoIdV4": geo_ids}
    return ok(property=[prop])


@pytest.fixture(autouse=True)
def reset_config():
    """Reset the config singleton around every test."""
    import attom_gateway.config
    attom_gateway.config._config = None
    yield
    attom_gateway.config._config = None


@pytest.fixture
def config() -> Config:
    return Config(
        api_key="test-attom-key",
        api_base_url="https://api.test",
        api_retries=2,
        retry_base_delay_ms=500,
        fallback_max_attempts=3,
        fallback_delay_ms=500,
        cache_ttl_default=3600,
        google_maps_api_key="",
    )


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)
    return _sleep


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def make_transport(config, upstream, fake_sleep):
    def _make(**kwargs) -> AttomTransport:
        client = httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))
        return AttomTransport(config=config, client=client, sleep=fake_sleep, **kwargs)
    return _make


@pytest.fixture
def transport(make_transport) -> AttomTransport:
    return make_transport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> TTLCache:
    return TTLCache(clock=clock)


@pytest.fixture
def contexts() -> RequestContextStore:
    return RequestContextStore()


@pytest.fixture
def resolver(transport, cache, contexts, fake_sleep, config) -> FallbackResolver:
    return FallbackResolver(transport, cache, contexts, sleep=fake_sleep, config=config)


@pytest.fixture
def make_service(config, make_transport, cache, fake_sleep):
    def _make(**transport_kwargs) -> AttomService:
        return AttomService(
            config=config,
            transport=make_transport(**transport_kwargs),
            cache=cache,
            normalizer=PlacesNormalizer(api_key="", config=config),
            sleep=fake_sleep,
        )
    return _make
