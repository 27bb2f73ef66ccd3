import json
import os

# Configure before any country_api import reads settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ.pop("REDIS_URL", None)

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from country_api import models
from country_api.config import settings
from country_api.services.refresh import RefreshService, SingleFlight

COUNTRIES_URL = "http://countries.test/v2/all"
RATES_URL = "http://rates.test/v6/latest/USD"


class FixedRandom:
    """Deterministic stand-in for random.Random that records its calls."""

    def __init__(self, value: int = 1500):
        self.value = value
        self.calls = []

    def randint(self, a: int, b: int) -> int:
        self.calls.append((a, b))
        return self.value


def external_api(
    countries=None,
    rates=None,
    *,
    countries_status: int = 200,
    rates_status: int = 200,
    countries_hook=None,
    rates_hook=None,
):
    """Build an httpx.MockTransport serving the two external sources.

    ``*_hook`` is an optional coroutine awaited before answering, used to
    delay or block a response.
    """
    countries = [] if countries is None else countries
    rates = {"result": "success", "rates": {}} if rates is None else rates

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "countries.test":
            if countries_hook is not None:
                await countries_hook()
            return httpx.Response(countries_status, content=json.dumps(countries))
        if request.url.host == "rates.test":
            if rates_hook is not None:
                await rates_hook()
            return httpx.Response(rates_status, content=json.dumps(rates))
        return httpx.Response(404)

    return httpx.MockTransport(handler)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def image_path(tmp_path, monkeypatch):
    path = tmp_path / "cache" / "summary.png"
    monkeypatch.setattr(settings, "CACHE_IMAGE_PATH", path)
    return path


@pytest.fixture
def guard():
    return SingleFlight("refresh")


@pytest.fixture
def make_service(session_factory, image_path, guard):
    def _make(transport: httpx.MockTransport, **kwargs) -> RefreshService:
        kwargs.setdefault("rng", FixedRandom())
        kwargs.setdefault("timeout_ms", 2000)
        return RefreshService(
            session_factory,
            countries_url=COUNTRIES_URL,
            exchange_url=RATES_URL,
            http_client_factory=lambda: httpx.AsyncClient(transport=transport),
            image_path=image_path,
            guard=guard,
            **kwargs,
        )

    return _make
