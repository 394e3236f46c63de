from __future__ import annotations

import os

from tests.helpers import TEST_API_KEY

# Settings are read at import time
os.environ["API_KEY"] = TEST_API_KEY
os.environ["APP_ENV"] = "test"
os.environ.setdefault("DB_NAME", "shop_test")
os.environ["LOG_FILE_PATH"] = ""
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ["RATE_LIMIT_WRITE"] = "1000/minute"

from typing import AsyncIterator  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from shop_api.core import metrics  # noqa: E402
from shop_api.core.rate_limiter import limiter  # noqa: E402
from shop_api.db.database import init_db  # noqa: E402
from shop_api.main import create_app  # noqa: E402
from tests.fakes import FakeMongoClient  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_state():
    metrics.reset_metrics_registry()
    limiter.reset()
    yield


@pytest.fixture
def mongo_client() -> FakeMongoClient:
    return FakeMongoClient()


@pytest.fixture
def fake_db(mongo_client):
    return mongo_client[os.environ["DB_NAME"]]


def _build_app(mongo_client, seed_samples: bool = False):
    async def connect():
        return await init_db(client=mongo_client)

    return create_app(connect=connect, seed_samples=seed_samples)


@pytest_asyncio.fixture
async def app(mongo_client):
    application = _build_app(mongo_client)
    async with application.router.lifespan_context(application):
        yield application


@pytest_asyncio.fixture
async def client(app) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client


@pytest.fixture
def build_app(mongo_client):
    def factory(seed_samples: bool = False):
        return _build_app(mongo_client, seed_samples=seed_samples)
    return factory
