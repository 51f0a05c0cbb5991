"""Pytest configuration and fixtures."""

import os
import re
import tempfile
from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any

# Keep the debug log of imported app modules out of the working tree.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault(
    "DEBUG_LOG_PATH", str(Path(tempfile.gettempdir()) / "aspos-sync-test-debug.log")
)

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from aspos_sync.clients.base import AsposApiConfig
from aspos_sync.config import Settings
from aspos_sync.infrastructure.database.connection import create_session_factory
from aspos_sync.infrastructure.database.models import Base
from aspos_sync.services.pipeline import SyncPipeline

PAGE_SIZE = 2


class AsposStub:
    """In-memory ASPOS API served through httpx.MockTransport."""

    def __init__(self, page_size: int = PAGE_SIZE):
        self.page_size = page_size
        self.token_status = 200
        self.token_body: dict[str, Any] = {"access_token": "token-abc", "expires_in": 3600}
        self.stores: list[dict] = []
        self.web_products: dict[str, list[dict]] = {}
        self.stock: dict[str, list[dict]] = {}
        self.failing_stores: set[str] = set()
        self.requests: list[httpx.Request] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/connect/token"]

    def _paged(self, records: list[dict], request: httpx.Request) -> httpx.Response:
        page = int(request.url.params.get("page", 1))
        limit = int(request.url.params.get("limit", self.page_size))
        chunk = records[(page - 1) * limit : page * limit]
        return httpx.Response(
            200, json={"data": chunk, "pagination": {"hasMore": page * limit < len(records)}}
        )

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/connect/token":
            return httpx.Response(self.token_status, json=self.token_body)

        if request.headers.get("Authorization") != f"Bearer {self.token_body.get('access_token')}":
            return httpx.Response(401)

        if path == "/stores":
            return self._paged(self.stores, request)

        if path == "/sync/web-products":
            store_id = request.url.params["storeId"]
            if store_id in self.failing_stores:
                return httpx.Response(503)
            return self._paged(self.web_products.get(store_id, []), request)

        match = re.fullmatch(r"/products/(.+)/stock-info", path)
        if match:
            records = self.stock.get(match.group(1), [])
            store_id = request.url.params.get("storeId")
            if store_id:
                records = [r for r in records if r["storeId"] == store_id]
            # Unpaginated: page and limit are ignored like upstream does
            return httpx.Response(200, json=records)

        return httpx.Response(404)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Get test settings with overrides."""
    return Settings(
        app_env="test",
        debug=True,
        aspos_client_id="client-id",
        aspos_client_secret="client-secret",
        aspos_token_url="https://auth.aspos.test/connect/token",
        aspos_api_base_url="https://api.aspos.test",
        aspos_page_size=PAGE_SIZE,
        database_url_override=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        debug_log_path=str(tmp_path / "debug.log"),
        price_export_dir=str(tmp_path / "exports"),
    )


@pytest.fixture
def api_config(test_settings: Settings) -> AsposApiConfig:
    return AsposApiConfig.from_settings(test_settings)


@pytest.fixture
def aspos() -> AsposStub:
    return AsposStub()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """SQLite file with every table created."""
    path = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)
    engine.dispose()
    return path


@pytest_asyncio.fixture
async def engine(db_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def http_client(aspos: AsposStub) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=aspos.transport()) as client:
        yield client


@pytest.fixture
def pipeline(
    session: AsyncSession,
    api_config: AsposApiConfig,
    http_client: httpx.AsyncClient,
    tmp_path: Path,
) -> SyncPipeline:
    return SyncPipeline(session, api_config, http_client, export_dir=str(tmp_path / "exports"))


@pytest.fixture
def sample_stores() -> list[dict]:
    """Upstream store records, one of them a test store."""
    return [
        {
            "id": "S1",
            "city": "Utrecht",
            "code": "UT",
            "email": "utrecht@example.com",
            "name": "Utrecht Centrum",
            "phoneNumber": "030-1234567",
            "postalCode": "3511AA",
            "status": "active",
            "street": "Oudegracht 1",
        },
        {
            "id": "S2",
            "city": "Amersfoort",
            "code": "AF",
            "email": "amersfoort@example.com",
            "name": "Amersfoort",
            "phoneNumber": "033-7654321",
            "postalCode": "3811AA",
            "status": "active",
            "street": "Langestraat 5",
        },
        {
            "id": "S9",
            "city": "Nowhere",
            "code": "TST",
            "email": None,
            "name": "Test store",
            "phoneNumber": None,
            "postalCode": None,
            "status": "test",
            "street": None,
        },
    ]


def make_product(aspos_id: str, price: float = 10.0, **overrides: Any) -> dict:
    """Upstream web-product record."""
    return {
        "id": aspos_id,
        "description": f"Product {aspos_id}",
        "priceInclTax": price,
        "priceExclTax": round(price / 1.21, 2),
        "state": "active",
        **overrides,
    }


@pytest.fixture
def scheduled() -> list[int]:
    """Delays passed to the queue's trigger scheduler."""
    return []


@pytest.fixture
def scheduler(scheduled: list[int]):
    return scheduled.append


@pytest.fixture
def product_factory() -> Callable[..., dict]:
    return make_product
