import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from storefront.core.config import Settings
from storefront.core.database import DocumentStore
from storefront.core.security import create_access_token
from storefront.main import create_app


BOT_URL = "http://bot.test"
STAFF_CHANNEL = "123456789012345678"


def _bare(url) -> str:
    return str(url).split("?", 1)[0]


class FakeUpstream:
    """Routes outbound httpx calls to canned responses and records them"""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method, url, response=None, status=200, handler=None):
        self.routes[(method, url)] = handler or (lambda request: httpx.Response(status, json=response))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = _bare(request.url)
        handler = self.routes.get((request.method, url))
        if handler is None:
            return httpx.Response(200, json={"ok": True})
        return handler(request)

    def calls_to(self, url):
        return [r for r in self.requests if _bare(r.url) == url]

    def json_sent_to(self, url):
        return [json.loads(r.content) for r in self.calls_to(url)]


def make_store(path) -> DocumentStore:
    # NullPool: every operation opens its own connection, so the store can be
    # shared between the test loop and the TestClient loop
    return DocumentStore(create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool))


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        JWT_SECRET="test-jwt-secret",
        ADMIN_API_KEY="admin-key",
        CRON_SECRET="cron-secret",
        MONITOR_SECRET="monitor-secret",
        BOT_WEBHOOK_URL=BOT_URL,
        DISCORD_BOT_TOKEN="bot-token",
        STAFF_LOG_CHANNEL_ID=STAFF_CHANNEL,
        IPAYMU_API_KEY="ipaymu-key",
        IPAYMU_VA="0000001234567890",
        PAKASIR_API_KEY="pakasir-key",
        TOKOPAY_MERCHANT_ID="M123",
        TOKOPAY_SECRET="toko-secret",
        PAYPAL_CLIENT_ID="pp-client",
        PAYPAL_SECRET="pp-secret",
    )


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def http_client(upstream):
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream))


@pytest.fixture
async def store(tmp_path):
    store = make_store(tmp_path / "store.db")
    await store.init()
    yield store
    await store.close()


@pytest.fixture
def app_store(tmp_path):
    return make_store(tmp_path / "app.db")


@pytest.fixture
def client(settings, app_store, http_client):
    app = create_app(settings, store=app_store, http_client=http_client)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def run():
    """Run a coroutine from a synchronous test"""
    return asyncio.run


@pytest.fixture
def admin_headers(settings):
    token = create_access_token(settings, "admin-1", role="admin", email="admin@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers(settings):
    token = create_access_token(settings, "user-1", role="user", email="buyer@example.com")
    return {"Authorization": f"Bearer {token}"}


def sample_order(**overrides):
    order = {
        "userId": "user-1",
        "username": "buyer",
        "customer": {"name": "Budi", "email": "budi@example.com", "phone": "0812"},
        "productSlug": "netflix-premium",
        "productName": "Netflix Premium",
        "planName": "1 Month",
        "amount": 50000,
        "totalAmount": 50000,
        "currency": "IDR",
        "status": "PENDING",
        "payment": {
            "provider": "pakasir",
            "reference": "JMB20240115ABCDEFGHIJ",
            "status": "PENDING",
        },
        "delivery": {"status": "PENDING"},
        "createdAt": "2024-01-15T10:00:00+00:00",
    }
    order.update(overrides)
    return order


@pytest.fixture
def order_data():
    return sample_order
