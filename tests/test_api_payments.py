import httpx
import pytest
import pytest_asyncio

from api.dependencies import get_uow_factory
from application.dtos.payments import NormalizedProduct, OrderStatus
from application.services.token_service import TokenService
from infrastructure.cache import InMemoryRateLimitStore
from main import app
from tests.conftest import FakeProvider


class CatalogProvider(FakeProvider):
    async def _fetch_products(self):
        return [NormalizedProduct(id="prod_1", name="Pro Plan", provider=self.id)]


def bearer(user_id="u1", *, role="user", email="buyer@example.com"):
    token = TokenService().create_access_token(user_id, email=email, role=role)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(registry, uow_factory, order_factory):
    provider = CatalogProvider("lemonsqueezy", [order_factory("o1"), order_factory("o2", "other@example.com")])
    provider.webhook_orders["evt_refund"] = order_factory("o1", email=None, status=OrderStatus.REFUNDED)
    await provider.initialize()
    registry.register(provider)

    app.state.provider_registry = registry
    app.state.rate_limit_store = InMemoryRateLimitStore()
    app.dependency_overrides[get_uow_factory] = lambda: uow_factory
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health_reports_enabled_providers(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["data"] == {"status": "healthy", "providers_enabled": 1}
    assert response.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_import_requires_authentication(client):
    response = await client.post("/api/v1/payments/import")

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(client):
    response = await client.post("/api/v1/payments/import", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_import_forbidden_for_non_admin(client):
    response = await client.post("/api/v1/payments/import", headers=bearer())

    assert response.status_code == 403
    assert response.json()["error"]["type"] == "Forbidden"


@pytest.mark.asyncio
async def test_admin_import_then_rate_limit(client):
    headers = bearer("admin-1", role="admin", email="ops@example.com")

    first = await client.post("/api/v1/payments/import", headers=headers, json={"provider": "lemonsqueezy"})
    assert first.status_code == 200
    assert first.json()["data"]["imported"] == 2
    assert first.json()["data"]["users_created"] == 2

    for _ in range(4):
        response = await client.post("/api/v1/payments/import", headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["lemonsqueezy"]["skipped"] == 2

    limited = await client.post("/api/v1/payments/import", headers=headers)
    assert limited.status_code == 429
    assert int(limited.headers["Retry-After"]) >= 1
    assert limited.json()["error"]["type"] == "RateLimitExceeded"


@pytest.mark.asyncio
async def test_admin_delete_and_refresh(client):
    headers = bearer("admin-1", role="admin")
    await client.post("/api/v1/payments/import", headers=headers)

    deleted = await client.delete("/api/v1/payments", headers=headers)
    assert deleted.json()["data"] == {"deleted_count": 2}

    refreshed = await client.post("/api/v1/payments/refresh", headers=headers)
    body = refreshed.json()["data"]
    assert body["deleted_count"] == 0
    assert body["import_results"]["lemonsqueezy"]["imported"] == 2


@pytest.mark.asyncio
async def test_unknown_provider_import_is_404(client):
    response = await client.post(
        "/api/v1/payments/import", headers=bearer("admin-1", role="admin"), json={"provider": "paypal"}
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_public_product_listing(client):
    response = await client.get("/api/v1/payments/products")

    assert response.status_code == 200
    assert response.json()["data"][0]["name"] == "Pro Plan"


@pytest.mark.asyncio
async def test_webhook_applies_refund(client):
    await client.post("/api/v1/payments/import", headers=bearer("admin-1", role="admin"))

    response = await client.post(
        "/api/v1/payments/webhooks/lemonsqueezy", json={"id": "evt_refund", "type": "order_refunded"}
    )

    assert response.status_code == 200
    assert response.json()["data"]["processed"] is True
    assert response.json()["data"]["stats"]["skipped"] == 1


@pytest.mark.asyncio
async def test_webhook_rejects_non_object_body(client):
    response = await client.post("/api/v1/payments/webhooks/lemonsqueezy", json=["not", "an", "object"])

    assert response.status_code == 400
    assert response.json()["error"]["type"] == "InvalidWebhookPayload"


@pytest.mark.asyncio
async def test_history_lists_callers_payments(client, uow_factory):
    await client.post("/api/v1/payments/import", headers=bearer("admin-1", role="admin"))
    async with uow_factory(readonly=True) as uow:
        payment = await uow.payment_repository.get_by_processor_order("lemonsqueezy", "o1")

    response = await client.get("/api/v1/payments/history", headers=bearer(payment.user_id))

    assert response.status_code == 200
    assert [item["order_id"] for item in response.json()["data"]] == ["o1"]
