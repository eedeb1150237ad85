import httpx
import pytest

from application.dtos.payments import CheckoutOptions, ImportStats, OrderStatus
from infrastructure.external.payments.exceptions import ProviderAuthError, ProviderNetworkError
from infrastructure.external.payments.lemonsqueezy_client import LemonSqueezyProvider


class StubDirectory:
    def __init__(self, emails):
        self.emails = emails

    async def get_email(self, user_id):
        return self.emails.get(user_id)


def ls_order(num, email="buyer@example.com", *, status="paid", subtotal=1999, product="Pro", variant="Yearly",
             variant_id=22, created_at="2024-03-01T10:00:00Z", custom_data=None):
    return {
        "type": "orders",
        "id": str(num),
        "attributes": {
            "identifier": f"uuid-{num}",
            "order_number": num,
            "user_email": email,
            "user_name": "Buyer",
            "subtotal": subtotal,
            "status": status,
            "currency": "USD",
            "created_at": created_at,
            "custom_data": custom_data,
            "first_order_item": {
                "product_id": 11,
                "variant_id": variant_id,
                "product_name": product,
                "variant_name": variant,
            },
            "test_mode": False,
        },
    }


def page(items, number=1, last=1):
    return {"data": items, "meta": {"page": {"currentPage": number, "lastPage": last}}}


async def make_provider(handler, **kwargs):
    kwargs.setdefault("api_key", "ls-key")
    kwargs.setdefault("retry", {"max": 0, "base": 0})
    provider = LemonSqueezyProvider(transport=httpx.MockTransport(handler), **kwargs)
    await provider.initialize()
    return provider


@pytest.mark.asyncio
async def test_orders_are_paginated_and_normalized():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        assert request.url.path == "/v1/orders"
        assert request.headers["Authorization"] == "Bearer ls-key"
        number = int(request.url.params["page[number]"])
        if number == 1:
            return httpx.Response(200, json=page([ls_order(1)], number, 2))
        return httpx.Response(200, json=page([ls_order(2, status="refunded", product="Pro", variant="Pro")], number, 2))

    provider = await make_provider(handler, store_id="42")
    orders = await provider.get_all_orders()
    await provider.aclose()

    assert [o.order_id for o in orders] == ["uuid-1", "uuid-2"]
    assert len(seen) == 2
    assert seen[0].url.params["filter[store_id]"] == "42"

    first, second = orders
    assert first.id == "1"
    assert first.amount_minor_units == 1999
    assert first.status == OrderStatus.PAID
    assert first.product_name == "Pro - Yearly"
    assert first.processor == "lemonsqueezy"
    assert first.attributes.product_id == "11"
    assert first.attributes.variant_id == "22"
    assert first.attributes.order_number == 1
    assert first.purchase_date.year == 2024
    assert second.status == OrderStatus.REFUNDED
    assert second.product_name == "Pro"

    metadata = first.attributes.to_metadata()
    assert metadata["productName"] == metadata["product_name"] == "Pro"
    assert metadata["variantName"] == metadata["variant_name"] == "Yearly"
    assert metadata["order_data"]["id"] == "1"


@pytest.mark.asyncio
async def test_user_queries_resolve_email_through_directory():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["filter[user_email]"] == "buyer@example.com"
        return httpx.Response(
            200,
            json=page([ls_order(1), ls_order(2, email="other@example.com"), ls_order(3, status="pending", variant_id=33)]),
        )

    provider = await make_provider(handler, user_directory=StubDirectory({"u1": "buyer@example.com"}))

    assert await provider.get_payment_status("u1") is True
    assert await provider.has_user_purchased_product("u1", "11") is True
    assert await provider.has_user_purchased_variant("u1", "22") is True
    # pending order does not count as a purchase
    assert await provider.has_user_purchased_variant("u1", "33") is False
    assert await provider.get_payment_status("unknown-user") is False


@pytest.mark.asyncio
async def test_custom_data_user_id_matches_without_email():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=page([ls_order(1, email="alias@example.com", custom_data={"user_id": "u1"})]))

    provider = await make_provider(handler, user_directory=StubDirectory({"u1": "buyer@example.com"}))
    assert await provider.get_payment_status("u1") is True


@pytest.mark.asyncio
async def test_purchased_products_are_deduplicated_newest_wins():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=page([
                ls_order(2, subtotal=2999, created_at="2024-06-01T00:00:00Z"),
                ls_order(1, subtotal=1999, created_at="2024-01-01T00:00:00Z"),
                ls_order(3, subtotal=500, variant="Monthly", variant_id=44),
            ]),
        )

    provider = await make_provider(handler, user_directory=StubDirectory({"u1": "buyer@example.com"}))
    products = await provider.get_user_purchased_products("u1")

    by_variant = {p.attributes["variant_id"]: p for p in products}
    assert set(by_variant) == {"22", "44"}
    assert str(by_variant["22"].price_major_units) == "29.99"
    assert by_variant["22"].attributes["order_id"] == "uuid-2"


@pytest.mark.asyncio
async def test_active_subscription():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/subscriptions"
        return httpx.Response(
            200,
            json=page([
                {"id": "9", "attributes": {"status": "expired", "user_email": "buyer@example.com"}},
                {"id": "10", "attributes": {"status": "active", "user_email": "Buyer@Example.com", "product_id": 11}},
            ]),
        )

    provider = await make_provider(handler, user_directory=StubDirectory({"u1": "buyer@example.com"}))
    assert await provider.has_user_active_subscription("u1") is True


@pytest.mark.asyncio
async def test_unconfigured_provider_is_soft_disabled():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    provider = await make_provider(handler, api_key=None, user_directory=StubDirectory({"u1": "buyer@example.com"}))

    assert provider.is_configured is False
    assert await provider.get_payment_status("u1") is False
    assert await provider.has_user_purchased_product("u1", "11") is False
    assert await provider.has_user_purchased_variant("u1", "22") is False
    assert await provider.has_user_active_subscription("u1") is False
    assert await provider.get_user_purchased_products("u1") == []
    assert await provider.get_all_orders() == []
    assert await provider.get_orders_by_email("buyer@example.com") == []
    assert await provider.get_order_by_id("uuid-1") is None
    assert await provider.list_products() == []
    assert await provider.create_checkout_url(CheckoutOptions(product_id="1")) is None
    assert await provider.handle_webhook_event({"meta": {"event_name": "order_created"}}) is None
    assert await provider.import_payments(importer=None) == ImportStats()


@pytest.mark.asyncio
async def test_disabled_flag_soft_disables_configured_provider():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    provider = await make_provider(handler, enabled=False)
    assert provider.is_configured is True
    assert provider.is_ready is False
    assert await provider.get_all_orders() == []


@pytest.mark.asyncio
async def test_rejected_credentials_raise_auth_error():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401, json={"errors": [{"detail": "Unauthenticated."}]})

    provider = await make_provider(handler, retry={"max": 2, "base": 0})
    with pytest.raises(ProviderAuthError):
        await provider.get_all_orders()
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_server_errors_are_retried_then_raised_as_network_error():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503, text="unavailable")

    provider = await make_provider(handler, retry={"max": 2, "base": 0})
    with pytest.raises(ProviderNetworkError):
        await provider.get_all_orders()
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_transport_failure_maps_to_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = await make_provider(handler)
    with pytest.raises(ProviderNetworkError):
        await provider.get_all_orders()


@pytest.mark.asyncio
async def test_products_are_listed_with_major_unit_prices():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/products"
        return httpx.Response(
            200,
            json=page([{"id": "5", "attributes": {"name": "Pro", "price": 4900, "price_formatted": "$49.00"}}]),
        )

    provider = await make_provider(handler)
    [product] = await provider.list_products()
    assert product.name == "Pro"
    assert str(product.price_major_units) == "49"
    assert product.attributes["price_formatted"] == "$49.00"


@pytest.mark.asyncio
async def test_checkout_url_carries_prefill_and_custom_data():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("checkout URL is built locally")

    provider = await make_provider(handler, checkout_base="https://shop.lemonsqueezy.com/buy")
    url = await provider.create_checkout_url(
        CheckoutOptions(product_id="var-uuid", email="buyer@example.com", user_id="u1", user_name="Buyer",
                        metadata={"plan": "pro"})
    )
    parsed = httpx.URL(url)
    assert parsed.path == "/buy/var-uuid"
    assert parsed.params["checkout[email]"] == "buyer@example.com"
    assert parsed.params["checkout[name]"] == "Buyer"
    assert parsed.params["checkout[custom][user_id]"] == "u1"
    assert parsed.params["checkout[custom][plan]"] == "pro"


@pytest.mark.asyncio
async def test_webhook_events_translate_order_payloads():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("webhooks need no request")

    provider = await make_provider(handler)
    refunded = await provider.handle_webhook_event(
        {"meta": {"event_name": "order_refunded", "custom_data": {"user_id": "u1"}}, "data": ls_order(7, status="refunded")}
    )
    assert refunded.order_id == "uuid-7"
    assert refunded.status == OrderStatus.REFUNDED
    assert refunded.attributes.user_id_hint == "u1"

    ignored = await provider.handle_webhook_event({"meta": {"event_name": "subscription_created"}, "data": {"type": "subscriptions"}})
    assert ignored is None

    broken = await provider.handle_webhook_event({"meta": {"event_name": "order_created"}, "data": {"type": "orders"}})
    assert broken is None

