import asyncio

import pytest
from sqlalchemy import func, select

from application.dtos.payments import ImportStats, OrderStatus
from application.services.import_service import PaymentImportService
from domain.common.exceptions import ProviderNotFoundException
from domain.payment.entity import PaymentStatus
from infrastructure.external.payments.exceptions import ProviderAuthError, ProviderNetworkError
from infrastructure.models import PaymentModel, UserModel
from infrastructure.repositories.payment_repository import SQLAlchemyPaymentRepository


async def count_rows(session_factory, model):
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


async def stored_payment(uow_factory, processor, order_id):
    async with uow_factory(readonly=True) as uow:
        return await uow.payment_repository.get_by_processor_order(processor, order_id)


def make_service(registry, uow_factory, **kwargs):
    kwargs.setdefault("import_backoff", 0)
    return PaymentImportService(registry, uow_factory, **kwargs)


@pytest.mark.asyncio
async def test_import_creates_payments_and_users(registry, uow_factory, session_factory, make_provider, order_factory):
    orders = [
        order_factory("o1", "a@example.com", amount=1000, product_name="Pro - Yearly", variant_name="Yearly"),
        order_factory("o2", "b@example.com", amount=2000),
        order_factory("o3", "a@example.com", amount=3000),
    ]
    registry.register(await make_provider("lemonsqueezy", orders))
    service = make_service(registry, uow_factory)

    stats = await service.import_provider("lemonsqueezy")

    assert stats == ImportStats(total=3, imported=3, skipped=0, errors=0, users_created=2)
    assert await count_rows(session_factory, PaymentModel) == 3
    assert await count_rows(session_factory, UserModel) == 2

    payment = await stored_payment(uow_factory, "lemonsqueezy", "o1")
    assert payment.amount == 1000
    assert payment.status == PaymentStatus.COMPLETED
    assert payment.product_name == "Pro - Yearly"
    assert payment.user_id is not None
    assert payment.metadata["productName"] == payment.metadata["product_name"] == "Pro - Yearly"
    assert payment.metadata["variant_name"] == "Yearly"
    assert payment.metadata["order_data"] == {"id": "o1", "status": "paid"}
    assert payment.purchased_at.year == 2024


@pytest.mark.asyncio
async def test_reimport_is_idempotent(registry, uow_factory, session_factory, make_provider, order_factory):
    orders = [order_factory(f"o{i}", f"user{i}@example.com") for i in range(4)]
    registry.register(await make_provider("lemonsqueezy", orders))
    service = make_service(registry, uow_factory)

    first = await service.import_provider("lemonsqueezy")
    second = await service.import_provider("lemonsqueezy")

    assert first.imported == 4 and first.users_created == 4
    assert second.imported == 0
    assert second.skipped == second.total == 4
    assert second.users_created == 0
    assert await count_rows(session_factory, PaymentModel) == 4
    assert await count_rows(session_factory, UserModel) == 4


@pytest.mark.asyncio
async def test_same_order_key_keeps_one_row_with_latest_values(
    registry, uow_factory, session_factory, make_provider, order_factory
):
    provider = await make_provider(
        "lemonsqueezy",
        [order_factory("dup", amount=1000), order_factory("dup", amount=1500, product_name="Pro Plan v2")],
    )
    registry.register(provider)
    service = make_service(registry, uow_factory)

    stats = await service.import_provider("lemonsqueezy")

    assert stats.imported == 1 and stats.skipped == 1
    assert await count_rows(session_factory, PaymentModel) == 1
    payment = await stored_payment(uow_factory, "lemonsqueezy", "dup")
    assert payment.amount == 1500
    assert payment.product_name == "Pro Plan v2"


@pytest.mark.asyncio
async def test_same_order_id_on_different_processors_is_distinct(
    registry, uow_factory, session_factory, make_provider, order_factory
):
    service = make_service(registry, uow_factory)
    await service.import_orders("lemonsqueezy", [order_factory("shared-id")])
    await service.import_orders("polar", [order_factory("shared-id", processor="polar")])

    assert await count_rows(session_factory, PaymentModel) == 2


@pytest.mark.asyncio
async def test_ineligible_orders_are_skipped(registry, uow_factory, session_factory, order_factory):
    service = make_service(registry, uow_factory)
    stats = await service.import_orders(
        "lemonsqueezy",
        [
            order_factory("pending", status=OrderStatus.PENDING),
            order_factory("no-email", email=None),
            order_factory("blank-email", email="   "),
            order_factory("refund-unknown", status=OrderStatus.REFUNDED),
        ],
    )

    assert stats == ImportStats(total=4, skipped=4)
    assert await count_rows(session_factory, PaymentModel) == 0
    assert await count_rows(session_factory, UserModel) == 0


@pytest.mark.asyncio
async def test_existing_email_is_reused(registry, uow_factory, session_factory, order_factory):
    service = make_service(registry, uow_factory)
    await service.import_orders("lemonsqueezy", [order_factory("o1", "same@example.com")])
    stats = await service.import_orders("polar", [order_factory("o2", "same@example.com", processor="polar")])

    assert stats.imported == 1
    assert stats.users_created == 0
    assert await count_rows(session_factory, UserModel) == 1


@pytest.mark.asyncio
async def test_single_order_failure_does_not_abort_batch(
    registry, uow_factory, session_factory, order_factory, monkeypatch
):
    original_create = SQLAlchemyPaymentRepository.create

    async def flaky_create(self, payment):
        if payment.processor_order_id == "o3":
            raise RuntimeError("disk full")
        return await original_create(self, payment)

    monkeypatch.setattr(SQLAlchemyPaymentRepository, "create", flaky_create)
    service = make_service(registry, uow_factory)
    orders = [order_factory(f"o{i}", f"user{i}@example.com") for i in range(1, 6)]

    stats = await service.import_orders("lemonsqueezy", orders)

    assert stats.errors == 1
    assert stats.imported == 4
    assert stats.users_created == 4
    assert await count_rows(session_factory, PaymentModel) == 4
    assert await stored_payment(uow_factory, "lemonsqueezy", "o3") is None
    # the failed order's user was rolled back with its unit of work
    assert await count_rows(session_factory, UserModel) == 4


@pytest.mark.asyncio
async def test_refunded_order_transitions_existing_payment(registry, uow_factory, session_factory, order_factory):
    service = make_service(registry, uow_factory)
    await service.import_orders("lemonsqueezy", [order_factory("o1", amount=2500, product_name="Pro")])

    stats = await service.import_orders(
        "lemonsqueezy",
        [order_factory("o1", email=None, status=OrderStatus.REFUNDED, amount=0, product_name="Unknown Product")],
    )

    assert stats == ImportStats(total=1, skipped=1)
    payment = await stored_payment(uow_factory, "lemonsqueezy", "o1")
    assert payment.status == PaymentStatus.REFUNDED
    # amount and metadata from the original purchase are kept
    assert payment.amount == 2500
    assert payment.product_name == "Pro"


@pytest.mark.asyncio
async def test_pending_order_never_touches_existing_payment(registry, uow_factory, order_factory):
    service = make_service(registry, uow_factory)
    await service.import_orders("lemonsqueezy", [order_factory("o1", amount=2500)])
    await service.import_orders("lemonsqueezy", [order_factory("o1", status=OrderStatus.PENDING, amount=1)])

    payment = await stored_payment(uow_factory, "lemonsqueezy", "o1")
    assert payment.status == PaymentStatus.COMPLETED
    assert payment.amount == 2500


@pytest.mark.asyncio
async def test_cancellation_stops_between_orders(registry, uow_factory, session_factory, order_factory, monkeypatch):
    cancel = asyncio.Event()
    original_create = SQLAlchemyPaymentRepository.create

    async def create_then_cancel(self, payment):
        result = await original_create(self, payment)
        if payment.processor_order_id == "o2":
            cancel.set()
        return result

    monkeypatch.setattr(SQLAlchemyPaymentRepository, "create", create_then_cancel)
    service = make_service(registry, uow_factory)
    orders = [order_factory(f"o{i}", f"user{i}@example.com") for i in range(1, 6)]

    stats = await service.import_orders("lemonsqueezy", orders, cancel_event=cancel)

    assert stats.cancelled is True
    assert stats.total == 5
    assert stats.imported == 2
    assert await count_rows(session_factory, PaymentModel) == 2


@pytest.mark.asyncio
async def test_unknown_provider_raises(registry, uow_factory):
    service = make_service(registry, uow_factory)
    with pytest.raises(ProviderNotFoundException):
        await service.import_provider("paypal")


@pytest.mark.asyncio
async def test_unconfigured_provider_yields_zeroed_stats(registry, uow_factory, make_provider, order_factory):
    provider = await make_provider("polar", [order_factory("o1", processor="polar")], api_key=None)
    registry.register(provider)
    service = make_service(registry, uow_factory)

    assert await service.import_provider("polar") == ImportStats()
    assert provider.fetch_calls == 0


@pytest.mark.asyncio
async def test_network_errors_are_retried_at_provider_level(registry, uow_factory, make_provider, order_factory):
    provider = await make_provider(
        "lemonsqueezy",
        [order_factory("o1")],
        fetch_error=ProviderNetworkError("flaky", provider="lemonsqueezy"),
        fail_times=2,
    )
    registry.register(provider)
    service = make_service(registry, uow_factory, import_attempts=3)

    stats = await service.import_provider("lemonsqueezy")

    assert provider.fetch_calls == 3
    assert stats.imported == 1


@pytest.mark.asyncio
async def test_auth_errors_are_not_retried(registry, uow_factory, make_provider):
    provider = await make_provider(
        "lemonsqueezy", fetch_error=ProviderAuthError("bad key", provider="lemonsqueezy")
    )
    registry.register(provider)
    service = make_service(registry, uow_factory, import_attempts=3)

    with pytest.raises(ProviderAuthError):
        await service.import_provider("lemonsqueezy")
    assert provider.fetch_calls == 1


@pytest.mark.asyncio
async def test_import_all_isolates_failing_provider(
    registry, uow_factory, session_factory, make_provider, order_factory
):
    registry.register(await make_provider("lemonsqueezy", [order_factory("o1", "a@example.com")]))
    registry.register(
        await make_provider("polar", fetch_error=ProviderAuthError("token revoked", provider="polar"))
    )
    registry.register(
        await make_provider("stripe", [order_factory("cs_1", "b@example.com", processor="stripe")])
    )
    service = make_service(registry, uow_factory)

    results = await service.import_all()

    assert set(results) == {"lemonsqueezy", "polar", "stripe"}
    assert results["lemonsqueezy"].imported == 1
    assert results["stripe"].imported == 1
    assert results["polar"].error == "token revoked"
    assert results["polar"].imported == 0
    assert await count_rows(session_factory, PaymentModel) == 2


@pytest.mark.asyncio
async def test_import_all_skips_disabled_providers(registry, uow_factory, make_provider, order_factory):
    disabled = await make_provider("polar", [order_factory("o1", processor="polar")], enabled=False)
    registry.register(disabled)
    service = make_service(registry, uow_factory)

    assert await service.import_all() == {}
    assert disabled.fetch_calls == 0


@pytest.mark.asyncio
async def test_delete_all_returns_deleted_count(registry, uow_factory, session_factory, order_factory):
    service = make_service(registry, uow_factory)
    await service.import_orders("lemonsqueezy", [order_factory(f"o{i}", f"u{i}@example.com") for i in range(3)])

    assert await service.delete_all() == 3
    assert await count_rows(session_factory, PaymentModel) == 0
    # users are not part of the payment reset
    assert await count_rows(session_factory, UserModel) == 3


@pytest.mark.asyncio
async def test_refresh_all_is_delete_then_import(registry, uow_factory, session_factory, make_provider, order_factory):
    service = make_service(registry, uow_factory)
    await service.import_orders(
        "lemonsqueezy", [order_factory(f"old{i}", f"old{i}@example.com") for i in range(5)]
    )
    registry.register(
        await make_provider("lemonsqueezy", [order_factory(f"new{i}", f"new{i}@example.com") for i in range(2)])
    )

    result = await service.refresh_all()

    assert result.deleted_count == 5
    assert result.import_results["lemonsqueezy"].imported == 2
    assert await count_rows(session_factory, PaymentModel) == 2


@pytest.mark.asyncio
async def test_parallel_import_all_reports_every_provider(registry, uow_factory, make_provider):
    registry.register(await make_provider("lemonsqueezy"))
    registry.register(
        await make_provider("polar", fetch_error=ProviderNetworkError("timed out", provider="polar"))
    )
    service = make_service(registry, uow_factory, parallel=True, import_attempts=2)

    results = await service.import_all()

    assert results["lemonsqueezy"] == ImportStats()
    assert results["polar"].error == "timed out"
    assert registry.get("polar").fetch_calls == 2


@pytest.mark.asyncio
async def test_refund_survives_later_paid_reimport(registry, uow_factory, make_provider, order_factory):
    # a refunded Stripe Checkout Session still reports payment_status "paid"
    provider = await make_provider("stripe", [order_factory("pi_1", amount=4900, processor="stripe")])
    registry.register(provider)
    service = make_service(registry, uow_factory)

    await service.import_provider("stripe")
    await service.import_orders(
        "stripe", [order_factory("pi_1", email=None, status=OrderStatus.REFUNDED, processor="stripe")]
    )
    provider.orders = [order_factory("pi_1", amount=5100, product_name="Pro Plan v2", processor="stripe")]
    stats = await service.import_provider("stripe")

    assert stats.skipped == 1
    payment = await stored_payment(uow_factory, "stripe", "pi_1")
    assert payment.status == PaymentStatus.REFUNDED
    assert payment.amount == 5100
    assert payment.product_name == "Pro Plan v2"


def test_importable_requires_paid_status_and_usable_email(order_factory):
    assert order_factory("o1").is_importable is True
    assert order_factory("o2", email="  ").is_importable is False
    assert order_factory("o3", status=OrderStatus.PENDING).is_importable is False


@pytest.mark.asyncio
async def test_delete_all_on_empty_table_reports_zero(registry, uow_factory):
    assert await make_service(registry, uow_factory).delete_all() == 0
