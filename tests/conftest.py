"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite://")
os.environ.setdefault("DEBUG", "false")

from datetime import datetime, timezone
from typing import Any, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from application.dtos.payments import LemonSqueezyAttributes, NormalizedOrder, OrderStatus
from infrastructure.external.payments.base import BasePaymentProvider
from infrastructure.external.payments.registry import ProviderRegistry
from infrastructure.models import Base
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


class FakeProvider(BasePaymentProvider):
    """Adapter whose backend is an in-memory list of already-normalized orders."""

    def __init__(
        self,
        provider_id: str = "lemonsqueezy",
        orders=(),
        *,
        api_key: Optional[str] = "test-key",
        fetch_error: Optional[Exception] = None,
        fail_times: int = 0,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("retry", {"max": 0, "base": 0})
        super().__init__(api_key=api_key, **kwargs)
        self.id = provider_id
        self.name = provider_id.title()
        self.orders = list(orders)
        self.fetch_error = fetch_error
        self.fail_times = fail_times
        self.fetch_calls = 0
        self.closed = False
        self.webhook_orders: dict = {}

    async def _fetch_orders(self, email: Optional[str] = None):
        self.fetch_calls += 1
        if self.fetch_error is not None and (self.fail_times == 0 or self.fetch_calls <= self.fail_times):
            raise self.fetch_error
        return list(self.orders)

    def _normalize_order(self, raw):
        return raw

    def _order_from_event(self, event):
        return self.webhook_orders.get(event.get("id"))

    async def aclose(self) -> None:
        self.closed = True
        await super().aclose()


def make_order(
    order_id: str,
    email: Optional[str] = "buyer@example.com",
    *,
    status: OrderStatus = OrderStatus.PAID,
    amount: int = 1999,
    product_name: str = "Pro Plan",
    product_id: str = "prod_1",
    variant_id: str = "var_1",
    variant_name: Optional[str] = None,
    processor: str = "lemonsqueezy",
    name: Optional[str] = None,
    custom_data: Optional[dict] = None,
    purchase_date: Optional[datetime] = None,
) -> NormalizedOrder:
    return NormalizedOrder(
        id=f"native-{order_id}",
        order_id=order_id,
        user_email=email,
        user_name=name,
        amount_minor_units=amount,
        status=status,
        product_name=product_name,
        purchase_date=purchase_date or datetime(2024, 1, 1, tzinfo=timezone.utc),
        processor=processor,
        attributes=LemonSqueezyAttributes(
            product_id=product_id,
            variant_id=variant_id,
            product_name=product_name,
            variant_name=variant_name,
            custom_data=custom_data or {},
            raw={"id": order_id, "status": status.value},
        ),
    )


@pytest.fixture
def order_factory():
    return make_order


@pytest.fixture
def make_provider():
    async def _make(provider_id: str = "lemonsqueezy", orders=(), **kwargs: Any) -> FakeProvider:
        provider = FakeProvider(provider_id, orders, **kwargs)
        await provider.initialize()
        return provider

    return _make


@pytest.fixture
def registry() -> ProviderRegistry:
    return ProviderRegistry()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def uow_factory(session_factory):
    def _factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory, readonly=readonly)

    return _factory
