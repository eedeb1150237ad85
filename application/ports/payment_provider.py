"""
Payment provider port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from application.dtos.payments import (
    CheckoutOptions,
    ImportStats,
    NormalizedOrder,
    NormalizedProduct,
)


@runtime_checkable
class OrderImporter(Protocol):
    """Persists a batch of normalized orders for one provider."""

    async def import_orders(
        self,
        provider_id: str,
        orders: Sequence[NormalizedOrder],
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ImportStats: ...


@runtime_checkable
class PaymentProvider(Protocol):
    """Contract every billing backend adapter implements.

    Unless ``is_ready`` (configured and enabled), read methods return
    empty/False/None and ``import_payments`` returns zeroed stats.
    """

    id: str
    name: str

    @property
    def is_configured(self) -> bool: ...

    @property
    def is_enabled(self) -> bool: ...

    @property
    def is_ready(self) -> bool: ...

    async def initialize(self) -> None: ...

    async def get_payment_status(self, user_id: str) -> bool: ...

    async def has_user_purchased_product(self, user_id: str, product_id: str) -> bool: ...

    async def has_user_purchased_variant(self, user_id: str, variant_id: str) -> bool: ...

    async def has_user_active_subscription(self, user_id: str) -> bool: ...

    async def get_user_purchased_products(self, user_id: str) -> list[NormalizedProduct]: ...

    async def get_all_orders(self) -> list[NormalizedOrder]: ...

    async def get_orders_by_email(self, email: str) -> list[NormalizedOrder]: ...

    async def get_order_by_id(self, order_id: str) -> Optional[NormalizedOrder]: ...

    async def import_payments(
        self, importer: OrderImporter, *, cancel_event: Optional[asyncio.Event] = None
    ) -> ImportStats: ...

    async def handle_webhook_event(self, event: dict[str, Any]) -> Optional[NormalizedOrder]: ...

    async def create_checkout_url(self, options: CheckoutOptions) -> Optional[str]: ...

    async def list_products(self) -> list[NormalizedProduct]: ...

    async def aclose(self) -> None: ...


@runtime_checkable
class UserDirectory(Protocol):
    """Resolves an account id to the email its provider orders carry."""

    async def get_email(self, user_id: str) -> Optional[str]: ...
