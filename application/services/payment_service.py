"""
Application service for the read path, checkout and webhook ingress.

Every query either targets one provider (errors propagate to the caller) or
fans out across enabled providers, where a failing provider is logged and
skipped so one broken backend cannot hide purchases made elsewhere.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable, List, Optional, TypeVar

from application.dto import CurrentUserDTO
from application.dtos.payments import (
    CheckoutOptions,
    CheckoutRequest,
    ImportStats,
    NormalizedProduct,
)
from application.ports.payment_provider import OrderImporter, PaymentProvider
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException, ProviderNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment
from shared.codes import BusinessCode

if TYPE_CHECKING:
    from infrastructure.external.payments.registry import ProviderRegistry

logger = get_logger(__name__)

T = TypeVar("T")


class PaymentService:
    def __init__(
        self,
        registry: "ProviderRegistry",
        importer: Optional[OrderImporter] = None,
        uow_factory: Optional[Callable[..., AbstractUnitOfWork]] = None,
        *,
        default_provider: Optional[str] = None,
    ) -> None:
        self._registry = registry
        self._importer = importer
        self._uow_factory = uow_factory
        self._default_provider = default_provider

    def _get_provider(self, provider_id: str) -> PaymentProvider:
        provider = self._registry.get(provider_id)
        if provider is None:
            raise ProviderNotFoundException(provider_id)
        return provider

    def _targets(self, provider_id: Optional[str]) -> List[PaymentProvider]:
        if provider_id:
            return [self._get_provider(provider_id)]
        return self._registry.get_enabled()

    async def _fan_out(
        self,
        provider_id: Optional[str],
        call: Callable[[PaymentProvider], Awaitable[T]],
        *,
        operation: str,
    ) -> List[T]:
        results: List[T] = []
        for provider in self._targets(provider_id):
            if provider_id:
                results.append(await call(provider))
                continue
            try:
                results.append(await call(provider))
            except Exception as exc:
                logger.warning("payment_provider_query_failed", provider=provider.id, operation=operation, error=str(exc))
        return results

    async def _any(
        self, provider_id: Optional[str], call: Callable[[PaymentProvider], Awaitable[bool]], *, operation: str
    ) -> bool:
        return any(await self._fan_out(provider_id, call, operation=operation))

    # ------------------------------------------------------------------ reads
    async def get_payment_status(self, user_id: str, provider: Optional[str] = None) -> bool:
        return await self._any(provider, lambda p: p.get_payment_status(user_id), operation="payment_status")

    async def check_user_purchased_product(
        self, user_id: str, product_id: str, provider: Optional[str] = None
    ) -> bool:
        return await self._any(
            provider, lambda p: p.has_user_purchased_product(user_id, product_id), operation="purchased_product"
        )

    async def check_user_purchased_variant(
        self, user_id: str, variant_id: str, provider: Optional[str] = None
    ) -> bool:
        return await self._any(
            provider, lambda p: p.has_user_purchased_variant(user_id, variant_id), operation="purchased_variant"
        )

    async def check_user_subscription(self, user_id: str, provider: Optional[str] = None) -> bool:
        return await self._any(provider, lambda p: p.has_user_active_subscription(user_id), operation="subscription")

    async def get_user_purchased_products(
        self, user_id: str, provider: Optional[str] = None
    ) -> List[NormalizedProduct]:
        per_provider = await self._fan_out(
            provider, lambda p: p.get_user_purchased_products(user_id), operation="purchased_products"
        )
        return [product for products in per_provider for product in products]

    async def list_products(self, provider: Optional[str] = None) -> List[NormalizedProduct]:
        per_provider = await self._fan_out(provider, lambda p: p.list_products(), operation="list_products")
        return [product for products in per_provider for product in products]

    async def list_recorded_payments(self, user_id: str, skip: int = 0, limit: int = 100) -> List[Payment]:
        """Payments already reconciled into local storage for this account."""
        if self._uow_factory is None:
            return []
        async with self._uow_factory(readonly=True) as uow:
            return await uow.payment_repository.list_by_user(user_id, skip=skip, limit=limit)

    # --------------------------------------------------------------- checkout
    def _checkout_provider(self, requested: Optional[str]) -> PaymentProvider:
        if requested:
            return self._get_provider(requested)
        if self._default_provider and self._registry.has(self._default_provider):
            return self._get_provider(self._default_provider)
        for provider in self._registry.get_enabled():
            if provider.is_ready:
                return provider
        raise BusinessException(
            code=BusinessCode.BUSINESS_ERROR,
            message="No payment provider is available for checkout",
            error_type="ProviderUnavailable",
        )

    async def create_checkout_url(self, user: CurrentUserDTO, request: CheckoutRequest) -> Optional[str]:
        provider = self._checkout_provider(request.provider)
        metadata: dict[str, Any] = dict(request.metadata)
        metadata.update({"user_id": user.user_id, "user_email": user.email, "user_name": user.name})
        options = CheckoutOptions(
            product_id=request.product_id,
            variant_id=request.variant_id,
            email=user.email,
            user_id=user.user_id,
            user_name=user.name,
            metadata=metadata,
        )
        url = await provider.create_checkout_url(options)
        logger.info(
            "checkout_url_created" if url else "checkout_url_unavailable",
            provider=provider.id,
            product_id=request.product_id,
            user_id=user.user_id,
        )
        return url

    # ---------------------------------------------------------------- webhook
    async def handle_webhook_event(self, provider_id: str, event: dict[str, Any]) -> Optional[ImportStats]:
        """Feed one already-authenticated webhook event through the importer.

        Returns None when the event carries no order (irrelevant type or a
        soft-disabled provider).
        """
        provider = self._get_provider(provider_id)
        order = await provider.handle_webhook_event(event)
        if order is None:
            logger.info("webhook_event_ignored", provider=provider.id, event_type=event.get("type"))
            return None
        if self._importer is None:
            raise RuntimeError("PaymentService was built without an order importer")
        logger.info("webhook_order_received", provider=provider.id, order_id=order.order_id, status=order.status.value)
        return await self._importer.import_orders(provider.id, [order])
