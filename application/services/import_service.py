"""
Import orchestrator: persists normalized provider orders as local payments.

Each order runs in its own unit of work so one bad record cannot roll back
or abort the rest of the batch. Duplicate detection relies on the
``(processor, processor_order_id)`` unique constraint rather than
application-level locking, so concurrent re-imports of the same order
resolve to an update.

Refund policy: a refunded order only transitions an already-stored payment
to ``refunded``; it never inserts a new row. Polling (re-import) and
webhooks share this path.
"""
from __future__ import annotations

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, Sequence, Tuple

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from application.dtos.payments import ImportStats, NormalizedOrder, OrderStatus, RefreshAllResult
from application.ports.payment_provider import PaymentProvider
from application.services.user_resolver import UserResolver
from core.logging_config import get_logger
from domain.common.exceptions import PaymentAlreadyExistsException, ProviderNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment, PaymentStatus
from infrastructure.external.payments.exceptions import ProviderNetworkError

if TYPE_CHECKING:
    from infrastructure.external.payments.registry import ProviderRegistry

logger = get_logger(__name__)

_STATUS_TO_PAYMENT = {
    OrderStatus.PAID: PaymentStatus.COMPLETED,
    OrderStatus.REFUNDED: PaymentStatus.REFUNDED,
    OrderStatus.PENDING: PaymentStatus.PENDING,
}


class _Outcome(str, Enum):
    IMPORTED = "imported"
    SKIPPED = "skipped"


def build_payment_metadata(order: NormalizedOrder) -> dict:
    """Provider-agnostic metadata bag with product/variant names at the top level."""
    metadata = order.attributes.to_metadata()
    if not metadata.get("product_name"):
        metadata["product_name"] = metadata["productName"] = order.product_name
    metadata["display_name"] = order.product_name
    metadata["native_id"] = order.id
    metadata["discount_code"] = order.discount_code
    return metadata


class PaymentImportService:
    def __init__(
        self,
        registry: "ProviderRegistry",
        uow_factory: Callable[..., AbstractUnitOfWork],
        resolver: Optional[UserResolver] = None,
        *,
        parallel: bool = False,
        import_attempts: int = 3,
        import_backoff: float = 1.0,
    ) -> None:
        self._registry = registry
        self._uow_factory = uow_factory
        self._resolver = resolver or UserResolver()
        self._parallel = parallel
        self._import_attempts = max(import_attempts, 1)
        self._import_backoff = import_backoff

    # ------------------------------------------------------------ per order
    async def import_orders(
        self,
        provider_id: str,
        orders: Sequence[NormalizedOrder],
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ImportStats:
        stats = ImportStats(total=len(orders))
        for order in orders:
            if cancel_event is not None and cancel_event.is_set():
                stats.cancelled = True
                logger.warning(
                    "payment_import_cancelled",
                    provider=provider_id,
                    processed=stats.imported + stats.skipped + stats.errors,
                    total=stats.total,
                )
                break
            try:
                outcome, user_created = await self._import_order(provider_id, order)
            except Exception as exc:
                stats.errors += 1
                logger.error(
                    "payment_import_order_failed",
                    provider=provider_id,
                    order_id=order.order_id,
                    native_id=order.id,
                    error=str(exc),
                    exc_info=True,
                )
                continue
            if outcome is _Outcome.IMPORTED:
                stats.imported += 1
            else:
                stats.skipped += 1
            if user_created:
                stats.users_created += 1

        logger.info("payment_import_finished", provider=provider_id, **stats.model_dump(exclude={"error"}))
        return stats

    async def _import_order(self, provider_id: str, order: NormalizedOrder) -> Tuple[_Outcome, bool]:
        processor = order.processor or provider_id
        if order.status == OrderStatus.PENDING:
            return _Outcome.SKIPPED, False
        if order.status == OrderStatus.PAID and not order.is_importable:
            logger.info("payment_import_order_without_email", provider=processor, order_id=order.order_id)
            return _Outcome.SKIPPED, False

        async with self._uow_factory() as uow:
            repo = uow.payment_repository
            existing = await repo.get_by_processor_order(processor, order.order_id)

            if order.status == OrderStatus.REFUNDED:
                if existing is not None and existing.status != PaymentStatus.REFUNDED:
                    existing.mark_refunded()
                    await repo.update(existing)
                    logger.info("payment_refunded", provider=processor, order_id=order.order_id)
                return _Outcome.SKIPPED, False

            if existing is not None:
                await self._refresh(uow, existing, order)
                return _Outcome.SKIPPED, False

            user, created = await self._resolver.resolve(uow, order.user_email, name=order.user_name)
            try:
                await repo.create(self._to_payment(processor, order, user.id))
            except PaymentAlreadyExistsException:
                # a concurrent import won the insert; the session was rolled back,
                # including any user created above
                existing = await repo.get_by_processor_order(processor, order.order_id)
                if existing is None:
                    raise
                await self._refresh(uow, existing, order)
                return _Outcome.SKIPPED, False

        return _Outcome.IMPORTED, created

    async def _refresh(self, uow: AbstractUnitOfWork, payment: Payment, order: NormalizedOrder) -> None:
        payment.refresh_from(
            amount=order.amount_minor_units,
            status=_STATUS_TO_PAYMENT[order.status],
            product_name=order.product_name,
            metadata=build_payment_metadata(order),
        )
        await uow.payment_repository.update(payment)

    @staticmethod
    def _to_payment(processor: str, order: NormalizedOrder, user_id: Optional[str]) -> Payment:
        return Payment(
            id=None,
            user_id=user_id,
            order_id=order.order_id,
            processor=processor,
            processor_order_id=order.order_id,
            amount=order.amount_minor_units,
            status=_STATUS_TO_PAYMENT[order.status],
            product_name=order.product_name,
            metadata=build_payment_metadata(order),
            purchased_at=order.purchase_date,
        )

    # --------------------------------------------------------- per provider
    def get_provider(self, provider_id: str) -> PaymentProvider:
        """Registered adapter for ``provider_id``; unknown ids raise ProviderNotFoundException."""
        provider = self._registry.get(provider_id)
        if provider is None:
            raise ProviderNotFoundException(provider_id)
        return provider

    async def import_provider(
        self, provider_id: str, *, cancel_event: Optional[asyncio.Event] = None
    ) -> ImportStats:
        """Import every order of one provider.

        Network failures surface from the order fetch, before any order is
        persisted, so retrying the whole provider call is safe.
        """
        provider = self.get_provider(provider_id)
        logger.info("payment_import_started", provider=provider.id)
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._import_attempts),
            wait=wait_exponential(multiplier=self._import_backoff, min=0, max=30),
            retry=retry_if_exception_type(ProviderNetworkError),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        "payment_import_retry",
                        provider=provider.id,
                        attempt=attempt.retry_state.attempt_number,
                    )
                return await provider.import_payments(self, cancel_event=cancel_event)

    async def import_all(self, *, cancel_event: Optional[asyncio.Event] = None) -> dict[str, ImportStats]:
        providers = self._registry.get_enabled()

        async def _run(provider: PaymentProvider) -> ImportStats:
            try:
                return await self.import_provider(provider.id, cancel_event=cancel_event)
            except Exception as exc:
                logger.error("payment_import_provider_failed", provider=provider.id, error=str(exc), exc_info=True)
                return ImportStats(error=str(exc))

        if self._parallel:
            results = await asyncio.gather(*(_run(provider) for provider in providers))
        else:
            results = []
            for provider in providers:
                results.append(await _run(provider))
        return {provider.id: stats for provider, stats in zip(providers, results)}

    # ------------------------------------------------------------- companions
    async def delete_all(self) -> int:
        async with self._uow_factory() as uow:
            return await uow.payment_repository.delete_all()

    async def refresh_all(self, *, cancel_event: Optional[asyncio.Event] = None) -> RefreshAllResult:
        deleted = await self.delete_all()
        results = await self.import_all(cancel_event=cancel_event)
        return RefreshAllResult(deleted_count=deleted, import_results=results)
