"""
Base payment provider implementing shared concerns: http, retry, logging,
status mapping and the soft-disabled contract.

Concrete providers subclass and implement the ``_fetch_*`` / ``_normalize_*``
hooks; the public contract methods live here so every adapter degrades the
same way when it is not configured or not enabled.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx
from pydantic import ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from application.dtos.payments import (
    CheckoutOptions,
    ImportStats,
    NormalizedOrder,
    NormalizedProduct,
    NormalizedSubscription,
    OrderStatus,
)
from application.ports.payment_provider import OrderImporter, UserDirectory
from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    ProviderAuthError,
    ProviderNetworkError,
    ProviderNotConfiguredError,
    ProviderTimeoutError,
)
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL

logger = get_logger(__name__)

# Payload problems that make a single record unusable but must not fail a listing
_NORMALIZATION_ERRORS = (ValidationError, DomainValidationException, ValueError, KeyError, TypeError)


class BasePaymentProvider:
    id: str = "base"
    name: str = "Base"

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        enabled: bool = True,
        api_base: str = "",
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        user_directory: Optional[UserDirectory] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._enabled = enabled
        self._api_base = api_base.rstrip("/")
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 5.0, "write": 5.0, "total": 10.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._user_directory = user_directory
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._configured = False

    # ------------------------------------------------------------------ state
    @property
    def is_configured(self) -> bool:
        return self._configured

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def is_ready(self) -> bool:
        return self._configured and self._enabled

    @property
    def webhook_secret(self) -> Optional[str]:
        return self._webhook_secret

    async def initialize(self) -> None:
        """Validate configuration; a provider without credentials stays soft-disabled."""
        self._configured = self._validate_config()
        if self._configured:
            self._log("provider_initialized", enabled=self._enabled)
        else:
            logger.warning("provider_not_configured", provider=self.id)

    def _validate_config(self) -> bool:
        return bool(self._api_key)

    # ------------------------------------------------------------------- http
    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._api_base,
                timeout=self.timeouts,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Awaitable[Any]]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0, max=2.0),
            retry=retry_if_exception_type(ProviderNetworkError),
            reraise=True,
        ):
            with attempt:
                return await fn()

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}", "Accept": "application/json"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
        allow_404: bool = False,
    ) -> Any:
        if not self._api_key:
            raise ProviderNotConfiguredError(self.id)
        client = self._get_client()

        async def _send():
            try:
                response = await client.request(method, path, params=params, json=json, headers=self._headers())
            except httpx.TimeoutException as exc:
                raise ProviderTimeoutError(
                    f"{self.name} request timed out", provider=self.id, details={"path": path}
                ) from exc
            except httpx.TransportError as exc:
                raise ProviderNetworkError(
                    f"{self.name} transport error: {exc}", provider=self.id, details={"path": path}
                ) from exc
            return self._handle_response(response, path=path, allow_404=allow_404)

        return await self._retry(_send)

    def _handle_response(self, response: httpx.Response, *, path: str, allow_404: bool) -> Any:
        status = response.status_code
        if status == 404 and allow_404:
            return None
        if status in (401, 403):
            raise ProviderAuthError(
                f"{self.name} rejected the credentials", provider=self.id, provider_code=str(status), details={"path": path}
            )
        if status == 429 or status >= 500:
            raise ProviderNetworkError(
                f"{self.name} temporarily unavailable ({status})",
                provider=self.id,
                provider_code=str(status),
                details={"path": path},
            )
        if status >= 400:
            raise PaymentProviderError(
                f"{self.name} request failed ({status})",
                provider=self.id,
                provider_code=str(status),
                details={"path": path, "body": response.text[:500]},
            )
        if not response.content:
            return {}
        return response.json()

    # ---------------------------------------------------------------- helpers
    def _map_status(self, provider_status: Any) -> OrderStatus:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.id, {})
        return OrderStatus(mapping.get(str(provider_status or "").lower(), OrderStatus.PENDING.value))

    def _log(self, event: str, **kwargs) -> None:
        logger.info(event, provider=self.id, **kwargs)

    def _normalize_all(self, raws: Iterable[Any]) -> list[NormalizedOrder]:
        orders: list[NormalizedOrder] = []
        for raw in raws:
            try:
                orders.append(self._normalize_order(raw))
            except _NORMALIZATION_ERRORS as exc:
                native_id = raw.get("id") if hasattr(raw, "get") else None
                logger.warning("order_normalization_failed", provider=self.id, order_id=native_id, error=str(exc))
        return orders

    async def _resolve_email(self, user_id: str) -> Optional[str]:
        if self._user_directory is None:
            return None
        return await self._user_directory.get_email(user_id)

    async def _user_orders(self, user_id: str) -> list[NormalizedOrder]:
        email = await self._resolve_email(user_id)
        if not email:
            return []
        orders = self._normalize_all(await self._fetch_orders(email=email))
        return [order for order in orders if order.belongs_to(user_id, email)]

    # ------------------------------------------------------------------ hooks
    async def _fetch_orders(self, email: Optional[str] = None) -> list[Any]:
        raise NotImplementedError

    def _normalize_order(self, raw: Any) -> NormalizedOrder:
        raise NotImplementedError

    async def _fetch_order(self, order_id: str) -> Optional[Any]:
        """Direct lookup when the backend supports it; None falls back to a scan."""
        return None

    async def _fetch_subscriptions(self, email: str) -> list[NormalizedSubscription]:
        return []

    async def _fetch_products(self) -> list[NormalizedProduct]:
        return []

    async def _create_checkout(self, options: CheckoutOptions) -> Optional[str]:
        return None

    def _order_from_event(self, event: dict[str, Any]) -> Optional[NormalizedOrder]:
        return None

    # --------------------------------------------------------------- contract
    async def get_payment_status(self, user_id: str) -> bool:
        if not self.is_ready:
            return False
        return any(order.status == OrderStatus.PAID for order in await self._user_orders(user_id))

    async def has_user_purchased_product(self, user_id: str, product_id: str) -> bool:
        if not self.is_ready:
            return False
        return any(
            order.status == OrderStatus.PAID and order.attributes.product_id == str(product_id)
            for order in await self._user_orders(user_id)
        )

    async def has_user_purchased_variant(self, user_id: str, variant_id: str) -> bool:
        if not self.is_ready:
            return False
        return any(
            order.status == OrderStatus.PAID and order.attributes.variant_id == str(variant_id)
            for order in await self._user_orders(user_id)
        )

    async def has_user_active_subscription(self, user_id: str) -> bool:
        if not self.is_ready:
            return False
        email = await self._resolve_email(user_id)
        if not email:
            return False
        for subscription in await self._fetch_subscriptions(email):
            if not subscription.is_active:
                continue
            if subscription.user_id_hint == user_id:
                return True
            if subscription.user_email and subscription.user_email.lower() == email.lower():
                return True
        return False

    async def get_user_purchased_products(self, user_id: str) -> list[NormalizedProduct]:
        if not self.is_ready:
            return []
        paid = [order for order in await self._user_orders(user_id) if order.status == OrderStatus.PAID]
        products: dict[str, NormalizedProduct] = {}
        # oldest first so the newest purchase's attributes overwrite
        for order in sorted(paid, key=lambda o: o.purchase_date):
            attrs = order.attributes
            key = attrs.variant_id or attrs.product_id or order.product_name
            products[key] = NormalizedProduct(
                id=attrs.product_id or key,
                name=attrs.product_name or order.product_name,
                price_major_units=order.amount_major_units,
                is_subscription=attrs.is_subscription,
                provider=self.id,
                attributes={
                    "variant_id": attrs.variant_id,
                    "variant_name": attrs.variant_name,
                    "order_id": order.order_id,
                    "purchase_date": order.purchase_date.isoformat(),
                },
            )
        return list(products.values())

    async def get_all_orders(self) -> list[NormalizedOrder]:
        if not self.is_ready:
            return []
        return self._normalize_all(await self._fetch_orders())

    async def get_orders_by_email(self, email: str) -> list[NormalizedOrder]:
        if not self.is_ready or not email:
            return []
        wanted = email.strip().lower()
        orders = self._normalize_all(await self._fetch_orders(email=email))
        return [order for order in orders if order.user_email and order.user_email.lower() == wanted]

    async def get_order_by_id(self, order_id: str) -> Optional[NormalizedOrder]:
        if not self.is_ready:
            return None
        raw = await self._fetch_order(order_id)
        if raw is not None:
            found = self._normalize_all([raw])
            return found[0] if found else None
        for order in await self.get_all_orders():
            if order.order_id == order_id or order.id == order_id:
                return order
        return None

    async def import_payments(
        self, importer: OrderImporter, *, cancel_event: Optional[asyncio.Event] = None
    ) -> ImportStats:
        if not self.is_ready:
            logger.info("provider_import_skipped", provider=self.id, reason="not_ready")
            return ImportStats()
        orders = await self.get_all_orders()
        self._log("provider_orders_fetched", count=len(orders))
        return await importer.import_orders(self.id, orders, cancel_event=cancel_event)

    async def handle_webhook_event(self, event: dict[str, Any]) -> Optional[NormalizedOrder]:
        if not self.is_ready:
            logger.info("webhook_ignored", provider=self.id, reason="not_ready")
            return None
        try:
            return self._order_from_event(event)
        except _NORMALIZATION_ERRORS as exc:
            logger.warning("webhook_event_unusable", provider=self.id, event_type=event.get("type"), error=str(exc))
            return None

    async def create_checkout_url(self, options: CheckoutOptions) -> Optional[str]:
        if not self.is_ready:
            return None
        return await self._create_checkout(options)

    async def list_products(self) -> list[NormalizedProduct]:
        if not self.is_ready:
            return []
        return await self._fetch_products()
