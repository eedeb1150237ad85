"""
Stripe adapter using the official stripe-python SDK.

Notes on SDK usage:
- The SDK is synchronous; every call runs in a worker thread bounded by the
  configured total timeout, and the API key is passed per request instead of
  mutating the module-level ``stripe.api_key``.
- Orders are Checkout Sessions. The payment intent id is the stable order id
  (subscription-mode sessions have none and fall back to the session id), so
  a later ``charge.refunded`` event lands on the same idempotency key.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

import stripe

from application.dtos.payments import (
    CheckoutOptions,
    NormalizedOrder,
    NormalizedProduct,
    NormalizedSubscription,
    OrderStatus,
    StripeAttributes,
)
from infrastructure.external.payments.base import BasePaymentProvider
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    ProviderAuthError,
    ProviderNetworkError,
    ProviderNotConfiguredError,
    ProviderTimeoutError,
)
from infrastructure.external.payments.product_names import dig, extract_product_name, first_text

_SESSION_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}


def _plain(value: Any) -> Any:
    """StripeObject -> plain dict/list tree (safe to store as JSON)."""
    if not isinstance(value, dict) and hasattr(value, "to_dict"):
        value = value.to_dict()
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def _ref(value: Any) -> Optional[str]:
    """Expandable fields are either an id string or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return first_text(value)


def _from_timestamp(value: Any) -> datetime:
    if value:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    return datetime.now(timezone.utc)


class StripeProvider(BasePaymentProvider):
    id = "stripe"
    name = "Stripe"

    def __init__(
        self,
        *,
        success_url: str = "http://localhost:3000/billing/success",
        cancel_url: str = "http://localhost:3000/billing/cancel",
        page_size: int = 100,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._success_url = success_url
        self._cancel_url = cancel_url
        self._page_size = page_size

    async def _call(self, fn: Callable[..., Any], **params: Any) -> Any:
        if not self._api_key:
            raise ProviderNotConfiguredError(self.id)

        async def _send():
            try:
                return await asyncio.wait_for(
                    asyncio.to_thread(fn, api_key=self._api_key, **params),
                    timeout=self._timeouts_cfg["total"],
                )
            except asyncio.TimeoutError as exc:
                raise ProviderTimeoutError("Stripe request timed out", provider=self.id) from exc
            except (stripe.AuthenticationError, stripe.PermissionError) as exc:
                raise ProviderAuthError(str(exc), provider=self.id, provider_code=getattr(exc, "code", None)) from exc
            except (stripe.APIConnectionError, stripe.RateLimitError) as exc:
                raise ProviderNetworkError(str(exc), provider=self.id, provider_code=getattr(exc, "code", None)) from exc
            except stripe.StripeError as exc:
                raise PaymentProviderError(
                    str(exc), provider=self.id, provider_code=getattr(exc, "code", None)
                ) from exc

        return await self._retry(_send)

    async def _list_all(self, fn: Callable[..., Any], **params: Any) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        starting_after: Optional[str] = None
        while True:
            page_params = dict(params, limit=self._page_size)
            if starting_after:
                page_params["starting_after"] = starting_after
            page = _plain(await self._call(fn, **page_params))
            data = [_plain(item) for item in (page.get("data") or [])]
            items.extend(data)
            if not page.get("has_more") or not data:
                return items
            starting_after = data[-1]["id"]

    async def _fetch_orders(self, email: Optional[str] = None) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"status": "complete", "expand": ["data.line_items"]}
        if email:
            params["customer_details"] = {"email": email}
        return await self._list_all(stripe.checkout.Session.list, **params)

    def _normalize_order(self, raw: dict[str, Any]) -> NormalizedOrder:
        session = _plain(raw)
        line_item = dig(session, "line_items", "data", 0) or {}
        price = line_item.get("price") or {}
        metadata = session.get("metadata") or {}
        payment_intent = _ref(session.get("payment_intent"))
        product_name = first_text(metadata.get("product_name"), line_item.get("description"))
        variant_name = first_text(metadata.get("variant_name"), price.get("nickname"))

        return NormalizedOrder(
            id=str(session["id"]),
            order_id=payment_intent or str(session["id"]),
            user_email=first_text(dig(session, "customer_details", "email"), session.get("customer_email")),
            user_name=dig(session, "customer_details", "name"),
            amount_minor_units=max(int(session.get("amount_total") or 0), 0),
            status=self._map_status(session.get("payment_status")),
            product_name=extract_product_name(
                product_name=metadata.get("product_name"),
                variant_name=metadata.get("variant_name"),
                item_product_name=line_item.get("description"),
                item_variant_name=price.get("nickname"),
                description=metadata.get("description"),
            ),
            purchase_date=_from_timestamp(session.get("created")),
            processor=self.id,
            discount_code=first_text(dig(session, "discounts", 0, "promotion_code")),
            attributes=StripeAttributes(
                product_id=_ref(price.get("product")) or metadata.get("product_id"),
                variant_id=price.get("id") or metadata.get("variant_id"),
                product_name=product_name,
                variant_name=variant_name,
                customer_id=_ref(session.get("customer")),
                currency=session.get("currency"),
                is_subscription=session.get("mode") == "subscription",
                custom_data=metadata,
                session_id=session.get("id"),
                payment_intent=payment_intent,
                mode=session.get("mode"),
                raw=session,
            ),
        )

    def _normalize_refunded_charge(self, charge: dict[str, Any]) -> NormalizedOrder:
        metadata = charge.get("metadata") or {}
        payment_intent = _ref(charge.get("payment_intent"))
        return NormalizedOrder(
            id=str(charge["id"]),
            order_id=payment_intent or str(charge["id"]),
            user_email=first_text(dig(charge, "billing_details", "email"), charge.get("receipt_email")),
            user_name=dig(charge, "billing_details", "name"),
            amount_minor_units=max(int(charge.get("amount") or 0), 0),
            status=OrderStatus.REFUNDED,
            product_name=extract_product_name(
                product_name=metadata.get("product_name"),
                variant_name=metadata.get("variant_name"),
                description=charge.get("description"),
            ),
            purchase_date=_from_timestamp(charge.get("created")),
            processor=self.id,
            attributes=StripeAttributes(
                customer_id=_ref(charge.get("customer")),
                currency=charge.get("currency"),
                custom_data=metadata,
                payment_intent=payment_intent,
                raw=charge,
            ),
        )

    async def _fetch_subscriptions(self, email: str) -> list[NormalizedSubscription]:
        subscriptions = []
        for customer in await self._list_all(stripe.Customer.list, email=email):
            for sub in await self._list_all(stripe.Subscription.list, customer=customer["id"]):
                metadata = sub.get("metadata") or {}
                subscriptions.append(
                    NormalizedSubscription(
                        id=str(sub["id"]),
                        status=str(sub.get("status") or ""),
                        provider=self.id,
                        user_email=customer.get("email"),
                        user_id_hint=first_text(metadata.get("user_id")),
                        product_id=_ref(dig(sub, "items", "data", 0, "price", "product")),
                    )
                )
        return subscriptions

    async def _fetch_products(self) -> list[NormalizedProduct]:
        products = []
        for raw in await self._list_all(stripe.Product.list, active=True, expand=["data.default_price"]):
            price = raw.get("default_price") if isinstance(raw.get("default_price"), dict) else {}
            unit_amount = price.get("unit_amount")
            products.append(
                NormalizedProduct(
                    id=str(raw["id"]),
                    name=first_text(raw.get("name")) or str(raw["id"]),
                    price_major_units=Decimal(int(unit_amount)) / 100 if unit_amount is not None else None,
                    is_subscription=bool(price.get("recurring")),
                    provider=self.id,
                    description=raw.get("description"),
                    attributes={"price_id": price.get("id"), "currency": price.get("currency")},
                )
            )
        return products

    async def _resolve_price(self, product_or_price_id: str) -> tuple[Optional[str], bool]:
        if product_or_price_id.startswith("price_"):
            price = _plain(await self._call(stripe.Price.retrieve, id=product_or_price_id))
        else:
            product = _plain(
                await self._call(stripe.Product.retrieve, id=product_or_price_id, expand=["default_price"])
            )
            price = product.get("default_price") if isinstance(product.get("default_price"), dict) else {}
        return price.get("id"), bool(price.get("recurring"))

    async def _create_checkout(self, options: CheckoutOptions) -> Optional[str]:
        price_id, recurring = await self._resolve_price(options.variant_id or options.product_id)
        if not price_id:
            self._log("checkout_price_missing", product_id=options.product_id)
            return None
        metadata = {k: str(v) for k, v in options.metadata.items() if v is not None}
        if options.user_id:
            metadata.setdefault("user_id", options.user_id)
        params: dict[str, Any] = {
            "mode": "subscription" if recurring else "payment",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": options.success_url or self._success_url,
            "cancel_url": options.cancel_url or self._cancel_url,
            "metadata": metadata,
        }
        if options.email:
            params["customer_email"] = options.email
        if options.user_id:
            params["client_reference_id"] = options.user_id
        session = _plain(await self._call(stripe.checkout.Session.create, **params))
        return session.get("url") if session else None

    def _order_from_event(self, event: dict[str, Any]) -> Optional[NormalizedOrder]:
        event_type = event.get("type")
        obj = _plain(dig(event, "data", "object"))
        if not isinstance(obj, dict):
            return None
        if event_type in _SESSION_EVENTS:
            return self._normalize_order(obj)
        if event_type == "charge.refunded" and obj.get("refunded"):
            # partial refunds leave the payment completed
            return self._normalize_refunded_charge(obj)
        return None
