"""
Lemon Squeezy adapter over its JSON:API (https://api.lemonsqueezy.com/v1).

Orders carry their purchase in ``attributes.first_order_item``; amounts are
integer cents. ``identifier`` (a UUID) is the stable order id used for
idempotency, the numeric resource id is kept as the native id.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import httpx

from application.dtos.payments import (
    CheckoutOptions,
    LemonSqueezyAttributes,
    NormalizedOrder,
    NormalizedProduct,
    NormalizedSubscription,
)
from infrastructure.external.payments.base import BasePaymentProvider
from infrastructure.external.payments.product_names import dig, extract_product_name, first_text

_WEBHOOK_ORDER_EVENTS = {"order_created", "order_refunded"}


class LemonSqueezyProvider(BasePaymentProvider):
    id = "lemonsqueezy"
    name = "Lemon Squeezy"

    def __init__(
        self,
        *,
        store_id: Optional[str] = None,
        checkout_base: str = "https://checkout.lemonsqueezy.com/buy",
        page_size: int = 100,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("api_base", "https://api.lemonsqueezy.com/v1")
        super().__init__(**kwargs)
        self._store_id = store_id
        self._checkout_base = checkout_base.rstrip("/")
        self._page_size = page_size

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/vnd.api+json",
            "Content-Type": "application/vnd.api+json",
        }

    def _store_filter(self) -> dict[str, Any]:
        return {"filter[store_id]": self._store_id} if self._store_id else {}

    async def _paginate(self, path: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            body = await self._request(
                "GET", path, params={**params, "page[number]": page, "page[size]": self._page_size}
            )
            items.extend(body.get("data") or [])
            last_page = int(dig(body, "meta", "page", "lastPage") or 1)
            if page >= last_page:
                return items
            page += 1

    async def _fetch_orders(self, email: Optional[str] = None) -> list[dict[str, Any]]:
        params = self._store_filter()
        if email:
            params["filter[user_email]"] = email
        return await self._paginate("/orders", params)

    def _normalize_order(self, raw: dict[str, Any], custom_data: Optional[dict[str, Any]] = None) -> NormalizedOrder:
        attrs = raw.get("attributes") or {}
        item = attrs.get("first_order_item") or {}
        custom = custom_data or attrs.get("custom_data") or dig(raw, "meta", "custom_data") or {}
        product_name = first_text(attrs.get("product_name"), item.get("product_name"))
        variant_name = first_text(attrs.get("variant_name"), item.get("variant_name"))
        subtotal = int(attrs.get("subtotal") or 0)

        return NormalizedOrder(
            id=str(raw["id"]),
            order_id=str(attrs.get("identifier") or raw["id"]),
            user_email=attrs.get("user_email"),
            user_name=attrs.get("user_name"),
            amount_minor_units=max(subtotal, 0),
            status=self._map_status(attrs.get("status")),
            product_name=extract_product_name(
                product_name=attrs.get("product_name"),
                variant_name=attrs.get("variant_name"),
                item_product_name=item.get("product_name"),
                item_variant_name=item.get("variant_name"),
                description=attrs.get("description"),
            ),
            purchase_date=attrs.get("created_at") or datetime.now(timezone.utc),
            processor=self.id,
            discount_code=attrs.get("discount_code"),
            attributes=LemonSqueezyAttributes(
                product_id=item.get("product_id"),
                variant_id=item.get("variant_id"),
                product_name=product_name,
                variant_name=variant_name,
                customer_id=attrs.get("customer_id"),
                currency=attrs.get("currency"),
                custom_data=custom if isinstance(custom, dict) else {},
                order_identifier=attrs.get("identifier"),
                order_number=attrs.get("order_number"),
                test_mode=bool(attrs.get("test_mode")),
                raw=raw,
            ),
        )

    async def _fetch_subscriptions(self, email: str) -> list[NormalizedSubscription]:
        params = {**self._store_filter(), "filter[user_email]": email}
        subscriptions = []
        for raw in await self._paginate("/subscriptions", params):
            attrs = raw.get("attributes") or {}
            subscriptions.append(
                NormalizedSubscription(
                    id=str(raw["id"]),
                    status=str(attrs.get("status") or ""),
                    provider=self.id,
                    user_email=attrs.get("user_email"),
                    product_id=str(attrs["product_id"]) if attrs.get("product_id") else None,
                )
            )
        return subscriptions

    async def _fetch_products(self) -> list[NormalizedProduct]:
        products = []
        for raw in await self._paginate("/products", self._store_filter()):
            attrs = raw.get("attributes") or {}
            price = attrs.get("price")
            products.append(
                NormalizedProduct(
                    id=str(raw["id"]),
                    name=first_text(attrs.get("name")) or str(raw["id"]),
                    price_major_units=Decimal(int(price)) / 100 if price is not None else None,
                    is_subscription=bool(attrs.get("is_subscription")),
                    provider=self.id,
                    description=attrs.get("description"),
                    attributes={
                        "price_formatted": attrs.get("price_formatted"),
                        "status": attrs.get("status"),
                        "buy_now_url": attrs.get("buy_now_url"),
                    },
                )
            )
        return products

    async def _create_checkout(self, options: CheckoutOptions) -> Optional[str]:
        params: dict[str, str] = {}
        if options.email:
            params["checkout[email]"] = options.email
        if options.user_name:
            params["checkout[name]"] = options.user_name
        custom = dict(options.metadata)
        if options.user_id:
            custom.setdefault("user_id", options.user_id)
        for key, value in custom.items():
            if value is not None:
                params[f"checkout[custom][{key}]"] = str(value)
        target = options.variant_id or options.product_id
        return str(httpx.URL(f"{self._checkout_base}/{target}", params=params))

    def _order_from_event(self, event: dict[str, Any]) -> Optional[NormalizedOrder]:
        event_name = dig(event, "meta", "event_name")
        data = event.get("data") or {}
        if event_name not in _WEBHOOK_ORDER_EVENTS or data.get("type") != "orders":
            return None
        return self._normalize_order(data, custom_data=dig(event, "meta", "custom_data"))
