"""
Polar adapter over its REST API (https://api.polar.sh/v1, sandbox-api for tests).

Polar list endpoints return ``{"items": [...], "pagination": {"max_page": n}}``.
Order payloads changed shape over time, so product names and customer fields
are read from several places.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from application.dtos.payments import (
    CheckoutOptions,
    NormalizedOrder,
    NormalizedProduct,
    NormalizedSubscription,
    PolarAttributes,
)
from infrastructure.external.payments.base import BasePaymentProvider
from infrastructure.external.payments.product_names import dig, extract_product_name, first_text

_SUBSCRIPTION_REASONS = {"subscription_create", "subscription_cycle", "subscription_update"}
_WEBHOOK_ORDER_EVENTS = {"order.created", "order.paid", "order.updated", "order.refunded"}


def _first_int(*values: Any) -> int:
    for value in values:
        if value is not None and value != "":
            return int(value)
    return 0


class PolarProvider(BasePaymentProvider):
    id = "polar"
    name = "Polar"

    def __init__(self, *, page_size: int = 100, success_url: Optional[str] = None, **kwargs: Any) -> None:
        kwargs.setdefault("api_base", "https://api.polar.sh/v1")
        super().__init__(**kwargs)
        self._page_size = page_size
        self._success_url = success_url

    async def _paginate(self, path: str, params: Optional[dict[str, Any]] = None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            body = await self._request("GET", path, params={**(params or {}), "page": page, "limit": self._page_size})
            items.extend(body.get("items") or [])
            max_page = int(dig(body, "pagination", "max_page") or 1)
            if page >= max_page:
                return items
            page += 1

    async def _fetch_orders(self, email: Optional[str] = None) -> list[dict[str, Any]]:
        # No server-side email filter; the base class filters after normalization
        return await self._paginate("/orders/")

    async def _fetch_order(self, order_id: str) -> Optional[dict[str, Any]]:
        return await self._request("GET", f"/orders/{order_id}", allow_404=True)

    def _order_status(self, raw: dict[str, Any]):
        if raw.get("status"):
            return self._map_status(raw["status"])
        return self._map_status("paid" if raw.get("paid") else "pending")

    def _normalize_order(self, raw: dict[str, Any]) -> NormalizedOrder:
        product = raw.get("product") or {}
        billing_reason = raw.get("billing_reason")
        product_name = first_text(product.get("name"), raw.get("product_name"))
        variant_name = first_text(dig(raw, "variant", "name"))
        item_product_name = first_text(dig(raw, "items", 0, "product", "name"), dig(raw, "items", 0, "label"))
        item_variant_name = first_text(dig(raw, "items", 0, "variant", "name"))

        return NormalizedOrder(
            id=str(raw["id"]),
            order_id=str(raw["id"]),
            user_email=first_text(
                dig(raw, "customer", "email"), dig(raw, "user", "email"), raw.get("email"), raw.get("customer_email")
            ),
            user_name=first_text(dig(raw, "customer", "name"), dig(raw, "user", "public_name"), raw.get("customer_name")),
            amount_minor_units=max(_first_int(raw.get("net_amount"), raw.get("total_amount"), raw.get("amount")), 0),
            status=self._order_status(raw),
            product_name=extract_product_name(
                product_name=product_name,
                variant_name=variant_name,
                item_product_name=item_product_name,
                item_variant_name=item_variant_name,
                description=raw.get("description"),
            ),
            purchase_date=raw.get("created_at") or datetime.now(timezone.utc),
            processor=self.id,
            discount_code=dig(raw, "discount", "code"),
            attributes=PolarAttributes(
                product_id=raw.get("product_id") or product.get("id"),
                variant_id=raw.get("product_price_id") or dig(raw, "variant", "id"),
                product_name=product_name or item_product_name,
                variant_name=variant_name or item_variant_name,
                customer_id=raw.get("customer_id") or dig(raw, "customer", "id"),
                currency=raw.get("currency"),
                is_subscription=bool(
                    raw.get("subscription_id")
                    or billing_reason in _SUBSCRIPTION_REASONS
                    or product.get("is_recurring")
                ),
                custom_data=raw.get("metadata") or {},
                billing_reason=billing_reason,
                subscription_id=raw.get("subscription_id"),
                raw=raw,
            ),
        )

    async def _fetch_subscriptions(self, email: str) -> list[NormalizedSubscription]:
        subscriptions = []
        for raw in await self._paginate("/subscriptions/", {"active": "true"}):
            metadata = raw.get("metadata") or {}
            subscriptions.append(
                NormalizedSubscription(
                    id=str(raw["id"]),
                    status=str(raw.get("status") or ""),
                    provider=self.id,
                    user_email=first_text(dig(raw, "customer", "email"), dig(raw, "user", "email")),
                    user_id_hint=first_text(metadata.get("user_id"), metadata.get("userId")),
                    product_id=first_text(raw.get("product_id")),
                )
            )
        return subscriptions

    async def _fetch_products(self) -> list[NormalizedProduct]:
        products = []
        for raw in await self._paginate("/products/", {"is_archived": "false"}):
            price_amount = dig(raw, "prices", 0, "price_amount")
            products.append(
                NormalizedProduct(
                    id=str(raw["id"]),
                    name=first_text(raw.get("name")) or str(raw["id"]),
                    price_major_units=Decimal(int(price_amount)) / 100 if price_amount is not None else None,
                    is_subscription=bool(
                        raw.get("is_recurring") or raw.get("type") == "subscription" or raw.get("recurring_interval")
                    ),
                    provider=self.id,
                    description=raw.get("description"),
                    attributes={
                        "recurring_interval": raw.get("recurring_interval"),
                        "price_id": dig(raw, "prices", 0, "id"),
                    },
                )
            )
        return products

    async def _create_checkout(self, options: CheckoutOptions) -> Optional[str]:
        metadata = {k: str(v) for k, v in options.metadata.items() if v is not None}
        if options.user_id:
            metadata.setdefault("user_id", options.user_id)
        payload: dict[str, Any] = {"products": [options.product_id], "metadata": metadata}
        if options.email:
            payload["customer_email"] = options.email
        if options.user_name:
            payload["customer_name"] = options.user_name
        success_url = options.success_url or self._success_url
        if success_url:
            payload["success_url"] = success_url
        body = await self._request("POST", "/checkouts/", json=payload)
        return body.get("url") if body else None

    def _order_from_event(self, event: dict[str, Any]) -> Optional[NormalizedOrder]:
        if event.get("type") not in _WEBHOOK_ORDER_EVENTS:
            return None
        data = event.get("data")
        if not isinstance(data, dict):
            return None
        order = self._normalize_order(data)
        if event.get("type") == "order.refunded":
            return order.model_copy(update={"status": self._map_status("refunded")})
        return order
