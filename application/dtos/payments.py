"""
Payment DTOs (Pydantic v2) used at application boundaries.

Every adapter translates its provider payloads into these shapes; nothing
downstream of normalization looks at a provider's raw payload.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from domain.payment.entity import UNKNOWN_PRODUCT


class OrderStatus(str, Enum):
    PAID = "paid"
    REFUNDED = "refunded"
    PENDING = "pending"


class OrderAttributes(BaseModel):
    """Fields every provider can fill, plus the raw payload for audit."""

    model_config = ConfigDict(extra="ignore")

    product_id: Optional[str] = None
    variant_id: Optional[str] = None
    product_name: Optional[str] = None
    variant_name: Optional[str] = None
    customer_id: Optional[str] = None
    currency: Optional[str] = None
    is_subscription: bool = False
    custom_data: dict[str, Any] = Field(default_factory=dict)
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @field_validator("product_id", "variant_id", "customer_id", mode="before")
    @classmethod
    def _stringify_ids(cls, v: Any) -> Optional[str]:
        if v is None or v == "":
            return None
        return str(v)

    @property
    def user_id_hint(self) -> Optional[str]:
        value = self.custom_data.get("user_id") or self.custom_data.get("userId")
        return str(value) if value else None

    def to_metadata(self) -> dict[str, Any]:
        """Flatten into the provider-agnostic bag stored on a Payment.

        Product/variant names are duplicated in camelCase and snake_case so
        reporting queries can use either spelling.
        """
        data: dict[str, Any] = {
            "productName": self.product_name,
            "product_name": self.product_name,
            "variantName": self.variant_name,
            "variant_name": self.variant_name,
            "productId": self.product_id,
            "product_id": self.product_id,
            "variantId": self.variant_id,
            "variant_id": self.variant_id,
            "customer_id": self.customer_id,
            "currency": self.currency,
            "is_subscription": self.is_subscription,
            "custom_data": self.custom_data,
        }
        data.update(self._extra_metadata())
        data["order_data"] = self.raw
        return data

    def _extra_metadata(self) -> dict[str, Any]:
        return {}


class LemonSqueezyAttributes(OrderAttributes):
    provider: Literal["lemonsqueezy"] = "lemonsqueezy"
    order_identifier: Optional[str] = None
    order_number: Optional[int] = None
    test_mode: bool = False

    def _extra_metadata(self) -> dict[str, Any]:
        return {
            "order_identifier": self.order_identifier,
            "order_number": self.order_number,
            "test_mode": self.test_mode,
        }


class PolarAttributes(OrderAttributes):
    provider: Literal["polar"] = "polar"
    billing_reason: Optional[str] = None
    subscription_id: Optional[str] = None

    def _extra_metadata(self) -> dict[str, Any]:
        return {"billing_reason": self.billing_reason, "subscription_id": self.subscription_id}


class StripeAttributes(OrderAttributes):
    provider: Literal["stripe"] = "stripe"
    session_id: Optional[str] = None
    payment_intent: Optional[str] = None
    mode: Optional[str] = None

    def _extra_metadata(self) -> dict[str, Any]:
        return {"session_id": self.session_id, "payment_intent": self.payment_intent, "mode": self.mode}


ProviderAttributes = Annotated[
    Union[LemonSqueezyAttributes, PolarAttributes, StripeAttributes],
    Field(discriminator="provider"),
]


class NormalizedOrder(BaseModel):
    id: str
    order_id: str
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    amount_minor_units: int = Field(default=0, ge=0)
    status: OrderStatus = OrderStatus.PENDING
    product_name: str = Field(default=UNKNOWN_PRODUCT, min_length=1)
    purchase_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    processor: str
    discount_code: Optional[str] = None
    attributes: ProviderAttributes

    @field_validator("user_email", mode="before")
    @classmethod
    def _blank_email_is_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator("purchase_date")
    @classmethod
    def _ensure_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @property
    def amount_major_units(self) -> Decimal:
        return Decimal(self.amount_minor_units) / 100

    @property
    def is_importable(self) -> bool:
        """Paid and carrying a usable email, so an owner can be resolved."""
        return self.status == OrderStatus.PAID and bool((self.user_email or "").strip())

    def belongs_to(self, user_id: str, email: Optional[str]) -> bool:
        if self.attributes.user_id_hint and self.attributes.user_id_hint == user_id:
            return True
        if email and self.user_email:
            return self.user_email.lower() == email.strip().lower()
        return False


class NormalizedProduct(BaseModel):
    id: str
    name: str
    price_major_units: Optional[Decimal] = None
    is_subscription: bool = False
    provider: str
    description: Optional[str] = None
    attributes: dict[str, Any] = Field(default_factory=dict)


class NormalizedSubscription(BaseModel):
    id: str
    status: str
    provider: str
    user_email: Optional[str] = None
    user_id_hint: Optional[str] = None
    product_id: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class CheckoutOptions(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    email: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class ImportStats(BaseModel):
    """Per-run counters; never persisted."""

    total: int = 0
    imported: int = 0
    skipped: int = 0
    errors: int = 0
    users_created: int = 0
    cancelled: bool = False
    error: Optional[str] = None


class ImportPaymentsRequest(BaseModel):
    provider: str = "all"


class DeleteAllResult(BaseModel):
    deleted_count: int


class RefreshAllResult(BaseModel):
    deleted_count: int
    import_results: dict[str, ImportStats]


class CheckoutRequest(BaseModel):
    product_id: str
    provider: Optional[str] = None
    variant_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
