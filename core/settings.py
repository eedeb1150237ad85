"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Each provider section carries its own feature toggle (``enabled``). Every
supported provider is registered; one that is switched off or lacks credentials
is soft-disabled.
"""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 5.0
    write: float = 5.0
    total: float = 10.0


class PaymentRetry(BaseModel):
    # HTTP-level retries inside an adapter
    max: int = 2
    base_backoff: float = 0.2
    # Orchestrator-level retries of a whole provider fetch
    import_attempts: int = 3
    import_backoff: float = 1.0


class RateLimitSettings(BaseModel):
    requests: int = 5
    duration_seconds: int = 1800


class LemonSqueezySettings(BaseModel):
    enabled: bool = False
    api_key: Optional[str] = None
    store_id: Optional[str] = None
    webhook_secret: Optional[str] = None
    api_base: str = "https://api.lemonsqueezy.com/v1"
    checkout_base: str = "https://checkout.lemonsqueezy.com/buy"
    page_size: int = 100


class PolarSettings(BaseModel):
    enabled: bool = False
    access_token: Optional[str] = None
    webhook_secret: Optional[str] = None
    server: Literal["production", "sandbox"] = "production"
    page_size: int = 100
    success_url: Optional[str] = None

    @property
    def api_base(self) -> str:
        if self.server == "sandbox":
            return "https://sandbox-api.polar.sh/v1"
        return "https://api.polar.sh/v1"


class StripeSettings(BaseModel):
    enabled: bool = False
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    success_url: str = "http://localhost:3000/billing/success"
    cancel_url: str = "http://localhost:3000/billing/cancel"


class PaymentSettings(BaseSettings):
    default_provider: Optional[str] = Field(default=None, validation_alias="PAYMENT__DEFAULT_PROVIDER")
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    import_rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    import_parallel: bool = False

    lemonsqueezy: LemonSqueezySettings = Field(default_factory=LemonSqueezySettings)
    polar: PolarSettings = Field(default_factory=PolarSettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
