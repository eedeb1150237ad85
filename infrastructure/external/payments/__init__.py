"""
Factory for payment provider adapters.
"""
from __future__ import annotations

from typing import Optional

import httpx

from application.ports.payment_provider import PaymentProvider, UserDirectory
from core.settings import PaymentSettings, payment_settings

PROVIDER_ALIASES = {
    "lemon": "lemonsqueezy",
    "ls": "lemonsqueezy",
    "lemon_squeezy": "lemonsqueezy",
    "polar_sh": "polar",
}


def canonical_provider_id(provider: str) -> str:
    name = provider.strip().lower()
    return PROVIDER_ALIASES.get(name, name)


def build_provider(
    provider: str,
    config: Optional[PaymentSettings] = None,
    *,
    user_directory: Optional[UserDirectory] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PaymentProvider:
    cfg = config or payment_settings
    common = {
        "timeouts": cfg.timeouts.model_dump(),
        "retry": {"max": cfg.retry.max, "base": cfg.retry.base_backoff},
        "user_directory": user_directory,
        "transport": transport,
    }
    name = canonical_provider_id(provider)
    if name == "lemonsqueezy":
        from .lemonsqueezy_client import LemonSqueezyProvider
        section = cfg.lemonsqueezy
        return LemonSqueezyProvider(
            api_key=section.api_key,
            webhook_secret=section.webhook_secret,
            enabled=section.enabled,
            api_base=section.api_base,
            store_id=section.store_id,
            checkout_base=section.checkout_base,
            page_size=section.page_size,
            **common,
        )
    if name == "polar":
        from .polar_client import PolarProvider
        section = cfg.polar
        return PolarProvider(
            api_key=section.access_token,
            webhook_secret=section.webhook_secret,
            enabled=section.enabled,
            api_base=section.api_base,
            page_size=section.page_size,
            success_url=section.success_url,
            **common,
        )
    if name == "stripe":
        from .stripe_client import StripeProvider
        section = cfg.stripe
        return StripeProvider(
            api_key=section.secret_key,
            webhook_secret=section.webhook_secret,
            enabled=section.enabled,
            success_url=section.success_url,
            cancel_url=section.cancel_url,
            **common,
        )
    raise ValueError(f"Unsupported payment provider: {name}")
