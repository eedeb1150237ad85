"""
Provider registry: an append-only table of adapters keyed by provider id.

Populated once by ``initialize_providers`` at startup and only read
afterwards. Instances are passed around explicitly so tests can build
isolated registries with fake adapters.
"""
from __future__ import annotations

import asyncio
from typing import Callable, Optional

import httpx

from application.ports.payment_provider import PaymentProvider, UserDirectory
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from infrastructure.external.payments import build_provider, canonical_provider_id

logger = get_logger(__name__)

SUPPORTED_PROVIDERS = ("lemonsqueezy", "polar", "stripe")


class ProviderRegistry:
    def __init__(self) -> None:
        self._providers: dict[str, PaymentProvider] = {}
        self._initialized = False
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    def register(self, provider: PaymentProvider) -> None:
        if provider.id in self._providers:
            logger.warning("provider_already_registered", provider=provider.id)
            return
        self._providers[provider.id] = provider

    def get(self, provider_id: str) -> Optional[PaymentProvider]:
        return self._providers.get(canonical_provider_id(provider_id))

    def has(self, provider_id: str) -> bool:
        return canonical_provider_id(provider_id) in self._providers

    def get_all(self) -> list[PaymentProvider]:
        return list(self._providers.values())

    def get_enabled(self) -> list[PaymentProvider]:
        return [p for p in self._providers.values() if p.is_enabled]

    def is_enabled(self, provider_id: str) -> bool:
        provider = self.get(provider_id)
        return bool(provider and provider.is_enabled)

    @property
    def count(self) -> int:
        return len(self._providers)

    @property
    def enabled_count(self) -> int:
        return len(self.get_enabled())

    async def aclose(self) -> None:
        for provider in self._providers.values():
            await provider.aclose()


ProviderBuilder = Callable[..., PaymentProvider]


async def _setup(provider: PaymentProvider) -> None:
    try:
        await provider.initialize()
    except Exception as exc:
        # one adapter failing its setup must not keep the others from starting
        logger.error("provider_initialize_failed", provider=provider.id, error=str(exc), exc_info=True)


async def initialize_providers(
    registry: ProviderRegistry,
    config: Optional[PaymentSettings] = None,
    *,
    user_directory: Optional[UserDirectory] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    builder: ProviderBuilder = build_provider,
) -> ProviderRegistry:
    """Register and configure every supported provider.

    A provider whose feature toggle is off is still registered, soft-disabled,
    so lookups by id keep working and its calls no-op.

    Idempotent: later calls return the already-populated registry.
    """
    cfg = config or payment_settings
    async with registry._lock:
        if registry.initialized:
            return registry

        created: list[PaymentProvider] = []
        for provider_id in SUPPORTED_PROVIDERS:
            provider = builder(provider_id, cfg, user_directory=user_directory, transport=transport)
            registry.register(provider)
            created.append(provider)

        await asyncio.gather(*(_setup(provider) for provider in created))
        registry._initialized = True

    logger.info(
        "payment_providers_initialized",
        total_registered=registry.count,
        enabled=registry.enabled_count,
        ready=[p.id for p in registry.get_all() if p.is_ready],
    )
    return registry
