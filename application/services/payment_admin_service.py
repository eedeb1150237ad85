"""
Admin-only entry point for import, delete-all and refresh-all.

Order of checks: caller must be an admin, then the requested provider must
exist, then the per-action rate limit is consumed, and only then does any
provider or storage work start.
"""
from __future__ import annotations

import asyncio
from typing import Optional, Union

from application.dto import CurrentUserDTO
from application.dtos.payments import DeleteAllResult, ImportStats, RefreshAllResult
from application.services.import_service import PaymentImportService
from application.services.rate_limiter import RateLimit, RateLimiter
from core.exceptions import ForbiddenException
from core.logging_config import get_logger

logger = get_logger(__name__)

IMPORT_ACTION = "import_payments"
DELETE_ACTION = "delete_payments"
REFRESH_ACTION = "refresh_payments"

ALL_PROVIDERS = "all"


class PaymentAdminService:
    def __init__(
        self,
        importer: PaymentImportService,
        rate_limiter: RateLimiter,
        limit: Optional[RateLimit] = None,
    ) -> None:
        self._importer = importer
        self._rate_limiter = rate_limiter
        self._limit = limit or RateLimit(requests=5, duration_seconds=1800)

    async def _authorize(self, actor: CurrentUserDTO, action: str, *, provider: Optional[str] = None) -> None:
        if not actor.is_admin:
            logger.warning("payment_admin_forbidden", user_id=actor.user_id, action=action)
            raise ForbiddenException()
        if provider is not None:
            # a mistyped id must not cost a slot in the window
            self._importer.get_provider(provider)
        await self._rate_limiter.check_limit(actor.user_id, action, self._limit)

    async def import_payments(
        self,
        actor: CurrentUserDTO,
        provider: str = ALL_PROVIDERS,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Union[ImportStats, dict[str, ImportStats]]:
        all_providers = not provider or provider.strip().lower() == ALL_PROVIDERS
        await self._authorize(actor, IMPORT_ACTION, provider=None if all_providers else provider)
        logger.info("payment_import_requested", user_id=actor.user_id, provider=provider)
        if all_providers:
            return await self._importer.import_all(cancel_event=cancel_event)
        return await self._importer.import_provider(provider, cancel_event=cancel_event)

    async def delete_all_payments(self, actor: CurrentUserDTO) -> DeleteAllResult:
        await self._authorize(actor, DELETE_ACTION)
        deleted = await self._importer.delete_all()
        logger.warning("payment_delete_all", user_id=actor.user_id, deleted_count=deleted)
        return DeleteAllResult(deleted_count=deleted)

    async def refresh_all_payments(
        self, actor: CurrentUserDTO, *, cancel_event: Optional[asyncio.Event] = None
    ) -> RefreshAllResult:
        await self._authorize(actor, REFRESH_ACTION)
        result = await self._importer.refresh_all(cancel_event=cancel_event)
        logger.info(
            "payment_refresh_all",
            user_id=actor.user_id,
            deleted_count=result.deleted_count,
            providers=list(result.import_results),
        )
        return result
