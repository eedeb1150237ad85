"""
Rate limiter guarding expensive admin operations (import/delete/refresh).

The counter store is injected so multi-instance deployments share one
window (Redis) while tests use the in-process store.
"""
from __future__ import annotations

import math
from dataclasses import dataclass

from application.ports.rate_limit import RateLimitStore
from core.exceptions import RateLimitException
from core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimit:
    requests: int
    duration_seconds: int


class RateLimiter:
    def __init__(self, store: RateLimitStore, *, namespace: str = "ratelimit") -> None:
        self._store = store
        self._namespace = namespace

    def _key(self, subject_id: str, action_key: str) -> str:
        return f"{self._namespace}:{action_key}:{subject_id}"

    async def check_limit(self, subject_id: str, action_key: str, limit: RateLimit) -> int:
        """记录一次请求；超出窗口内限额时抛出 RateLimitException，返回窗口内已用次数"""
        decision = await self._store.hit(self._key(subject_id, action_key), limit.requests, limit.duration_seconds)
        if not decision.allowed:
            retry_after = max(int(math.ceil(decision.retry_after)), 1)
            logger.warning(
                "rate_limit_exceeded",
                subject_id=subject_id,
                action=action_key,
                count=decision.count,
                limit=limit.requests,
                retry_after=retry_after,
            )
            raise RateLimitException(retry_after=retry_after, action=action_key)
        return decision.count

    async def reset(self, subject_id: str, action_key: str) -> None:
        await self._store.reset(self._key(subject_id, action_key))
