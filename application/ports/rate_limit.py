"""
Shared counter store behind the rate limiter.

Implementations must make check-and-record atomic so concurrent admins
cannot both squeeze past the limit.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    count: int
    retry_after: float = 0.0


@runtime_checkable
class RateLimitStore(Protocol):
    async def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        """Record one request under ``key`` unless ``limit`` is already reached
        within the trailing ``window_seconds``. Rejected requests are not recorded."""
        ...

    async def reset(self, key: str) -> None: ...
