"""
Process-local sliding window counters.

Only correct for a single-instance deployment; multi-instance setups must
configure REDIS__URL so every instance shares one counter store.
"""
from __future__ import annotations

import asyncio
import time
from collections import defaultdict, deque
from typing import Callable

from application.ports.rate_limit import RateLimitDecision


class InMemoryRateLimitStore:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._hits: dict[str, deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    async def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        async with self._lock:
            now = self._clock()
            hits = self._hits[key]
            while hits and hits[0] <= now - window_seconds:
                hits.popleft()
            if len(hits) >= limit:
                retry_after = hits[0] + window_seconds - now
                return RateLimitDecision(allowed=False, count=len(hits), retry_after=max(retry_after, 0.0))
            hits.append(now)
            return RateLimitDecision(allowed=True, count=len(hits))

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._hits.pop(key, None)
