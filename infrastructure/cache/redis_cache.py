"""
Redis-backed shared counters for the rate limiter.

The sliding window lives in a sorted set per key (score = request time);
pruning, counting and recording run in one Lua script so concurrent
admins on different instances see one atomic check-and-record.
"""
from __future__ import annotations

import asyncio
import time
import uuid
from typing import Optional

import redis.asyncio as aioredis

from application.ports.rate_limit import RateLimitDecision
from core.config import settings
from core.logging_config import get_logger

logger = get_logger(__name__)

SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]
redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
if count >= limit then
  local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
  local retry = window
  if oldest[2] then
    retry = tonumber(oldest[2]) + window - now
  end
  return {0, count, tostring(retry)}
end
redis.call('ZADD', key, now, member)
redis.call('PEXPIRE', key, math.ceil(window * 1000))
return {1, count + 1, '0'}
"""


class RedisRateLimitStore:
    def __init__(self, client: aioredis.Redis, namespace: str = "") -> None:
        self._client = client
        self._namespace = namespace.rstrip(":")
        self._script = client.register_script(SLIDING_WINDOW_SCRIPT)

    def _format_key(self, key: str) -> str:
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    async def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        now = time.time()
        allowed, count, retry_after = await self._script(
            keys=[self._format_key(key)],
            args=[now, window_seconds, limit, f"{now}:{uuid.uuid4().hex}"],
        )
        return RateLimitDecision(allowed=bool(int(allowed)), count=int(count), retry_after=max(float(retry_after), 0.0))

    async def reset(self, key: str) -> None:
        await self._client.delete(self._format_key(key))


_redis_client: Optional[aioredis.Redis] = None
_lock = asyncio.Lock()


async def init_redis_client() -> aioredis.Redis:
    """初始化全局 Redis 客户端"""
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    async with _lock:
        if _redis_client is not None:
            return _redis_client

        if not settings.redis.url:
            raise RuntimeError("REDIS__URL is not configured")

        _redis_client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
        )
        logger.info("redis_client_initialized", namespace=settings.redis.namespace)
        return _redis_client


async def shutdown_redis_client() -> None:
    """关闭Redis连接"""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
