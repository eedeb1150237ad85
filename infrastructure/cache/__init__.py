"""限流计数存储对外暴露的接口"""
from .memory_store import InMemoryRateLimitStore
from .redis_cache import (
    RedisRateLimitStore,
    init_redis_client,
    shutdown_redis_client,
)

__all__ = [
    "InMemoryRateLimitStore",
    "RedisRateLimitStore",
    "init_redis_client",
    "shutdown_redis_client",
]
