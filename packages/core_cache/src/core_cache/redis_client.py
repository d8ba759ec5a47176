from __future__ import annotations
from typing import Optional

from redis import asyncio as aioredis

from core_config import get_settings
from core_logging import get_logger, log_stage

_logger = get_logger("core_cache.redis")
_pool: Optional[aioredis.Redis] = None

def get_redis_pool() -> aioredis.Redis:
    """Return a shared asyncio Redis client/pool."""
    global _pool
    if _pool is None:
        s = get_settings()
        _pool = aioredis.from_url(
            s.redis_url,
            decode_responses=False,
            max_connections=s.redis_max_connections,
        )
        log_stage(_logger, "redis", "pool_init", request_id="startup")
    return _pool
