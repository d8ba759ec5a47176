"""
Time-bounded memo of executable-resource results.

Entries are keyed by (resource path, ordered params) and live for
``TTL_EXEC_CACHE_SEC`` seconds from the write. Expired entries are dropped
lazily on read. Concurrent misses on the same key may both execute; the
executor is deterministic so the last write wins harmlessly.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

from redis.exceptions import RedisError

from core_cache import keys as cache_keys
from core_cache.redis_cache import RedisCache
from core_config.constants import TTL_EXEC_CACHE_SEC
from core_logging import get_logger, log_cache_hit, log_cache_miss, log_cache_set, record_error
from core_logging.error_codes import ErrorCode

from .collaborators import ProgramExecutor
from . import metrics

logger = get_logger("dig_gateway.exec_cache")

Clock = Callable[[], float]
CacheKey = Tuple[str, Tuple[str, ...]]


@dataclass(frozen=True)
class CacheEntry:
    result: str
    created_at: float


class ExecutionCache:
    def __init__(
        self,
        executor: ProgramExecutor,
        *,
        ttl_sec: float = TTL_EXEC_CACHE_SEC,
        clock: Clock = time.monotonic,
        redis: Optional[RedisCache] = None,
    ):
        self._executor = executor
        self._ttl = float(ttl_sec)
        self._clock = clock
        self._redis = redis
        self._entries: Dict[CacheKey, CacheEntry] = {}

    @property
    def backend(self) -> str:
        return "redis" if self._redis is not None else "memory"

    def __len__(self) -> int:
        return len(self._entries)

    async def get_or_compute(self, resource_path: str, params: Sequence[str], source: str) -> str:
        """
        Return the cached result for (resource_path, params) or execute *source*.
        *source* is only read on a miss.
        """
        key: CacheKey = (resource_path, tuple(params))
        if self._redis is not None:
            return await self._redis_get_or_compute(self._redis, key, source)

        entry = self._entries.get(key)
        if entry is not None:
            age = self._clock() - entry.created_at
            if age < self._ttl:
                log_cache_hit(logger, backend="memory", namespace="exec", key=key, age_ms=int(age * 1000))
                metrics.counter("dig_gateway_exec_cache_total", 1, outcome="hit")
                return entry.result
            del self._entries[key]
            metrics.gauge("dig_gateway_exec_cache_entries", len(self._entries))
        log_cache_miss(logger, backend="memory", namespace="exec", key=key, expired=entry is not None)
        metrics.counter("dig_gateway_exec_cache_total", 1, outcome="miss")

        result = await self._executor.execute(source, list(params))
        self._entries[key] = CacheEntry(result=result, created_at=self._clock())
        metrics.gauge("dig_gateway_exec_cache_entries", len(self._entries))
        log_cache_set(logger, backend="memory", namespace="exec", key=key, ttl_ms=int(self._ttl * 1000))
        return result

    async def _redis_get_or_compute(self, redis: RedisCache, key: CacheKey, source: str) -> str:
        rkey = cache_keys.exec_result(key[0], key[1])
        try:
            cached = await redis.get(rkey)
        except RedisError as exc:
            record_error(ErrorCode.cache_unavailable.value, where="exec_cache.get",
                         message=str(exc), logger=logger, level="WARNING")
            cached = None
        if cached is not None:
            log_cache_hit(logger, backend="redis", namespace="exec", key=rkey)
            metrics.counter("dig_gateway_exec_cache_total", 1, outcome="hit")
            return cached
        log_cache_miss(logger, backend="redis", namespace="exec", key=rkey)
        metrics.counter("dig_gateway_exec_cache_total", 1, outcome="miss")

        result = await self._executor.execute(source, list(key[1]))
        try:
            await redis.setex(rkey, int(self._ttl), result)
        except RedisError as exc:
            record_error(ErrorCode.cache_unavailable.value, where="exec_cache.set",
                         message=str(exc), logger=logger, level="WARNING")
        else:
            log_cache_set(logger, backend="redis", namespace="exec", key=rkey, ttl_ms=int(self._ttl * 1000))
        return result


__all__ = ["ExecutionCache", "CacheEntry"]
