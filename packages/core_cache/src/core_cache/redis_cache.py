from __future__ import annotations
from typing import Any, Optional


class RedisCache:
    """
    Text values over a shared ``redis.asyncio`` client. Connection errors
    propagate as ``redis.exceptions.RedisError``; callers decide whether a
    cache outage is fatal.
    """

    encoding = "utf-8"

    def __init__(self, client: Any):
        if client is None:
            raise ValueError("RedisCache needs a redis client")
        self._client = client

    async def get(self, key: str) -> Optional[str]:
        raw = await self._client.get(key)
        if raw is None:
            return None
        if isinstance(raw, (bytes, bytearray)):
            return bytes(raw).decode(self.encoding)
        return str(raw)

    async def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        await self._client.setex(key, int(ttl_seconds), value.encode(self.encoding))


__all__ = ["RedisCache"]
