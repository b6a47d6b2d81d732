"""
Agency Engine v1.0: Cache Layer
Redis-backed key/value cache with per-entry TTL. Values are JSON strings,
so a cached aggregate is a copy and never aliases a live object. Expiry
is left to Redis.

Read-through, write-invalidate. Callers treat CacheError as a miss.
"""

import logging
from typing import Optional

import redis

from config import CACHE_TIMEOUT, REDIS_URL

logger = logging.getLogger("agency.cache")


class CacheError(Exception):
    pass


def agent_key(agent_id: str) -> str:
    return f"agent:{agent_id}"


def session_key(session_id: str) -> str:
    return f"session:{session_id}"


class RedisCache:

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str = REDIS_URL, timeout: float = CACHE_TIMEOUT) -> "RedisCache":
        client = redis.Redis.from_url(
            url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            decode_responses=True,
        )
        logger.info(f"Cache backed by {url}")
        return cls(client)

    def get(self, key: str) -> Optional[str]:
        try:
            value = self.client.get(key)
        except redis.RedisError as e:
            raise CacheError(f"cache get failed for {key}: {e}") from e
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def set(self, key: str, value: str, ttl: float):
        try:
            self.client.setex(key, max(1, int(ttl)), value)
        except redis.RedisError as e:
            raise CacheError(f"cache set failed for {key}: {e}") from e

    def delete(self, key: str):
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            raise CacheError(f"cache delete failed for {key}: {e}") from e

    def ttl(self, key: str) -> int:
        """Seconds left on a key; negative when it has none or is missing."""
        try:
            return self.client.ttl(key)
        except redis.RedisError as e:
            raise CacheError(f"cache ttl failed for {key}: {e}") from e

    def __contains__(self, key: str):
        return self.get(key) is not None
