"""
Real Redis-backed cache for production when REDIS_URL is set.
Implements the same interface as osot.database.redis (in-memory stub).
"""

from __future__ import annotations

import json
from typing import Any, Optional

import redis


class RedisCache:
    """
    Redis-backed key-value cache. Use when REDIS_URL is set in production.
    """

    def __init__(self, url: str) -> None:
        self._client = redis.from_url(url, decode_responses=True)

    def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        payload = json.dumps(value, default=str)
        if ttl:
            self._client.setex(key, ttl, payload)
        else:
            self._client.set(key, payload)

    def get_json(self, key: str) -> Optional[Any]:
        raw = self._client.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None

    def incr(self, key: str, ttl: Optional[int] = None) -> int:
        value = int(self._client.incr(key))
        if value == 1 and ttl:
            self._client.expire(key, ttl)
        return value

    def exists(self, key: str) -> bool:
        return bool(self._client.exists(key))

    def delete(self, key: str) -> None:
        self._client.delete(key)

    def delete_pattern(self, pattern: str) -> int:
        deleted = 0
        batch = []
        for key in self._client.scan_iter(match=pattern, count=500):
            batch.append(key)
            if len(batch) >= 500:
                deleted += self._client.delete(*batch)
                batch = []
        if batch:
            deleted += self._client.delete(*batch)
        return deleted

    def ttl(self, key: str) -> int:
        return int(self._client.ttl(key))

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False
