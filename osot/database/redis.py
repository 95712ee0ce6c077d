"""
Lightweight in-memory RedisCache replacement for local development.

This implements the key-value subset used by the cache service, the
registration repository and the auth blacklist so that the FastAPI app can
run without a real Redis instance. It is NOT intended for production use.
"""

from __future__ import annotations

import fnmatch
import time
from typing import Any, Dict, List, Optional, Tuple


class RedisCache:
    def __init__(self) -> None:
        # key -> (value, expires_at or None)
        self._store: Dict[str, Tuple[Any, Optional[float]]] = {}

    def _alive(self, key: str) -> bool:
        entry = self._store.get(key)
        if entry is None:
            return False
        expires_at = entry[1]
        if expires_at is not None and expires_at <= time.monotonic():
            self._store.pop(key, None)
            return False
        return True

    # --- JSON values ------------------------------------------------------

    def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        # Copy so callers cannot mutate what is "stored".
        self._store[key] = (_copy(value), expires_at)

    def get_json(self, key: str) -> Optional[Any]:
        if not self._alive(key):
            return None
        return _copy(self._store[key][0])

    # --- Counters ---------------------------------------------------------

    def incr(self, key: str, ttl: Optional[int] = None) -> int:
        current = self.get_json(key) if self._alive(key) else None
        value = int(current or 0) + 1
        if current is None:
            self.set_json(key, value, ttl)
        else:
            self._store[key] = (value, self._store[key][1])
        return value

    # --- Keys -------------------------------------------------------------

    def exists(self, key: str) -> bool:
        return self._alive(key)

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def delete_pattern(self, pattern: str) -> int:
        keys: List[str] = [k for k in list(self._store) if fnmatch.fnmatchcase(k, pattern)]
        for k in keys:
            self._store.pop(k, None)
        return len(keys)

    def ttl(self, key: str) -> int:
        if not self._alive(key):
            return -2
        expires_at = self._store[key][1]
        if expires_at is None:
            return -1
        return max(0, int(expires_at - time.monotonic()))

    # --- Misc -------------------------------------------------------------

    def ping(self) -> bool:
        """
        Health checks call this; always return True so the API reports
        Redis as "connected" in local/dev mode.
        """
        return True


def _copy(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _copy(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_copy(v) for v in value]
    return value
