"""
Read-through cache for Dataverse records and per-user profile data.

Cache failures are logged and swallowed: a broken cache must never fail a
request, it only makes it slower.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from osot.utils.config_loader import CacheConfig

logger = logging.getLogger(__name__)


class CachePrefix:
    ACCOUNT_PROFILE = "account:profile:"
    ACCOUNT_ADDRESS = "account:address:"
    ACCOUNT_CONTACT = "account:contact:"
    ACCOUNT_IDENTITY = "account:identity:"
    EDUCATION_OT = "education:ot:"
    EDUCATION_OTA = "education:ota:"
    MEMBERSHIP_EXPIRATION = "membership:expiration:"
    MEMBERSHIP_SETTINGS = "membership:settings:"
    ENTITY = "entity:"


USER_PATTERNS = ("account:*:{guid}", "education:*:{guid}", "membership:*:{guid}")


class CacheService:
    def __init__(self, store, config: Optional[CacheConfig] = None) -> None:
        self.store = store
        self.config = config or CacheConfig()

    # ------------------------------------------------------------------ #
    # Keys / TTLs
    # ------------------------------------------------------------------ #
    @staticmethod
    def user_key(prefix: str, user_guid: str) -> str:
        return f"{prefix}{user_guid}"

    @staticmethod
    def entity_key(entity_set: str, record_id: str) -> str:
        return f"{CachePrefix.ENTITY}{entity_set}:{record_id}"

    def ttl_for(self, prefix: str) -> int:
        if prefix.startswith("education:"):
            return self.config.education_ttl
        if prefix == CachePrefix.MEMBERSHIP_EXPIRATION:
            return self.config.expiration_ttl
        if prefix == CachePrefix.ENTITY:
            return self.config.entity_ttl
        return self.config.account_ttl

    # ------------------------------------------------------------------ #
    # Basic operations
    # ------------------------------------------------------------------ #
    def get(self, key: str) -> Optional[Any]:
        try:
            return self.store.get_json(key)
        except Exception as e:
            logger.warning("Cache get failed for %s: %s", key, e)
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        try:
            self.store.set_json(key, value, ttl or self.config.account_ttl)
        except Exception as e:
            logger.warning("Cache set failed for %s: %s", key, e)

    def invalidate(self, key: str) -> None:
        try:
            self.store.delete(key)
        except Exception as e:
            logger.warning("Cache invalidate failed for %s: %s", key, e)

    def invalidate_pattern(self, pattern: str) -> int:
        try:
            return int(self.store.delete_pattern(pattern))
        except Exception as e:
            logger.warning("Cache pattern invalidation failed for %s: %s", pattern, e)
            return 0

    # ------------------------------------------------------------------ #
    # Domain helpers
    # ------------------------------------------------------------------ #
    def get_user_data(self, prefix: str, user_guid: str) -> Optional[Any]:
        return self.get(self.user_key(prefix, user_guid))

    def set_user_data(self, prefix: str, user_guid: str, value: Any) -> None:
        self.set(self.user_key(prefix, user_guid), value, self.ttl_for(prefix))

    def get_entity(self, entity_set: str, record_id: str) -> Optional[Dict[str, Any]]:
        return self.get(self.entity_key(entity_set, record_id))

    def set_entity(self, entity_set: str, record_id: str, record: Dict[str, Any]) -> None:
        self.set(self.entity_key(entity_set, record_id), record, self.config.entity_ttl)

    def invalidate_entity(self, entity_set: str, record_id: str) -> None:
        self.invalidate(self.entity_key(entity_set, record_id))

    def invalidate_user_cache(self, user_guid: str) -> int:
        removed = 0
        for pattern in USER_PATTERNS:
            removed += self.invalidate_pattern(pattern.format(guid=user_guid))
        logger.info("Invalidated %d cache keys for user %s", removed, user_guid)
        return removed

    def health_check(self) -> Dict[str, Any]:
        try:
            ok = bool(self.store.ping())
        except Exception as e:
            logger.warning("Cache health check failed: %s", e)
            ok = False
        return {"status": "healthy" if ok else "unhealthy", "connected": ok}

    def prefixes(self) -> List[str]:
        return [v for k, v in vars(CachePrefix).items() if k.isupper()]
