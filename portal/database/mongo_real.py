"""
MongoDB storage backed by motor.

Documents use a string `_id` which is exposed to callers as `id`.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorClient

logger = logging.getLogger(__name__)


def _out(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


class MongoDB:
    def __init__(self, url: str, database: str = "portal") -> None:
        self.client = AsyncIOMotorClient(url)
        self.db = self.client[database]
        logger.info("Using MongoDB database %s", database)

    async def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        doc = dict(document)
        doc["_id"] = doc.pop("id", None) or uuid.uuid4().hex
        await self.db[collection].insert_one(doc)
        return _out(doc)

    async def find_one(self, collection: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return _out(await self.db[collection].find_one(self._query(filters)))

    async def find(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        *,
        sort: Optional[Tuple[str, int]] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        cursor = self.db[collection].find(self._query(filters))
        if sort:
            cursor = cursor.sort(sort[0], sort[1])
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return [_out(doc) async for doc in cursor]

    async def update(self, collection: str, doc_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        changes = {k: v for k, v in changes.items() if k not in ("id", "_id")}
        if changes:
            result = await self.db[collection].update_one({"_id": doc_id}, {"$set": changes})
            if result.matched_count == 0:
                return None
        return await self.find_one(collection, {"id": doc_id})

    async def delete(self, collection: str, doc_id: str) -> bool:
        result = await self.db[collection].delete_one({"_id": doc_id})
        return result.deleted_count > 0

    async def count(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> int:
        return await self.db[collection].count_documents(self._query(filters))

    async def ping(self) -> bool:
        try:
            await self.client.admin.command("ping")
            return True
        except Exception as e:
            logger.warning("MongoDB ping failed: %s", e)
            return False

    @staticmethod
    def _query(filters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        query = dict(filters or {})
        if "id" in query:
            query["_id"] = query.pop("id")
        return query
