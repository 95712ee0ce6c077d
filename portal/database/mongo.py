"""
In-memory MongoDB replacement for local development and tests.

Implements the same async interface as `portal.database.mongo_real.MongoDB`.
Filters support plain equality only. Not intended for production use.
"""

from __future__ import annotations

import copy
import uuid
from typing import Any, Dict, List, Optional, Tuple


class MongoDB:
    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _coll(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    @staticmethod
    def _matches(doc: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
        return all(doc.get(k) == v for k, v in (filters or {}).items())

    async def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        doc = copy.deepcopy(document)
        doc.setdefault("id", uuid.uuid4().hex)
        self._coll(collection)[doc["id"]] = doc
        return copy.deepcopy(doc)

    async def find_one(self, collection: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for doc in self._coll(collection).values():
            if self._matches(doc, filters):
                return copy.deepcopy(doc)
        return None

    async def find(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        *,
        sort: Optional[Tuple[str, int]] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        rows = [copy.deepcopy(d) for d in self._coll(collection).values() if self._matches(d, filters)]
        if sort:
            field, direction = sort
            rows.sort(key=lambda d: (d.get(field) is None, d.get(field) or ""), reverse=direction < 0)
        rows = rows[skip:]
        return rows[:limit] if limit else rows

    async def update(self, collection: str, doc_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        doc = self._coll(collection).get(doc_id)
        if doc is None:
            return None
        doc.update(copy.deepcopy(changes))
        return copy.deepcopy(doc)

    async def delete(self, collection: str, doc_id: str) -> bool:
        return self._coll(collection).pop(doc_id, None) is not None

    async def count(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> int:
        return sum(1 for d in self._coll(collection).values() if self._matches(d, filters))

    async def ping(self) -> bool:
        return True
