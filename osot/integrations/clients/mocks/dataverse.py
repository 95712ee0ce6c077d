"""
In-memory Dataverse stand-in for local development and tests.

Behaves like the Web API for the subset the controllers use: GUID primary
keys, autonumber business ids, `createdon`/`modifiedon`, lookup binding via
`Nav@odata.bind` and the `_nav_value` read columns, and `ODataQuery`
filtering, ordering and paging. String equality is case-insensitive, as in
Dataverse.
"""

from __future__ import annotations

import copy
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from osot.entities.definitions import BY_ENTITY_SET
from osot.error_handler import AppError, ErrorCode
from osot.integrations.contracts.dataverse import AppContext, DataverseClient, ODataFilter, ODataQuery

_BIND_RE = re.compile(r"^/?(?P<set>[A-Za-z_]+)\((?P<id>[^)]+)\)$")


class MockDataverseClient(DataverseClient):
    def __init__(self) -> None:
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._counters: Dict[str, int] = {}
        # (entity_set, op) -> number of remaining forced failures
        self._failures: Dict[tuple, int] = {}
        self.calls: List[tuple] = []

    # ------------------------------------------------------------------ #
    # Test helpers
    # ------------------------------------------------------------------ #
    def fail_next(self, entity_set: str, op: str = "create", times: int = 1) -> None:
        """Make the next `times` calls of `op` on `entity_set` raise."""
        self._failures[(entity_set, op)] = times

    def records(self, entity_set: str) -> List[Dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._tables.get(entity_set, {}).values()]

    def _maybe_fail(self, entity_set: str, op: str) -> None:
        remaining = self._failures.get((entity_set, op), 0)
        if remaining > 0:
            self._failures[(entity_set, op)] = remaining - 1
            raise AppError(
                ErrorCode.DATAVERSE_SERVICE_ERROR,
                f"Simulated Dataverse failure on {op} {entity_set}",
                context={"endpoint": entity_set},
            )

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _primary_key(self, entity_set: str) -> str:
        definition = BY_ENTITY_SET.get(entity_set)
        if definition:
            return definition.primary_key
        return entity_set.rstrip("s") + "id"

    def _next_business_id(self, entity_set: str) -> Optional[tuple]:
        definition = BY_ENTITY_SET.get(entity_set)
        if not definition or not definition.business_id:
            return None
        column, prefix = definition.business_id
        self._counters[entity_set] = self._counters.get(entity_set, 0) + 1
        return column, f"{prefix}{self._counters[entity_set]:07d}"

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _apply_payload(record: Dict[str, Any], payload: Dict[str, Any]) -> None:
        for key, value in payload.items():
            if key.endswith("@odata.bind"):
                nav = key.split("@", 1)[0]
                match = _BIND_RE.match(str(value or ""))
                record[f"_{nav.lower()}_value"] = match.group("id") if match else None
            else:
                record[key] = value

    # ------------------------------------------------------------------ #
    # DataverseClient
    # ------------------------------------------------------------------ #
    async def create(self, entity_set: str, payload: Dict[str, Any], app: AppContext = AppContext.MAIN) -> Dict[str, Any]:
        self.calls.append(("create", entity_set, app.value))
        self._maybe_fail(entity_set, "create")
        table = self._tables.setdefault(entity_set, {})
        record_id = str(uuid.uuid4())
        record: Dict[str, Any] = {self._primary_key(entity_set): record_id}
        business = self._next_business_id(entity_set)
        if business and business[0] not in payload:
            record[business[0]] = business[1]
        self._apply_payload(record, copy.deepcopy(payload))
        record["createdon"] = record["modifiedon"] = self._now()
        table[record_id] = record
        return copy.deepcopy(record)

    async def get(self, entity_set: str, record_id: str, app: AppContext = AppContext.MAIN) -> Optional[Dict[str, Any]]:
        self.calls.append(("get", entity_set, app.value))
        self._maybe_fail(entity_set, "get")
        record = self._tables.get(entity_set, {}).get(str(record_id))
        return copy.deepcopy(record) if record else None

    async def query(self, entity_set: str, query: Optional[ODataQuery] = None, app: AppContext = AppContext.MAIN) -> List[Dict[str, Any]]:
        self.calls.append(("query", entity_set, app.value))
        self._maybe_fail(entity_set, "query")
        query = query or ODataQuery()
        rows = [r for r in self._tables.get(entity_set, {}).values() if all(_matches(r, f) for f in query.filters)]
        if query.orderby:
            rows.sort(key=lambda r: _sort_key(r.get(query.orderby)), reverse=query.descending)
        if query.skip:
            rows = rows[query.skip :]
        if query.top is not None:
            rows = rows[: query.top]
        if query.select:
            pk = self._primary_key(entity_set)
            keep = set(query.select) | {pk}
            rows = [{k: v for k, v in r.items() if k in keep} for r in rows]
        return copy.deepcopy(rows)

    async def update(self, entity_set: str, record_id: str, payload: Dict[str, Any], app: AppContext = AppContext.MAIN) -> Dict[str, Any]:
        self.calls.append(("update", entity_set, app.value))
        self._maybe_fail(entity_set, "update")
        record = self._tables.get(entity_set, {}).get(str(record_id))
        if record is None:
            raise AppError(ErrorCode.DATAVERSE_SERVICE_ERROR, "Record not found", context={"status": 404})
        self._apply_payload(record, copy.deepcopy(payload))
        record["modifiedon"] = self._now()
        return copy.deepcopy(record)

    async def delete(self, entity_set: str, record_id: str, app: AppContext = AppContext.MAIN) -> bool:
        self.calls.append(("delete", entity_set, app.value))
        self._maybe_fail(entity_set, "delete")
        return self._tables.get(entity_set, {}).pop(str(record_id), None) is not None

    async def ping(self) -> bool:
        return True


def _normalize(value: Any) -> Any:
    if isinstance(value, str):
        return value.lower()
    return value


def _sort_key(value: Any):
    # None sorts first; mixed types compare by string form.
    if value is None:
        return (0, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value)
    return (2, str(value).lower())


def _matches(record: Dict[str, Any], f: ODataFilter) -> bool:
    actual = record.get(f.field)
    expected = f.value
    if f.op == "contains":
        return actual is not None and str(expected).lower() in str(actual).lower()
    a, e = _normalize(actual), _normalize(expected)
    if f.op == "eq":
        return a == e
    if f.op == "ne":
        return a != e
    if a is None or e is None:
        return False
    try:
        if f.op == "gt":
            return a > e
        if f.op == "ge":
            return a >= e
        if f.op == "lt":
            return a < e
        if f.op == "le":
            return a <= e
    except TypeError:
        return False
    return False
