"""
Generic Dataverse-backed entity controller.

Each OSOT table gets a subclass that supplies its `EntityDefinition` and a
`validate` hook. Reads go through the entity cache (`entity:{set}:{id}`);
every write refreshes that key and drops the owning user's profile keys.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Type

from osot.cache.cache_service import CacheService
from osot.entities.definitions import EntityDefinition
from osot.entities.enums import AccessModifier, Privilege
from osot.integrations.contracts.dataverse import AppContext, DataverseClient, ODataQuery
from osot.validation import FormValidationError, add_error

logger = logging.getLogger(__name__)


class EntityController:
    definition: EntityDefinition
    # Cache prefix for the per-user list returned by `/me` routes.
    user_prefix: Optional[str] = None

    def __init__(
        self,
        dataverse: DataverseClient,
        cache: CacheService,
        app: AppContext = AppContext.MAIN,
        definition: Optional[EntityDefinition] = None,
    ) -> None:
        self.dataverse = dataverse
        self.cache = cache
        self.app = app
        if definition is not None:
            self.definition = definition

    @property
    def entity_set(self) -> str:
        return self.definition.entity_set

    # ------------------------------------------------------------------ #
    # Hooks
    # ------------------------------------------------------------------ #
    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Return the cleaned subset of `data` to write.

        `existing` is the current record on update (partial payloads), and
        None on create.
        """
        return self.known_fields(data)

    def known_fields(self, data: Dict[str, Any]) -> Dict[str, Any]:
        allowed = set(self.definition.fields) | set(self.definition.lookups)
        return {k: v for k, v in data.items() if k in allowed}

    def apply_defaults(self, clean: Dict[str, Any]) -> Dict[str, Any]:
        fields = self.definition.fields
        if "access_modifiers" in fields:
            clean.setdefault("access_modifiers", AccessModifier.PRIVATE)
        if "privilege" in fields:
            clean.setdefault("privilege", Privilege.OWNER)
        return clean

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #
    async def _fetch(self, record_id: str) -> Optional[Dict[str, Any]]:
        cached = self.cache.get_entity(self.entity_set, record_id)
        if cached is not None:
            return cached
        raw = await self.dataverse.get(self.entity_set, record_id, self.app)
        if raw:
            self.cache.set_entity(self.entity_set, record_id, raw)
        return raw

    async def get(self, record_id: str, *, include_hidden: bool = False) -> Optional[Dict[str, Any]]:
        raw = await self._fetch(record_id)
        if not raw:
            return None
        return self.definition.from_odata(raw, include_hidden=include_hidden)

    def build_query(
        self,
        filters: Optional[Dict[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        top: Optional[int] = None,
        skip: Optional[int] = None,
    ) -> ODataQuery:
        d = self.definition
        query = ODataQuery(descending=descending, top=top, skip=skip)
        for name, value in (filters or {}).items():
            guid = name == "id" or name in d.lookups
            query.where(d.column(name), value, guid=guid)
        if order_by:
            query.orderby = "createdon" if order_by == "created_on" else d.column(order_by)
        return query

    async def list(
        self,
        filters: Optional[Dict[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        top: Optional[int] = None,
        skip: Optional[int] = None,
        include_hidden: bool = False,
    ) -> List[Dict[str, Any]]:
        query = self.build_query(filters, order_by=order_by, descending=descending, top=top, skip=skip)
        rows = await self.dataverse.query(self.entity_set, query, self.app)
        return [self.definition.from_odata(r, include_hidden=include_hidden) for r in rows]

    async def find_one(self, *, include_hidden: bool = False, **filters: Any) -> Optional[Dict[str, Any]]:
        rows = await self.list(filters, top=1, include_hidden=include_hidden)
        return rows[0] if rows else None

    async def list_for_account(self, account_id: str) -> List[Dict[str, Any]]:
        if not self.definition.account_bound:
            raise ValueError(f"{self.definition.name} records are not bound to an account")
        return await self.list({"account_id": account_id}, order_by="created_on")

    async def list_for_user(self, user_guid: str) -> List[Dict[str, Any]]:
        """`list_for_account` behind the per-user profile cache."""
        if self.user_prefix:
            cached = self.cache.get_user_data(self.user_prefix, user_guid)
            if cached is not None:
                return cached
        rows = await self.list_for_account(user_guid)
        if self.user_prefix:
            self.cache.set_user_data(self.user_prefix, user_guid, rows)
        return rows

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #
    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.insert(await self.validate(data))

    async def insert(self, clean: Dict[str, Any]) -> Dict[str, Any]:
        """Write an already-validated payload."""
        clean = self.apply_defaults(dict(clean))
        raw = await self.dataverse.create(self.entity_set, self.definition.to_odata(clean), self.app)
        record = self.definition.from_odata(raw)
        self.cache.set_entity(self.entity_set, record["id"], raw)
        self._invalidate_owner(record)
        logger.info("Created %s %s", self.definition.name, record.get("business_id") or record["id"])
        return record

    async def update(self, record_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        self.check_immutable(data)
        existing = await self.get(record_id, include_hidden=True)
        if existing is None:
            return None
        clean = await self.validate(data, existing=existing)
        if not clean:
            return self.definition.from_odata(await self._fetch(record_id))
        raw = await self.dataverse.update(self.entity_set, record_id, self.definition.to_odata(clean), self.app)
        self.cache.set_entity(self.entity_set, record_id, raw)
        record = self.definition.from_odata(raw)
        self._invalidate_owner(record)
        return record

    async def delete(self, record_id: str) -> bool:
        existing = await self.get(record_id)
        ok = await self.dataverse.delete(self.entity_set, record_id, self.app)
        self.cache.invalidate_entity(self.entity_set, record_id)
        if existing:
            self._invalidate_owner(existing)
        return ok

    def check_immutable(self, data: Dict[str, Any]) -> None:
        errors: Dict[str, str] = {}
        for name in data:
            if name in self.definition.immutable:
                add_error(errors, name, f"{name} cannot be changed after creation")
        if errors:
            raise FormValidationError(field_errors=errors, message="Immutable fields cannot be updated")

    def _invalidate_owner(self, record: Dict[str, Any]) -> None:
        owner = record.get("account_id") if self.definition.account_bound else None
        if owner:
            self.cache.invalidate_user_cache(owner)


# ---------------------------------------------------------------------- #
# Field helpers shared by the entity validators
# ---------------------------------------------------------------------- #
def validate_choice(
    data: Dict[str, Any],
    field: str,
    enum_cls: Type[Enum],
    errors: Dict[str, str],
    clean: Dict[str, Any],
    *,
    required: bool = False,
) -> Any:
    if field not in data or data.get(field) in (None, ""):
        if required:
            add_error(errors, field, f"{field} is required")
        return None
    raw = data[field]
    try:
        value = enum_cls(raw)
    except ValueError:
        try:
            value = enum_cls(int(raw))
        except (TypeError, ValueError):
            add_error(errors, field, f"{field} has an invalid value")
            return None
    clean[field] = value
    return value


def validate_choice_list(
    data: Dict[str, Any],
    field: str,
    enum_cls: Optional[Type[Enum]],
    errors: Dict[str, str],
    clean: Dict[str, Any],
    *,
    required: bool = False,
) -> List[Any]:
    raw = data.get(field)
    if raw in (None, "", []):
        if required:
            add_error(errors, field, f"{field} must contain at least one value")
        elif field in data:
            clean[field] = []
        return []
    if not isinstance(raw, list):
        add_error(errors, field, f"{field} must be a list")
        return []
    values: List[Any] = []
    for item in raw:
        if enum_cls is None:
            values.append(item)
            continue
        try:
            values.append(enum_cls(int(item)))
        except (TypeError, ValueError):
            add_error(errors, field, f"{field} has an invalid value: {item}")
            return []
    clean[field] = values
    return values


def copy_flags(data: Dict[str, Any], names: Iterable[str], errors: Dict[str, str], clean: Dict[str, Any]) -> None:
    for name in names:
        if name not in data or data[name] is None:
            continue
        if not isinstance(data[name], bool):
            add_error(errors, name, f"{name} must be true or false")
            continue
        clean[name] = data[name]


def copy_text(data: Dict[str, Any], names: Iterable[str], errors: Dict[str, str], clean: Dict[str, Any], *, max_length: int = 255) -> None:
    for name in names:
        if name not in data or data[name] is None:
            continue
        value = str(data[name]).strip()
        if len(value) > max_length:
            add_error(errors, name, f"{name} must be at most {max_length} characters")
            continue
        clean[name] = value
