"""
Account and organization operations for the membership portal.

Uniqueness: account email, organization slug and (case-insensitive)
organization name. Organizations that still have accounts cannot be deleted.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException, status

from osot.utils.masking import mask_email
from portal.models import AccountCreate, AccountUpdate, OrganizationCreate, OrganizationUpdate

logger = logging.getLogger(__name__)

ACCOUNTS = "accounts"
ORGANIZATIONS = "organizations"

SORTABLE = {"name", "email", "slug", "created_at", "updated_at", "status", "role"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _not_found(what: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found")


def _conflict(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=message)


def parse_sort(sort: Optional[str]) -> Optional[Tuple[str, int]]:
    """`name` ascending, `-name` descending."""
    if not sort:
        return None
    direction = -1 if sort.startswith("-") else 1
    field = sort.lstrip("-+")
    if field not in SORTABLE:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Cannot sort by {field}")
    return field, direction


class OrganizationController:
    def __init__(self, db) -> None:
        self.db = db

    async def list(self, *, sort: Optional[str] = None, skip: int = 0, limit: int = 50) -> List[Dict[str, Any]]:
        return await self.db.find(ORGANIZATIONS, sort=parse_sort(sort) or ("name", 1), skip=skip, limit=limit)

    async def get(self, org_id: str) -> Dict[str, Any]:
        org = await self.db.find_one(ORGANIZATIONS, {"id": org_id})
        if org is None:
            raise _not_found("Organization")
        return org

    async def _ensure_unique(self, data: Dict[str, Any], own_id: Optional[str] = None) -> None:
        if "name" in data:
            match = await self.db.find_one(ORGANIZATIONS, {"name_key": data["name"].strip().lower()})
            if match and match["id"] != own_id:
                raise _conflict(f"Organization '{data['name']}' already exists")
        if "slug" in data:
            match = await self.db.find_one(ORGANIZATIONS, {"slug": data["slug"]})
            if match and match["id"] != own_id:
                raise _conflict(f"Slug '{data['slug']}' is already taken")

    async def create(self, payload: OrganizationCreate) -> Dict[str, Any]:
        data = payload.model_dump()
        data["name"] = data["name"].strip()
        await self._ensure_unique(data)
        now = _now()
        data.update(name_key=data["name"].lower(), created_at=now, updated_at=now)
        org = await self.db.insert(ORGANIZATIONS, data)
        logger.info("Created organization %s", org["slug"])
        return org

    async def update(self, org_id: str, payload: OrganizationUpdate) -> Dict[str, Any]:
        await self.get(org_id)
        changes = payload.model_dump(exclude_unset=True)
        if "name" in changes and changes["name"]:
            changes["name"] = changes["name"].strip()
            changes["name_key"] = changes["name"].lower()
        await self._ensure_unique(changes, own_id=org_id)
        changes["updated_at"] = _now()
        updated = await self.db.update(ORGANIZATIONS, org_id, changes)
        if updated is None:
            raise _not_found("Organization")
        return updated

    async def delete(self, org_id: str) -> None:
        await self.get(org_id)
        members = await self.db.count(ACCOUNTS, {"organization_id": org_id})
        if members:
            raise _conflict(f"Organization still has {members} account(s)")
        await self.db.delete(ORGANIZATIONS, org_id)
        logger.info("Deleted organization %s", org_id)


class AccountController:
    def __init__(self, db) -> None:
        self.db = db
        self.organizations = OrganizationController(db)

    async def list(
        self,
        *,
        organization_id: Optional[str] = None,
        role: Optional[str] = None,
        account_status: Optional[str] = None,
        sort: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        filters: Dict[str, Any] = {}
        if organization_id:
            filters["organization_id"] = organization_id
        if role:
            filters["role"] = role
        if account_status:
            filters["status"] = account_status
        return await self.db.find(ACCOUNTS, filters, sort=parse_sort(sort) or ("created_at", -1), skip=skip, limit=limit)

    async def get(self, account_id: str) -> Dict[str, Any]:
        account = await self.db.find_one(ACCOUNTS, {"id": account_id})
        if account is None:
            raise _not_found("Account")
        return account

    async def _ensure_email_free(self, email: str, own_id: Optional[str] = None) -> None:
        match = await self.db.find_one(ACCOUNTS, {"email": email})
        if match and match["id"] != own_id:
            raise _conflict("An account with this email already exists")

    async def create(self, payload: AccountCreate) -> Dict[str, Any]:
        data = payload.model_dump(mode="json")
        await self._ensure_email_free(data["email"])
        if data.get("organization_id"):
            await self.organizations.get(data["organization_id"])
        now = _now()
        data.update(created_at=now, updated_at=now)
        account = await self.db.insert(ACCOUNTS, data)
        logger.info("Created portal account %s", mask_email(account["email"]))
        return account

    async def update(self, account_id: str, payload: AccountUpdate) -> Dict[str, Any]:
        await self.get(account_id)
        changes = payload.model_dump(mode="json", exclude_unset=True)
        if changes.get("email"):
            await self._ensure_email_free(changes["email"], own_id=account_id)
        if changes.get("organization_id"):
            await self.organizations.get(changes["organization_id"])
        changes["updated_at"] = _now()
        updated = await self.db.update(ACCOUNTS, account_id, changes)
        if updated is None:
            raise _not_found("Account")
        return updated

    async def delete(self, account_id: str) -> None:
        await self.get(account_id)
        await self.db.delete(ACCOUNTS, account_id)

    async def list_for_organization(self, org_id: str, *, skip: int = 0, limit: int = 50) -> List[Dict[str, Any]]:
        await self.organizations.get(org_id)
        return await self.db.find(ACCOUNTS, {"organization_id": org_id}, sort=("name", 1), skip=skip, limit=limit)
