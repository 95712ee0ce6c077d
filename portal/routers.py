from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from portal.controllers import AccountController, OrganizationController
from portal.dependencies import get_db
from portal.models import Account, AccountCreate, AccountUpdate, Organization, OrganizationCreate, OrganizationUpdate

accounts_api = APIRouter()
organizations_api = APIRouter()


def get_accounts(db=Depends(get_db)) -> AccountController:
    return AccountController(db)


def get_organizations(db=Depends(get_db)) -> OrganizationController:
    return OrganizationController(db)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

@accounts_api.get("", response_model=List[Account])
async def list_accounts(
    organization_id: Optional[str] = None,
    role: Optional[str] = None,
    status: Optional[str] = None,
    sort: Optional[str] = Query(default=None, description="Field name, prefix with '-' for descending"),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
    ctrl: AccountController = Depends(get_accounts),
):
    return await ctrl.list(
        organization_id=organization_id, role=role, account_status=status, sort=sort, skip=skip, limit=limit
    )


@accounts_api.post("", response_model=Account, status_code=201)
async def create_account(payload: AccountCreate, ctrl: AccountController = Depends(get_accounts)):
    return await ctrl.create(payload)


@accounts_api.get("/{account_id}", response_model=Account)
async def get_account(account_id: str, ctrl: AccountController = Depends(get_accounts)):
    return await ctrl.get(account_id)


@accounts_api.patch("/{account_id}", response_model=Account)
async def update_account(account_id: str, payload: AccountUpdate, ctrl: AccountController = Depends(get_accounts)):
    return await ctrl.update(account_id, payload)


@accounts_api.delete("/{account_id}")
async def delete_account(account_id: str, ctrl: AccountController = Depends(get_accounts)) -> Dict[str, Any]:
    await ctrl.delete(account_id)
    return {"success": True, "id": account_id}


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

@organizations_api.get("", response_model=List[Organization])
async def list_organizations(
    sort: Optional[str] = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
    ctrl: OrganizationController = Depends(get_organizations),
):
    return await ctrl.list(sort=sort, skip=skip, limit=limit)


@organizations_api.post("", response_model=Organization, status_code=201)
async def create_organization(payload: OrganizationCreate, ctrl: OrganizationController = Depends(get_organizations)):
    return await ctrl.create(payload)


@organizations_api.get("/{org_id}", response_model=Organization)
async def get_organization(org_id: str, ctrl: OrganizationController = Depends(get_organizations)):
    return await ctrl.get(org_id)


@organizations_api.patch("/{org_id}", response_model=Organization)
async def update_organization(
    org_id: str, payload: OrganizationUpdate, ctrl: OrganizationController = Depends(get_organizations)
):
    return await ctrl.update(org_id, payload)


@organizations_api.delete("/{org_id}")
async def delete_organization(org_id: str, ctrl: OrganizationController = Depends(get_organizations)) -> Dict[str, Any]:
    await ctrl.delete(org_id)
    return {"success": True, "id": org_id}


@organizations_api.get("/{org_id}/accounts", response_model=List[Account])
async def list_organization_accounts(
    org_id: str,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
    db=Depends(get_db),
):
    return await AccountController(db).list_for_organization(org_id, skip=skip, limit=limit)
