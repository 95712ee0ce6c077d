from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query

from osot.api.dependencies import Services, app_context_for, get_current_user, get_services, require_privilege
from osot.api.endpoints.common import owned_entity_router
from osot.auth.tokens import TokenClaims
from osot.controllers.accounts import AccountController, enforce_privileged_fields
from osot.controllers.profile import AddressController, ContactController, IdentityController, ManagementController
from osot.entities.enums import Privilege
from osot.error_handler import AppError, ErrorCode

accounts_api = APIRouter()

# Fields only an administrator may change on an account.
_ADMIN_ONLY_FIELDS = ("account_status", "active_member", "organization_id")


def _controller(services: Services, user: TokenClaims) -> AccountController:
    return AccountController(services.dataverse, services.cache, app_context_for(user))


@accounts_api.get("/me")
async def get_my_account(
    user: TokenClaims = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    profile = await _controller(services, user).get_profile(user.user_guid)
    if profile is None:
        raise AppError(ErrorCode.ACCOUNT_NOT_FOUND)
    return profile


@accounts_api.patch("/me")
async def update_my_account(
    payload: dict = Body(...),
    user: TokenClaims = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    enforce_privileged_fields(payload, user.privilege_level)
    if not user.has_privilege(Privilege.ADMIN):
        for name in _ADMIN_ONLY_FIELDS:
            if name in payload:
                raise AppError(ErrorCode.INSUFFICIENT_PRIVILEGE, f"Only administrators can change {name}")
    updated = await _controller(services, user).update(user.user_guid, payload)
    if updated is None:
        raise AppError(ErrorCode.ACCOUNT_NOT_FOUND)
    return updated


@accounts_api.get("")
async def list_accounts(
    email: Optional[str] = Query(default=None),
    top: int = Query(default=50, ge=1, le=500),
    skip: int = Query(default=0, ge=0),
    user: TokenClaims = Depends(require_privilege(Privilege.ADMIN)),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    filters: Dict[str, Any] = {}
    if email:
        filters["email"] = email.strip().lower()
    # ADMIN sees their own organization; MAIN sees everything.
    if user.privilege_level < Privilege.MAIN and user.organization_id:
        filters["organization_id"] = user.organization_id
    return await _controller(services, user).list(filters, order_by="created_on", descending=True, top=top, skip=skip)


@accounts_api.get("/{account_id}")
async def get_account(
    account_id: str,
    user: TokenClaims = Depends(require_privilege(Privilege.ADMIN)),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    account = await _controller(services, user).get(account_id)
    if account is None:
        raise AppError(ErrorCode.ACCOUNT_NOT_FOUND)
    return account


@accounts_api.patch("/{account_id}")
async def update_account(
    account_id: str,
    payload: dict = Body(...),
    user: TokenClaims = Depends(require_privilege(Privilege.ADMIN)),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    requested = enforce_privileged_fields(payload, user.privilege_level).get("privilege")
    if requested is not None and requested > user.privilege:
        raise AppError(ErrorCode.INSUFFICIENT_PRIVILEGE, "You cannot grant a privilege above your own")
    updated = await _controller(services, user).update(account_id, payload)
    if updated is None:
        raise AppError(ErrorCode.ACCOUNT_NOT_FOUND)
    return updated


@accounts_api.delete("/{account_id}")
async def delete_account(
    account_id: str,
    user: TokenClaims = Depends(require_privilege(Privilege.MAIN)),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    ctrl = _controller(services, user)
    if await ctrl.get(account_id) is None:
        raise AppError(ErrorCode.ACCOUNT_NOT_FOUND)
    await ctrl.delete(account_id)
    return {"success": True, "id": account_id}


addresses_api = owned_entity_router(AddressController, "Address")
contacts_api = owned_entity_router(ContactController, "Contact")
identities_api = owned_entity_router(IdentityController, "Identity")
managements_api = owned_entity_router(ManagementController, "Account management")
