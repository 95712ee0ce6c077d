from typing import Any, Dict

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from osot.api.dependencies import Services, get_current_user, get_services, require_privilege
from osot.api.endpoints.common import admin_crud_router, not_found
from osot.auth.tokens import TokenClaims
from osot.controllers.accounts import enforce_privileged_fields
from osot.controllers.affiliates import AffiliateController
from osot.controllers.organizations import OrganizationController
from osot.entities.enums import AccountStatus, Privilege, UserType
from osot.error_handler import AppError, ErrorCode

public_affiliates_api = APIRouter()
my_affiliate_api = APIRouter()

# Set by administrators only.
_ADMIN_ONLY_FIELDS = ("account_status", "active_member", "organization_id")


def _controller(services: Services) -> AffiliateController:
    return AffiliateController(services.dataverse, services.cache)


def _require_affiliate(user: TokenClaims) -> None:
    if user.user_type != UserType.AFFILIATE.value:
        raise AppError(ErrorCode.FORBIDDEN, "Only affiliate accounts can use this route")


def _reject_admin_fields(payload: Dict[str, Any]) -> None:
    for name in _ADMIN_ONLY_FIELDS:
        if name in payload:
            raise AppError(ErrorCode.INSUFFICIENT_PRIVILEGE, f"Only administrators can change {name}")


@public_affiliates_api.post("/register", status_code=201)
async def register_affiliate(
    payload: dict = Body(...),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    data = dict(payload)
    slug = data.pop("organization_slug", None) or services.config.registration.default_organization_slug
    enforce_privileged_fields(data, Privilege.OWNER)
    _reject_admin_fields(data)
    org = await OrganizationController(services.dataverse, services.cache).resolve_active(slug)
    data["organization_id"] = org["id"]
    return await _controller(services).create(data)


@my_affiliate_api.get("/me")
async def get_my_affiliate(
    user: TokenClaims = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    _require_affiliate(user)
    record = await _controller(services).get(user.user_guid)
    if record is None:
        raise not_found("Affiliate")
    return record


@my_affiliate_api.patch("/me")
async def update_my_affiliate(
    payload: dict = Body(...),
    user: TokenClaims = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    _require_affiliate(user)
    enforce_privileged_fields(payload, Privilege.OWNER)
    _reject_admin_fields(payload)
    updated = await _controller(services).update(user.user_guid, payload)
    if updated is None:
        raise not_found("Affiliate")
    return updated


class StatusChange(BaseModel):
    account_status: AccountStatus


@my_affiliate_api.put("/{affiliate_id}/status")
async def set_affiliate_status(
    affiliate_id: str,
    change: StatusChange,
    user: TokenClaims = Depends(require_privilege(Privilege.ADMIN)),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    updated = await _controller(services).set_status(affiliate_id, change.account_status)
    if updated is None:
        raise not_found("Affiliate")
    return updated


affiliates_api = admin_crud_router(AffiliateController, "Affiliate")
