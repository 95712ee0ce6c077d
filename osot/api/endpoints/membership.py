from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query

from osot.api.dependencies import Services, get_current_user, get_services, require_privilege
from osot.api.endpoints.common import not_found, owned_entity_router
from osot.auth.tokens import TokenClaims
from osot.controllers.membership import (
    MembershipCategoryController,
    MembershipEmploymentController,
    MembershipPracticesController,
    MembershipPreferencesController,
    MembershipSettingsController,
)
from osot.entities.enums import AccountGroup, Privilege

membership_categories_api = owned_entity_router(MembershipCategoryController, "Membership category")
membership_employments_api = owned_entity_router(MembershipEmploymentController, "Membership employment")
membership_practices_api = owned_entity_router(MembershipPracticesController, "Membership practices")
membership_preferences_api = owned_entity_router(MembershipPreferencesController, "Membership preferences")

# Settings are maintained by administrators; any signed-in user may read them.
membership_settings_api = APIRouter()


def _settings(services: Services) -> MembershipSettingsController:
    return MembershipSettingsController(services.dataverse, services.cache)


@membership_settings_api.get("/active")
async def active_settings(
    group: Optional[int] = Query(default=None),
    user: TokenClaims = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return await _settings(services).get_active_settings(AccountGroup(group) if group is not None else None)


@membership_settings_api.get("/expiration/me")
async def my_expiration(
    group: Optional[int] = Query(default=None),
    user: TokenClaims = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    expires = await _settings(services).get_membership_expiration(
        user.user_guid, AccountGroup(group) if group is not None else None
    )
    return {"expires": expires.isoformat() if expires else None}


@membership_settings_api.get("")
async def list_settings(
    user: TokenClaims = Depends(require_privilege(Privilege.ADMIN)),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return await _settings(services).list(order_by="year_starts", descending=True)


@membership_settings_api.post("", status_code=201)
async def create_settings(
    payload: dict = Body(...),
    user: TokenClaims = Depends(require_privilege(Privilege.ADMIN)),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await _settings(services).create(payload)


@membership_settings_api.get("/{settings_id}")
async def get_settings(
    settings_id: str,
    user: TokenClaims = Depends(require_privilege(Privilege.ADMIN)),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    record = await _settings(services).get(settings_id)
    if record is None:
        raise not_found("Membership settings")
    return record


@membership_settings_api.patch("/{settings_id}")
async def update_settings(
    settings_id: str,
    payload: dict = Body(...),
    user: TokenClaims = Depends(require_privilege(Privilege.ADMIN)),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    updated = await _settings(services).update(settings_id, payload)
    if updated is None:
        raise not_found("Membership settings")
    return updated


@membership_settings_api.delete("/{settings_id}")
async def delete_settings(
    settings_id: str,
    user: TokenClaims = Depends(require_privilege(Privilege.MAIN)),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    ctrl = _settings(services)
    if await ctrl.get(settings_id) is None:
        raise not_found("Membership settings")
    await ctrl.delete(settings_id)
    return {"success": True, "id": settings_id}
