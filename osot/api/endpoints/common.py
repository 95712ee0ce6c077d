"""
Router factory for records owned by an account (address, contact, identity,
management, education, membership records).

Every owned entity exposes the same shape:

    GET    /me          the caller's records
    PATCH  /me          update the caller's (first) record
    POST   /            create a record for the caller
    GET    /            list all records (ADMIN+)
    GET    /{id}        one record (ADMIN+, or the owner)
    PATCH  /{id}        update (ADMIN+)
    DELETE /{id}        delete (ADMIN+)
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from fastapi import APIRouter, Body, Depends, Query

from osot.api.dependencies import Services, app_context_for, get_current_user, get_services, require_privilege
from osot.auth.tokens import TokenClaims
from osot.controllers.accounts import enforce_privileged_fields
from osot.controllers.base import EntityController
from osot.entities.enums import Privilege
from osot.error_handler import AppError, ErrorCode

ControllerFactory = Callable[[Services, TokenClaims], Awaitable[EntityController]]
CreateHook = Callable[[Services, TokenClaims, Dict[str, Any]], Awaitable[None]]


def not_found(what: str) -> AppError:
    return AppError(ErrorCode.NOT_FOUND, f"{what} not found")


def default_factory(controller_cls: Type[EntityController]) -> ControllerFactory:
    async def build(services: Services, user: TokenClaims) -> EntityController:
        return controller_cls(services.dataverse, services.cache, app_context_for(user))

    return build


def owned_entity_router(
    controller_cls: Type[EntityController],
    label: str,
    *,
    factory: Optional[ControllerFactory] = None,
    before_create: Optional[CreateHook] = None,
) -> APIRouter:
    api = APIRouter()
    build = factory or default_factory(controller_cls)

    async def _owned(services: Services, user: TokenClaims, record_id: str) -> Dict[str, Any]:
        ctrl = await build(services, user)
        record = await ctrl.get(record_id)
        if record is None:
            raise not_found(label)
        if not user.has_privilege(Privilege.ADMIN) and record.get("account_id") != user.user_guid:
            raise AppError(ErrorCode.FORBIDDEN)
        return record

    @api.get("/me")
    async def list_mine(
        user: TokenClaims = Depends(get_current_user),
        services: Services = Depends(get_services),
    ) -> List[Dict[str, Any]]:
        ctrl = await build(services, user)
        return await ctrl.list_for_user(user.user_guid)

    @api.patch("/me")
    async def update_mine(
        payload: dict = Body(...),
        user: TokenClaims = Depends(get_current_user),
        services: Services = Depends(get_services),
    ) -> Dict[str, Any]:
        enforce_privileged_fields(payload, user.privilege_level)
        payload.pop("account_id", None)
        ctrl = await build(services, user)
        mine = await ctrl.list_for_user(user.user_guid)
        if not mine:
            raise not_found(label)
        updated = await ctrl.update(mine[0]["id"], payload)
        if updated is None:
            raise not_found(label)
        return updated

    @api.post("", status_code=201)
    async def create_mine(
        payload: dict = Body(...),
        user: TokenClaims = Depends(get_current_user),
        services: Services = Depends(get_services),
    ) -> Dict[str, Any]:
        enforce_privileged_fields(payload, user.privilege_level)
        data = dict(payload)
        if not user.has_privilege(Privilege.ADMIN) or not data.get("account_id"):
            data["account_id"] = user.user_guid
            data["user_business_id"] = user.sub
        if before_create is not None:
            await before_create(services, user, data)
        ctrl = await build(services, user)
        return await ctrl.create(data)

    @api.get("")
    async def list_all(
        account_id: Optional[str] = Query(default=None),
        top: int = Query(default=50, ge=1, le=500),
        skip: int = Query(default=0, ge=0),
        user: TokenClaims = Depends(require_privilege(Privilege.ADMIN)),
        services: Services = Depends(get_services),
    ) -> List[Dict[str, Any]]:
        ctrl = await build(services, user)
        filters = {"account_id": account_id} if account_id else None
        return await ctrl.list(filters, order_by="created_on", descending=True, top=top, skip=skip)

    @api.get("/{record_id}")
    async def get_one(
        record_id: str,
        user: TokenClaims = Depends(get_current_user),
        services: Services = Depends(get_services),
    ) -> Dict[str, Any]:
        return await _owned(services, user, record_id)

    @api.patch("/{record_id}")
    async def update_one(
        record_id: str,
        payload: dict = Body(...),
        user: TokenClaims = Depends(require_privilege(Privilege.ADMIN)),
        services: Services = Depends(get_services),
    ) -> Dict[str, Any]:
        ctrl = await build(services, user)
        updated = await ctrl.update(record_id, payload)
        if updated is None:
            raise not_found(label)
        return updated

    @api.delete("/{record_id}")
    async def delete_one(
        record_id: str,
        user: TokenClaims = Depends(require_privilege(Privilege.ADMIN)),
        services: Services = Depends(get_services),
    ) -> Dict[str, Any]:
        ctrl = await build(services, user)
        if await ctrl.get(record_id) is None:
            raise not_found(label)
        await ctrl.delete(record_id)
        return {"success": True, "id": record_id}

    return api


def admin_crud_router(
    controller_cls: Type[EntityController],
    label: str,
    *,
    read: Privilege = Privilege.ADMIN,
    write: Privilege = Privilege.ADMIN,
    remove: Privilege = Privilege.MAIN,
) -> APIRouter:
    """Plain CRUD for records that are not owned by an account."""
    api = APIRouter()

    def _ctrl(services: Services, user: TokenClaims) -> EntityController:
        return controller_cls(services.dataverse, services.cache, app_context_for(user))

    @api.get("")
    async def list_all(
        top: int = Query(default=50, ge=1, le=500),
        skip: int = Query(default=0, ge=0),
        user: TokenClaims = Depends(require_privilege(read)),
        services: Services = Depends(get_services),
    ) -> List[Dict[str, Any]]:
        return await _ctrl(services, user).list(order_by="created_on", descending=True, top=top, skip=skip)

    @api.post("", status_code=201)
    async def create(
        payload: dict = Body(...),
        user: TokenClaims = Depends(require_privilege(write)),
        services: Services = Depends(get_services),
    ) -> Dict[str, Any]:
        return await _ctrl(services, user).create(payload)

    @api.get("/{record_id}")
    async def get_one(
        record_id: str,
        user: TokenClaims = Depends(require_privilege(read)),
        services: Services = Depends(get_services),
    ) -> Dict[str, Any]:
        record = await _ctrl(services, user).get(record_id)
        if record is None:
            raise not_found(label)
        return record

    @api.patch("/{record_id}")
    async def update_one(
        record_id: str,
        payload: dict = Body(...),
        user: TokenClaims = Depends(require_privilege(write)),
        services: Services = Depends(get_services),
    ) -> Dict[str, Any]:
        updated = await _ctrl(services, user).update(record_id, payload)
        if updated is None:
            raise not_found(label)
        return updated

    @api.delete("/{record_id}")
    async def delete_one(
        record_id: str,
        user: TokenClaims = Depends(require_privilege(remove)),
        services: Services = Depends(get_services),
    ) -> Dict[str, Any]:
        ctrl = _ctrl(services, user)
        if await ctrl.get(record_id) is None:
            raise not_found(label)
        await ctrl.delete(record_id)
        return {"success": True, "id": record_id}

    return api
