from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field

from osot.api.dependencies import Services, app_context_for, get_current_user, get_services, require_privilege
from osot.api.endpoints.common import not_found
from osot.auth.tokens import TokenClaims
from osot.controllers.accounts import AccountController
from osot.controllers.affiliates import AffiliateController
from osot.controllers.membership import MembershipCategoryController
from osot.controllers.orders import OrderController, with_flags
from osot.entities.enums import MembershipCategory, Privilege, UserType
from osot.error_handler import AppError, ErrorCode
from osot.rules import order_rules

orders_api = APIRouter()


class OrderItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)


class CreateOrderRequest(BaseModel):
    items: List[OrderItemRequest] = Field(..., min_length=1)
    account_id: Optional[str] = None
    affiliate_id: Optional[str] = None
    organization_id: Optional[str] = None
    coupon: Optional[str] = None


def _orders(services: Services, user: TokenClaims) -> OrderController:
    return OrderController(services.dataverse, services.cache, app_context_for(user))


def _check_organization(user: TokenClaims, organization_id: Optional[str]) -> None:
    if user.privilege_level >= Privilege.MAIN:
        return
    if not order_rules.same_organization(user.organization_id, organization_id):
        raise AppError(ErrorCode.FORBIDDEN, "This order belongs to another organization")


async def _readable(services: Services, user: TokenClaims, order_id: str) -> Dict[str, Any]:
    order = await _orders(services, user).get(order_id)
    if order is None:
        raise not_found("Order")
    if not order_rules.can_read(user.privilege_level, user.user_guid, order):
        raise AppError(ErrorCode.FORBIDDEN)
    if user.privilege_level == Privilege.ADMIN:
        _check_organization(user, order.get("organization_id"))
    return with_flags(order)


async def _buyer_pricing(services: Services, account_id: Optional[str]):
    """Membership category and active-member flag used to price the order."""
    if not account_id:
        return None, False
    account = await AccountController(services.dataverse, services.cache).get(account_id)
    if account is None:
        raise AppError(ErrorCode.ACCOUNT_NOT_FOUND)
    membership = await MembershipCategoryController(services.dataverse, services.cache).get_for_year(
        account_id, str(date.today().year)
    )
    category = None
    if membership and membership.get("membership_category") is not None:
        category = MembershipCategory(int(membership["membership_category"]))
    return category, bool(account.get("active_member"))


async def _affiliate_pricing(services: Services, affiliate_id: str):
    """Affiliates buy at general prices; only their active flag matters."""
    affiliate = await AffiliateController(services.dataverse, services.cache).get(affiliate_id)
    if affiliate is None:
        raise not_found("Affiliate")
    return None, bool(affiliate.get("active_member"))


@orders_api.post("", status_code=201)
async def create_order(
    request: CreateOrderRequest,
    user: TokenClaims = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    buyer = request.account_id
    affiliate_id = request.affiliate_id
    if user.user_type == UserType.AFFILIATE.value:
        if buyer or (affiliate_id and affiliate_id != user.user_guid):
            raise AppError(ErrorCode.INSUFFICIENT_PRIVILEGE, "You can only place orders for yourself")
        affiliate_id = user.user_guid
    else:
        if not buyer and not affiliate_id:
            buyer = user.user_guid
        if not order_rules.can_create_for(user.privilege_level, user.user_guid, buyer):
            raise AppError(ErrorCode.INSUFFICIENT_PRIVILEGE, "You can only place orders for yourself")

    organization_id = request.organization_id or user.organization_id
    _check_organization(user, organization_id)

    if buyer or not affiliate_id:
        category, active = await _buyer_pricing(services, buyer)
    else:
        category, active = await _affiliate_pricing(services, affiliate_id)
    order_data: Dict[str, Any] = {
        "organization_id": organization_id,
        "account_id": buyer,
        "affiliate_id": affiliate_id,
        "coupon": request.coupon,
    }
    items = [item.model_dump() for item in request.items]
    return await _orders(services, user).create_with_items(
        {k: v for k, v in order_data.items() if v is not None},
        items,
        category,
        has_active_membership=active,
    )


@orders_api.get("")
async def list_orders(
    top: int = Query(default=50, ge=1, le=500),
    skip: int = Query(default=0, ge=0),
    user: TokenClaims = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    filters: Dict[str, Any] = {}
    if user.privilege_level < Privilege.ADMIN:
        owner_field = "affiliate_id" if user.user_type == UserType.AFFILIATE.value else "account_id"
        filters[owner_field] = user.user_guid
    elif user.privilege_level == Privilege.ADMIN and user.organization_id:
        filters["organization_id"] = user.organization_id
    rows = await _orders(services, user).list(filters, order_by="created_on", descending=True, top=top, skip=skip)
    return [with_flags(row) for row in rows]


@orders_api.get("/{order_id}")
async def get_order(
    order_id: str,
    user: TokenClaims = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await _readable(services, user, order_id)


@orders_api.get("/{order_id}/products")
async def get_order_products(
    order_id: str,
    user: TokenClaims = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    await _readable(services, user, order_id)
    return await _orders(services, user).lines.list_for_order(order_id)


@orders_api.get("/{order_id}/verify")
async def verify_order_totals(
    order_id: str,
    user: TokenClaims = Depends(require_privilege(Privilege.ADMIN)),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    await _readable(services, user, order_id)
    return await _orders(services, user).check_totals(order_id)


@orders_api.patch("/{order_id}")
async def update_order(
    order_id: str,
    payload: dict = Body(...),
    user: TokenClaims = Depends(require_privilege(Privilege.ADMIN)),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    order = await _readable(services, user, order_id)
    if not order_rules.can_update(user.privilege_level, order):
        raise AppError(ErrorCode.BUSINESS_RULE_VIOLATION, "Paid or closed orders cannot be changed")
    updated = await _orders(services, user).update(order_id, payload)
    if updated is None:
        raise not_found("Order")
    return with_flags(updated)


@orders_api.delete("/{order_id}")
async def delete_order(
    order_id: str,
    user: TokenClaims = Depends(require_privilege(Privilege.MAIN)),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    await _readable(services, user, order_id)
    await _orders(services, user).delete(order_id)
    return {"success": True, "id": order_id}
