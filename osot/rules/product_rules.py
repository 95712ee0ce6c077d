"""Product lifecycle, pricing and purchase eligibility."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

from osot.entities.definitions import CATEGORY_PRICE_FIELDS
from osot.entities.enums import MembershipCategory, ProductStatus
from osot.error_handler import AppError, ErrorCode

PRODUCT_TRANSITIONS = {
    ProductStatus.DRAFT: {ProductStatus.AVAILABLE, ProductStatus.UNAVAILABLE, ProductStatus.DISCONTINUED},
    ProductStatus.AVAILABLE: {ProductStatus.UNAVAILABLE, ProductStatus.DISCONTINUED, ProductStatus.OUT_OF_STOCK},
    ProductStatus.UNAVAILABLE: {ProductStatus.AVAILABLE, ProductStatus.DISCONTINUED, ProductStatus.OUT_OF_STOCK},
    ProductStatus.OUT_OF_STOCK: {ProductStatus.AVAILABLE, ProductStatus.UNAVAILABLE, ProductStatus.DISCONTINUED},
    ProductStatus.DISCONTINUED: set(),
}

PRICE_FIELDS = ("general_price",) + CATEGORY_PRICE_FIELDS


def assert_status_transition(current: ProductStatus, target: ProductStatus) -> None:
    if current == target:
        return
    if target not in PRODUCT_TRANSITIONS.get(current, set()):
        raise AppError(
            ErrorCode.INVALID_STATE_TRANSITION,
            f"Product cannot move from {current.name} to {target.name}",
        )


def has_any_price(product: Dict[str, Any]) -> bool:
    return any(product.get(f) is not None for f in PRICE_FIELDS)


def category_price_field(category: MembershipCategory) -> str:
    # CATEGORY_PRICE_FIELDS follows the MembershipCategory value order.
    return CATEGORY_PRICE_FIELDS[int(category)]


def price_for_category(product: Dict[str, Any], category: Optional[MembershipCategory]) -> Optional[float]:
    if category is not None:
        price = product.get(category_price_field(MembershipCategory(category)))
        if price is not None:
            return float(price)
    general = product.get("general_price")
    return float(general) if general is not None else None


def _as_date(value: Any) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def is_in_date_window(product: Dict[str, Any], today: date) -> bool:
    start = _as_date(product.get("start_date"))
    end = _as_date(product.get("end_date"))
    if start and today < start:
        return False
    if end and today > end:
        return False
    return True


def can_purchase(product: Dict[str, Any], today: date, has_active_membership: bool) -> bool:
    if product.get("product_status") != ProductStatus.AVAILABLE:
        return False
    if not is_in_date_window(product, today):
        return False
    if product.get("active_membership_only") and not has_active_membership:
        return False
    inventory = product.get("inventory")
    if inventory is not None and int(inventory) <= 0 and int(product.get("product_category") or 0) == 0:
        return False
    return has_any_price(product)
