"""
Order and order-line rules.

Line items are priced snapshots: once written they are never recalculated,
only checked. All money comparisons use a one-cent tolerance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from osot.entities.enums import OrderStatus, PaymentStatus, Privilege
from osot.error_handler import AppError, ErrorCode

TOLERANCE = 0.01
HIGH_VALUE_THRESHOLD = 5000.0
MAX_SAFE_QUANTITY = 100

ORDER_TRANSITIONS = {
    OrderStatus.DRAFT: {OrderStatus.SUBMITTED, OrderStatus.CANCELLED},
    OrderStatus.SUBMITTED: {OrderStatus.PENDING_APPROVAL, OrderStatus.APPROVED, OrderStatus.CANCELLED},
    OrderStatus.PENDING_APPROVAL: {OrderStatus.APPROVED, OrderStatus.CANCELLED},
    OrderStatus.APPROVED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.UNPAID: {PaymentStatus.PENDING},
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.UNPAID},
    PaymentStatus.PAID: {PaymentStatus.PARTIALLY_REFUNDED, PaymentStatus.FULLY_REFUNDED},
    PaymentStatus.PARTIALLY_REFUNDED: {PaymentStatus.FULLY_REFUNDED},
    PaymentStatus.FULLY_REFUNDED: set(),
}

TERMINAL_ORDER_STATUSES = {s for s, targets in ORDER_TRANSITIONS.items() if not targets}


def _money(value: float) -> float:
    return round(float(value), 2)


def within_tolerance(a: float, b: float, tolerance: float = TOLERANCE) -> bool:
    # Small epsilon so that exactly one cent of drift still passes.
    return abs(float(a) - float(b)) <= tolerance + 1e-9


# ---------------------------------------------------------------------- #
# Line arithmetic
# ---------------------------------------------------------------------- #
@dataclass
class LineAmounts:
    item_subtotal: float
    tax_amount: float
    item_total: float


def calculate_line(selected_price: float, quantity: int, tax_rate: float) -> LineAmounts:
    subtotal = _money(selected_price * quantity)
    tax = _money(subtotal * tax_rate / 100)
    return LineAmounts(item_subtotal=subtotal, tax_amount=tax, item_total=_money(subtotal + tax))


def line_errors(line: Dict[str, Any]) -> List[str]:
    """Arithmetic problems in one stored line item (empty when consistent)."""
    errors: List[str] = []
    price = float(line.get("selected_price") or 0)
    qty = int(line.get("quantity") or 0)
    rate = float(line.get("product_tax_rate") or 0)
    if price < 0:
        errors.append("selected_price cannot be negative")
    if qty < 1:
        errors.append("quantity must be at least 1")
    elif qty > MAX_SAFE_QUANTITY:
        errors.append(f"quantity cannot exceed {MAX_SAFE_QUANTITY}")
    if rate < 0 or rate > 100:
        errors.append("product_tax_rate must be between 0 and 100")

    subtotal = float(line.get("item_subtotal") or 0)
    tax = float(line.get("tax_amount") or 0)
    total = float(line.get("item_total") or 0)
    if not within_tolerance(subtotal, price * qty):
        errors.append("item_subtotal must equal selected_price x quantity")
    if not within_tolerance(tax, subtotal * rate / 100):
        errors.append("tax_amount must equal item_subtotal x tax rate")
    if not within_tolerance(total, subtotal + tax):
        errors.append("item_total must equal item_subtotal + tax_amount")
    return errors


# ---------------------------------------------------------------------- #
# Order totals
# ---------------------------------------------------------------------- #
def order_totals(lines: Iterable[Dict[str, Any]]) -> Dict[str, float]:
    lines = list(lines)
    return {
        "subtotal": _money(sum(float(l.get("item_subtotal") or 0) for l in lines)),
        "total": _money(sum(float(l.get("item_total") or 0) for l in lines)),
    }


def validate_order_totals(subtotal: float, total: float, lines: Iterable[Dict[str, Any]]) -> None:
    """Raise ORDER_TOTAL_MISMATCH unless the order adds up.

    Requires at least one line with positive quantity, the sum of line
    totals within a cent of `total`, and `subtotal <= total`.
    """
    lines = list(lines)
    if not lines or sum(int(l.get("quantity") or 0) for l in lines) <= 0:
        raise AppError(ErrorCode.ORDER_TOTAL_MISMATCH, "An order needs at least one item")
    line_sum = sum(float(l.get("item_total") or 0) for l in lines)
    if not within_tolerance(line_sum, total):
        raise AppError(
            ErrorCode.ORDER_TOTAL_MISMATCH,
            f"Order total {total:.2f} does not match the sum of its items {line_sum:.2f}",
            context={"total": total, "line_sum": round(line_sum, 2)},
        )
    if float(subtotal) > float(total) + 1e-9:
        raise AppError(ErrorCode.ORDER_TOTAL_MISMATCH, "Order subtotal cannot exceed the total")


def is_high_value(total: float) -> bool:
    return float(total or 0) > HIGH_VALUE_THRESHOLD


# ---------------------------------------------------------------------- #
# Status transitions
# ---------------------------------------------------------------------- #
def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS.get(current, set())


def assert_order_transition(current: OrderStatus, target: OrderStatus) -> None:
    if current == target:
        return
    if not can_transition(current, target):
        raise AppError(
            ErrorCode.INVALID_STATE_TRANSITION,
            f"Order cannot move from {current.value} to {target.value}",
        )


def assert_payment_transition(current: PaymentStatus, target: PaymentStatus) -> None:
    if current == target:
        return
    if target not in PAYMENT_TRANSITIONS.get(current, set()):
        raise AppError(
            ErrorCode.INVALID_STATE_TRANSITION,
            f"Payment cannot move from {current.value} to {target.value}",
        )


# ---------------------------------------------------------------------- #
# Permissions
# ---------------------------------------------------------------------- #
def can_create_for(privilege: Privilege, caller_id: str, buyer_account_id: Optional[str]) -> bool:
    if privilege >= Privilege.ADMIN:
        return True
    return bool(buyer_account_id) and buyer_account_id == caller_id


def can_read(privilege: Privilege, caller_id: str, order: Dict[str, Any]) -> bool:
    if privilege >= Privilege.ADMIN:
        return True
    return caller_id in {order.get("account_id"), order.get("affiliate_id")}


def can_update(privilege: Privilege, order: Dict[str, Any]) -> bool:
    if privilege < Privilege.ADMIN:
        return False
    if order.get("payment_status") == PaymentStatus.PAID.value:
        return False
    return OrderStatus(order.get("order_status") or OrderStatus.DRAFT.value) not in TERMINAL_ORDER_STATUSES


def can_delete(privilege: Privilege) -> bool:
    return privilege == Privilege.MAIN


def same_organization(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.strip().lower() == b.strip().lower()
