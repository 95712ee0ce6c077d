"""
Controllers for orders and their line items.

An order is created together with its lines: each line snapshots the product
name, the buyer's price and the tax rate at checkout, and the order totals
are derived from those snapshots.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from osot.cache.cache_service import CacheService
from osot.controllers.base import EntityController, copy_text, validate_choice
from osot.controllers.products import ProductController
from osot.entities.definitions import ORDER, ORDER_PRODUCT
from osot.entities.enums import AccessModifier, MembershipCategory, OrderStatus, PaymentStatus, Privilege
from osot.error_handler import AppError, ErrorCode
from osot.integrations.contracts.dataverse import AppContext, DataverseClient
from osot.rules import order_rules
from osot.rules.product_rules import can_purchase, price_for_category
from osot.validation import FormValidationError, add_error, raise_if_errors

logger = logging.getLogger(__name__)


def with_flags(order: Dict[str, Any]) -> Dict[str, Any]:
    order["high_value"] = order_rules.is_high_value(order.get("total") or 0)
    return order


class OrderProductController(EntityController):
    definition = ORDER_PRODUCT

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        for field in ("order_id", "product_id", "product_name", "selected_price", "quantity"):
            if data.get(field) in (None, ""):
                add_error(errors, field, f"{field} is required")
        raise_if_errors(errors)
        problems = order_rules.line_errors(data)
        if problems:
            raise FormValidationError(field_errors={"line": "; ".join(problems)}, message="Line item amounts are inconsistent")
        return self.known_fields(data)

    async def update(self, record_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        raise AppError(ErrorCode.BUSINESS_RULE_VIOLATION, "Order lines cannot be changed after the order is placed")

    def apply_defaults(self, clean: Dict[str, Any]) -> Dict[str, Any]:
        return clean

    async def list_for_order(self, order_id: str) -> List[Dict[str, Any]]:
        return await self.list({"order_id": order_id}, order_by="created_on")


class OrderController(EntityController):
    definition = ORDER

    def __init__(
        self,
        dataverse: DataverseClient,
        cache: CacheService,
        app: AppContext = AppContext.MAIN,
    ) -> None:
        super().__init__(dataverse, cache, app)
        self.lines = OrderProductController(dataverse, cache, app)
        self.products = ProductController(dataverse, cache, app)

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        clean: Dict[str, Any] = {}

        if existing is None:
            if not data.get("organization_id"):
                add_error(errors, "organization_id", "organization_id is required")
            if not data.get("account_id") and not data.get("affiliate_id"):
                add_error(errors, "account_id", "An order needs an account or affiliate buyer")
            for field in ("organization_id", "account_id", "affiliate_id"):
                if data.get(field):
                    clean[field] = data[field]
            for field in ("subtotal", "total"):
                try:
                    clean[field] = round(float(data.get(field)), 2)
                except (TypeError, ValueError):
                    add_error(errors, field, f"{field} must be a number")
            validate_choice(data, "order_status", OrderStatus, errors, clean)
            validate_choice(data, "payment_status", PaymentStatus, errors, clean)
            clean.setdefault("order_status", OrderStatus.DRAFT)
            clean.setdefault("payment_status", PaymentStatus.UNPAID)
        else:
            status = validate_choice(data, "order_status", OrderStatus, errors, clean)
            payment = validate_choice(data, "payment_status", PaymentStatus, errors, clean)
            raise_if_errors(errors)
            if status is not None:
                order_rules.assert_order_transition(OrderStatus(existing.get("order_status") or OrderStatus.DRAFT.value), status)
            if payment is not None:
                order_rules.assert_payment_transition(PaymentStatus(existing.get("payment_status") or PaymentStatus.UNPAID.value), payment)
            for field in ("subtotal", "total", "organization_id", "account_id", "affiliate_id"):
                if field in data and data[field] != existing.get(field):
                    add_error(errors, field, f"{field} cannot be changed after the order is placed")

        copy_text(data, ["coupon"], errors, clean, max_length=100)
        if clean.get("coupon"):
            clean["coupon"] = clean["coupon"].upper()
        validate_choice(data, "access_modifiers", AccessModifier, errors, clean)
        validate_choice(data, "privilege", Privilege, errors, clean)
        raise_if_errors(errors)
        return clean

    # ------------------------------------------------------------------ #
    # Checkout
    # ------------------------------------------------------------------ #
    async def build_lines(
        self,
        items: List[Dict[str, Any]],
        membership_category: Optional[MembershipCategory],
        *,
        has_active_membership: bool = False,
        today: Optional[date] = None,
    ) -> List[Dict[str, Any]]:
        """Price each requested item for the buyer's membership category."""
        if not items:
            raise FormValidationError(field_errors={"items": "At least one product is required"})
        today = today or date.today()
        errors: Dict[str, str] = {}
        lines: List[Dict[str, Any]] = []
        for idx, item in enumerate(items):
            key = f"items[{idx}]"
            product_id = item.get("product_id")
            raw_quantity = item.get("quantity")
            try:
                quantity = 1 if raw_quantity is None else int(raw_quantity)
            except (TypeError, ValueError):
                add_error(errors, key, "quantity must be a whole number")
                continue
            if quantity < 1:
                add_error(errors, key, "quantity must be at least 1")
                continue
            product = await self.products.get(product_id) if product_id else None
            if product is None:
                add_error(errors, key, f"Product {product_id} not found")
                continue
            if not can_purchase(product, today, has_active_membership):
                add_error(errors, key, f"{product.get('product_name')} is not available for purchase")
                continue
            inventory = product.get("inventory")
            if inventory is not None and int(product.get("product_category") or 0) == 0 and quantity > int(inventory):
                add_error(errors, key, f"Only {inventory} left of {product.get('product_name')}")
                continue
            price = price_for_category(product, membership_category)
            if price is None:
                add_error(errors, key, f"{product.get('product_name')} has no price for your membership category")
                continue
            rate = float(product.get("taxes") or 0)
            amounts = order_rules.calculate_line(price, quantity, rate)
            line = {
                "product_id": product["id"],
                "product_name": product.get("product_name"),
                "product_category": product.get("product_category"),
                "selected_price": price,
                "product_tax_rate": rate,
                "quantity": quantity,
                "item_subtotal": amounts.item_subtotal,
                "tax_amount": amounts.tax_amount,
                "item_total": amounts.item_total,
                "insurance_type": product.get("insurance_type"),
                "insurance_limit": product.get("insurance_limit"),
            }
            problems = order_rules.line_errors(line)
            if problems:
                add_error(errors, key, "; ".join(problems))
                continue
            lines.append(line)
        raise_if_errors(errors, "Some items cannot be ordered")
        return lines

    async def create_with_items(
        self,
        order_data: Dict[str, Any],
        items: List[Dict[str, Any]],
        membership_category: Optional[MembershipCategory] = None,
        *,
        has_active_membership: bool = False,
    ) -> Dict[str, Any]:
        lines = await self.build_lines(items, membership_category, has_active_membership=has_active_membership)
        totals = order_rules.order_totals(lines)
        order_rules.validate_order_totals(totals["subtotal"], totals["total"], lines)

        order = await self.create({**order_data, **totals})
        created: List[Dict[str, Any]] = []
        try:
            for line in lines:
                created.append(await self.lines.create({**line, "order_id": order["id"]}))
        except Exception:
            logger.error("Line item creation failed for order %s; rolling back", order.get("business_id"), exc_info=True)
            for line in created:
                await self.lines.delete(line["id"])
            await self.delete(order["id"])
            raise

        for line in lines:
            product = await self.products.get(line["product_id"])
            if product:
                await self.products.decrement_inventory(product, line["quantity"])

        order = with_flags(order)
        order["items"] = created
        if order["high_value"]:
            logger.info("High-value order %s placed (total %.2f)", order.get("business_id"), order["total"])
        return order

    async def check_totals(self, order_id: str) -> Dict[str, Any]:
        """Re-verify a stored order against its stored lines."""
        order = await self.get(order_id)
        if order is None:
            raise AppError(ErrorCode.NOT_FOUND, "Order not found")
        lines = await self.lines.list_for_order(order_id)
        order_rules.validate_order_totals(order.get("subtotal") or 0, order.get("total") or 0, lines)
        return {"order_id": order_id, "valid": True, "items": len(lines)}

    async def delete(self, record_id: str) -> bool:
        for line in await self.lines.list_for_order(record_id):
            await self.lines.delete(line["id"])
        return await super().delete(record_id)
