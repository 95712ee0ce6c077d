"""Controllers for the product catalogue and insurance providers."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from osot.controllers.base import EntityController, copy_flags, copy_text, validate_choice
from osot.entities.definitions import INSURANCE_PROVIDER, PRODUCT
from osot.entities.enums import AccessModifier, Privilege, ProductCategory, ProductStatus
from osot.error_handler import AppError, ErrorCode
from osot.rules.product_rules import PRICE_FIELDS, assert_status_transition, has_any_price, is_in_date_window
from osot.utils.url_sanitizer import UrlValidationError, sanitize_url
from osot.validation import add_error, raise_if_errors, require_str, validate_date_iso

logger = logging.getLogger(__name__)


def _non_negative(data: Dict[str, Any], field: str, errors: Dict[str, str], clean: Dict[str, Any], *, integer: bool = False) -> None:
    if field not in data:
        return
    value = data[field]
    if value is None or value == "":
        clean[field] = None
        return
    try:
        number = int(value) if integer else round(float(value), 2)
    except (TypeError, ValueError):
        add_error(errors, field, f"{field} must be a number")
        return
    if number < 0:
        add_error(errors, field, f"{field} cannot be negative")
        return
    clean[field] = number


def _url(data: Dict[str, Any], field: str, errors: Dict[str, str], clean: Dict[str, Any]) -> None:
    if field not in data:
        return
    if not data[field]:
        clean[field] = ""
        return
    try:
        clean[field] = sanitize_url(data[field])
    except UrlValidationError as e:
        add_error(errors, field, str(e))


class ProductController(EntityController):
    definition = PRODUCT

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        clean: Dict[str, Any] = {}
        creating = existing is None

        for field, label in (("product_name", "Product name"), ("product_code", "Product code")):
            if creating or field in data:
                clean[field] = require_str(data, field, errors, label=label)
        if clean.get("product_code"):
            clean["product_code"] = clean["product_code"].upper()
        copy_text(data, ["product_description", "post_purchase_info", "insurance_type"], errors, clean, max_length=4000)
        copy_text(data, ["product_gl_code", "product_year"], errors, clean)
        _url(data, "product_picture", errors, clean)

        validate_choice(data, "product_category", ProductCategory, errors, clean, required=creating)
        status = validate_choice(data, "product_status", ProductStatus, errors, clean)

        for field in PRICE_FIELDS + ("shipping", "taxes", "insurance_limit"):
            _non_negative(data, field, errors, clean)
        _non_negative(data, "inventory", errors, clean, integer=True)
        if clean.get("taxes") is not None and clean["taxes"] > 100:
            add_error(errors, "taxes", "taxes is a percentage between 0 and 100")

        for field in ("start_date", "end_date"):
            if data.get(field):
                clean[field] = validate_date_iso(data[field], errors, field)
        start = clean.get("start_date") or (existing or {}).get("start_date")
        end = clean.get("end_date") or (existing or {}).get("end_date")
        if start and end and "end_date" not in errors and str(end)[:10] < str(start)[:10]:
            add_error(errors, "end_date", "end_date cannot be before start_date")

        copy_flags(data, ["active_membership_only"], errors, clean)
        validate_choice(data, "access_modifiers", AccessModifier, errors, clean)
        validate_choice(data, "privilege", Privilege, errors, clean)
        raise_if_errors(errors)

        if creating:
            status = status if status is not None else ProductStatus.DRAFT
            clean["product_status"] = status
        elif status is not None:
            current = existing.get("product_status")
            assert_status_transition(ProductStatus.DRAFT if current is None else ProductStatus(int(current)), status)

        merged = {**(existing or {}), **clean}
        if status == ProductStatus.AVAILABLE and not has_any_price(merged):
            raise AppError(ErrorCode.BUSINESS_RULE_VIOLATION, "An available product needs at least one price")

        if clean.get("product_code"):
            match = await self.find_one(product_code=clean["product_code"])
            if match and match["id"] != (existing or {}).get("id"):
                raise AppError(ErrorCode.CONFLICT, f"Product code {clean['product_code']} is already in use")
        return clean

    async def find_by_code(self, code: str) -> Optional[Dict[str, Any]]:
        return await self.find_one(product_code=(code or "").strip().upper())

    async def list_public(self, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """Available, public products whose sale window includes today."""
        today = today or date.today()
        rows = await self.list(
            {"product_status": ProductStatus.AVAILABLE, "access_modifiers": AccessModifier.PUBLIC},
            order_by="product_name",
        )
        return [p for p in rows if is_in_date_window(p, today)]

    async def decrement_inventory(self, product: Dict[str, Any], quantity: int) -> None:
        if product.get("inventory") is None or int(product.get("product_category") or 0) != ProductCategory.GENERAL:
            return
        remaining = int(product["inventory"]) - int(quantity)
        if remaining < 0:
            raise AppError(ErrorCode.BUSINESS_RULE_VIOLATION, f"Not enough stock for {product.get('product_name')}")
        data: Dict[str, Any] = {"inventory": remaining}
        if remaining == 0 and product.get("product_status") == ProductStatus.AVAILABLE:
            data["product_status"] = ProductStatus.OUT_OF_STOCK
        await self.update(product["id"], data)


class InsuranceProviderController(EntityController):
    definition = INSURANCE_PROVIDER

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        clean: Dict[str, Any] = {}
        creating = existing is None

        for field, label in (("insurance_company_name", "Company name"), ("insurance_broker_name", "Broker name")):
            if creating or field in data:
                clean[field] = require_str(data, field, errors, label=label)
        _url(data, "insurance_company_logo", errors, clean)
        _url(data, "insurance_broker_logo", errors, clean)
        copy_text(
            data,
            [
                "master_policy_description",
                "insurance_authorized_representative",
                "certificate_observations",
                "broker_general_information",
            ],
            errors,
            clean,
            max_length=4000,
        )
        for field in ("policy_period_start", "policy_period_end"):
            if creating or field in data:
                clean[field] = validate_date_iso(data.get(field), errors, field)
        start = clean.get("policy_period_start") or (existing or {}).get("policy_period_start")
        end = clean.get("policy_period_end") or (existing or {}).get("policy_period_end")
        if start and end and "policy_period_end" not in errors and str(end)[:10] <= str(start)[:10]:
            add_error(errors, "policy_period_end", "The policy period must end after it starts")
        if data.get("organization_id"):
            clean["organization_id"] = data["organization_id"]
        validate_choice(data, "access_modifiers", AccessModifier, errors, clean)
        validate_choice(data, "privilege", Privilege, errors, clean)
        raise_if_errors(errors)
        return clean

    async def list_public(self) -> List[Dict[str, Any]]:
        return await self.list({"access_modifiers": AccessModifier.PUBLIC}, order_by="insurance_company_name")
