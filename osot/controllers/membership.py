"""Controllers for yearly membership records and membership settings."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from osot.cache.cache_service import CachePrefix
from osot.controllers.base import (
    EntityController,
    copy_flags,
    validate_choice,
    validate_choice_list,
)
from osot.entities.definitions import (
    MEMBERSHIP_CATEGORY,
    MEMBERSHIP_EMPLOYMENT,
    MEMBERSHIP_PRACTICES,
    MEMBERSHIP_PREFERENCES,
    MEMBERSHIP_SETTINGS,
)
from osot.entities.enums import (
    AccessModifier,
    AccountGroup,
    EmploymentStatus,
    MembershipCategory,
    MembershipYearStatus,
    Privilege,
)
from osot.error_handler import AppError, ErrorCode
from osot.validation import add_error, raise_if_errors, validate_date_iso

logger = logging.getLogger(__name__)


def _membership_year(data: Dict[str, Any], errors: Dict[str, str], clean: Dict[str, Any], *, required: bool) -> Optional[str]:
    raw = str(data.get("membership_year") or "").strip()
    if not raw:
        if required:
            add_error(errors, "membership_year", "membership_year is required")
        return None
    if not (raw.isdigit() and len(raw) == 4):
        add_error(errors, "membership_year", "membership_year must be a 4-digit year")
        return None
    clean["membership_year"] = raw
    return raw


def _ownership(data: Dict[str, Any], errors: Dict[str, str], clean: Dict[str, Any]) -> None:
    if data.get("account_id"):
        clean["account_id"] = data["account_id"]
    if data.get("user_business_id"):
        clean["user_business_id"] = str(data["user_business_id"])
    validate_choice(data, "access_modifiers", AccessModifier, errors, clean)
    validate_choice(data, "privilege", Privilege, errors, clean)


class _YearlyController(EntityController):
    """Membership records limited to one per account per membership year."""

    async def ensure_one_per_year(self, clean: Dict[str, Any], existing: Optional[Dict[str, Any]]) -> None:
        account_id = clean.get("account_id") or (existing or {}).get("account_id")
        year = clean.get("membership_year")
        if not account_id or not year:
            return
        match = await self.find_one(account_id=account_id, membership_year=year)
        if match and match["id"] != (existing or {}).get("id"):
            raise AppError(
                ErrorCode.CONFLICT,
                f"A {self.definition.name.replace('_', ' ')} record already exists for {year}",
            )

    async def get_for_year(self, account_id: str, year: str) -> Optional[Dict[str, Any]]:
        return await self.find_one(account_id=account_id, membership_year=str(year))


class MembershipCategoryController(_YearlyController):
    definition = MEMBERSHIP_CATEGORY

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        clean: Dict[str, Any] = {}
        creating = existing is None

        _membership_year(data, errors, clean, required=creating)
        validate_choice(data, "membership_category", MembershipCategory, errors, clean, required=creating)
        validate_choice(data, "users_group", AccountGroup, errors, clean)
        for field in ("parental_leave_from", "parental_leave_to", "parental_leave_expected", "retirement_start"):
            if data.get(field):
                clean[field] = validate_date_iso(data[field], errors, field)
        if clean.get("parental_leave_from") and clean.get("parental_leave_to"):
            if clean["parental_leave_to"] < clean["parental_leave_from"]:
                add_error(errors, "parental_leave_to", "Parental leave cannot end before it starts")
        _ownership(data, errors, clean)
        raise_if_errors(errors)

        await self.ensure_one_per_year(clean, existing)
        return clean


class MembershipEmploymentController(_YearlyController):
    definition = MEMBERSHIP_EMPLOYMENT

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        clean: Dict[str, Any] = {}
        creating = existing is None

        _membership_year(data, errors, clean, required=creating)
        validate_choice(data, "employment_status", EmploymentStatus, errors, clean, required=creating)
        for field in ("role_descriptor", "practice_years", "work_hours"):
            if data.get(field) not in (None, ""):
                try:
                    clean[field] = int(data[field])
                except (TypeError, ValueError):
                    add_error(errors, field, f"{field} must be a number")
        for field in ("position_funding", "employment_benefits"):
            if field in data:
                validate_choice_list(data, field, None, errors, clean)
        copy_flags(data, ["another_employment"], errors, clean)
        _ownership(data, errors, clean)
        raise_if_errors(errors)

        await self.ensure_one_per_year(clean, existing)
        return clean


class MembershipPracticesController(_YearlyController):
    definition = MEMBERSHIP_PRACTICES

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        clean: Dict[str, Any] = {}
        creating = existing is None

        _membership_year(data, errors, clean, required=creating)
        if creating or "clients_age" in data:
            validate_choice_list(data, "clients_age", None, errors, clean, required=True)
        for field in ("practice_area", "practice_settings", "practice_services"):
            if field in data:
                validate_choice_list(data, field, None, errors, clean)
        copy_flags(data, ["preceptor_declaration"], errors, clean)
        _ownership(data, errors, clean)
        raise_if_errors(errors)

        await self.ensure_one_per_year(clean, existing)
        return clean


PREFERENCE_FLAGS = ("auto_renewal", "third_parties", "practice_promotion", "search_tools", "psychotherapy_supervision")


class MembershipPreferencesController(_YearlyController):
    definition = MEMBERSHIP_PREFERENCES

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        clean: Dict[str, Any] = {}
        _membership_year(data, errors, clean, required=existing is None)
        copy_flags(data, PREFERENCE_FLAGS, errors, clean)
        _ownership(data, errors, clean)
        raise_if_errors(errors)

        await self.ensure_one_per_year(clean, existing)
        return clean


class MembershipSettingsController(EntityController):
    definition = MEMBERSHIP_SETTINGS

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        clean: Dict[str, Any] = {}
        creating = existing is None

        _membership_year(data, errors, clean, required=creating)
        validate_choice(data, "membership_year_status", MembershipYearStatus, errors, clean, required=creating)
        validate_choice(data, "membership_group", AccountGroup, errors, clean, required=creating)
        for field in ("year_starts", "year_ends"):
            if creating or field in data:
                clean[field] = validate_date_iso(data.get(field), errors, field)
        starts = clean.get("year_starts") or (existing or {}).get("year_starts")
        ends = clean.get("year_ends") or (existing or {}).get("year_ends")
        if starts and ends and "year_ends" not in errors and str(ends)[:10] <= str(starts)[:10]:
            add_error(errors, "year_ends", "year_ends must be after year_starts")
        if data.get("organization_id"):
            clean["organization_id"] = data["organization_id"]
        validate_choice(data, "access_modifiers", AccessModifier, errors, clean)
        validate_choice(data, "privilege", Privilege, errors, clean)
        raise_if_errors(errors)

        group = clean.get("membership_group", (existing or {}).get("membership_group"))
        year = clean.get("membership_year", (existing or {}).get("membership_year"))
        if group is not None and year:
            match = await self.find_one(membership_group=group, membership_year=year)
            if match and match["id"] != (existing or {}).get("id"):
                raise AppError(ErrorCode.CONFLICT, f"Settings for {year} already exist for this group")
        return clean

    async def get_active_settings(self, group: Optional[AccountGroup] = None) -> List[Dict[str, Any]]:
        filters: Dict[str, Any] = {"membership_year_status": MembershipYearStatus.ACTIVE}
        if group is not None:
            filters["membership_group"] = group
        return await self.list(filters, order_by="year_starts", descending=True)

    async def get_membership_expiration(self, user_guid: str, group: Optional[AccountGroup] = None) -> Optional[date]:
        """End date of the active membership year, cached per user."""
        cached = self.cache.get_user_data(CachePrefix.MEMBERSHIP_EXPIRATION, user_guid)
        if cached:
            return date.fromisoformat(cached)
        active = await self.get_active_settings(group)
        if not active and group is not None:
            active = await self.get_active_settings()
        if not active or not active[0].get("year_ends"):
            return None
        expires = date.fromisoformat(str(active[0]["year_ends"])[:10])
        self.cache.set_user_data(CachePrefix.MEMBERSHIP_EXPIRATION, user_guid, expires.isoformat())
        return expires
