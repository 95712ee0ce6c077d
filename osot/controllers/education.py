"""Controllers for OT and OTA education records."""

from __future__ import annotations

import re
from datetime import date
from typing import Any, Dict, Optional

from osot.cache.cache_service import CachePrefix, CacheService
from osot.controllers.base import EntityController, validate_choice
from osot.entities.definitions import OT_EDUCATION, OTA_EDUCATION
from osot.entities.enums import AccessModifier, AccountGroup, CotoStatus, EducationCategory, Privilege
from osot.error_handler import AppError, ErrorCode
from osot.integrations.contracts.dataverse import AppContext, DataverseClient
from osot.rules.education_rules import coto_registration_required, determine_education_category
from osot.validation import FormValidationError, add_error, raise_if_errors

_COTO_RE = re.compile(r"^\d{8}$")


class _EducationController(EntityController):
    account_group: AccountGroup
    institution_field: str

    def __init__(
        self,
        dataverse: DataverseClient,
        cache: CacheService,
        app: AppContext = AppContext.MAIN,
        membership_expires: Optional[date] = None,
    ) -> None:
        super().__init__(dataverse, cache, app)
        self.membership_expires = membership_expires

    def ensure_group(self, account_group: Any) -> None:
        """OT education is only for OT accounts, OTA education for OTA accounts."""
        if account_group is None or int(account_group) != int(self.account_group):
            raise AppError(
                ErrorCode.BUSINESS_RULE_VIOLATION,
                f"{self.definition.name} records are only allowed for {self.account_group.name} accounts",
            )

    def _required(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]]) -> Dict[str, str]:
        missing: Dict[str, str] = {}
        if existing is not None:
            return missing
        for field in ("degree_type", self.institution_field, "graduation_year", "country"):
            if data.get(field) in (None, ""):
                missing[field] = f"{field} is required"
        return missing

    def _graduation_year(self, data: Dict[str, Any], errors: Dict[str, str], clean: Dict[str, Any]) -> Optional[int]:
        if data.get("graduation_year") in (None, ""):
            return None
        try:
            year = int(data["graduation_year"])
        except (TypeError, ValueError):
            add_error(errors, "graduation_year", "graduation_year must be a year")
            return None
        if year < 1900 or year > date.today().year + 10:
            add_error(errors, "graduation_year", "graduation_year is out of range")
            return None
        clean["graduation_year"] = year
        return year

    def _category(self, data: Dict[str, Any], year: Optional[int], clean: Dict[str, Any]) -> None:
        if data.get("education_category") not in (None, ""):
            try:
                clean["education_category"] = EducationCategory(int(data["education_category"]))
            except (TypeError, ValueError):
                raise AppError(
                    ErrorCode.INVALID_EDUCATION_CATEGORY,
                    f"Unknown education category: {data['education_category']}",
                )
        elif year is not None:
            clean["education_category"] = determine_education_category(year, self.membership_expires)

    def _finish(self, data: Dict[str, Any], errors: Dict[str, str], clean: Dict[str, Any], missing: Dict[str, str]) -> Dict[str, Any]:
        if missing:
            raise FormValidationError(
                field_errors={**missing, **errors},
                message="Education information is incomplete",
                code=ErrorCode.EDUCATION_DATA_INCOMPLETE,
            )
        for field in ("degree_type", self.institution_field, "country"):
            if field in data and data[field] not in (None, ""):
                clean[field] = data[field]
        if data.get("account_id"):
            clean["account_id"] = data["account_id"]
        if data.get("user_business_id"):
            clean["user_business_id"] = str(data["user_business_id"])
        validate_choice(data, "access_modifiers", AccessModifier, errors, clean)
        validate_choice(data, "privilege", Privilege, errors, clean)
        raise_if_errors(errors)
        return clean

    async def get_for_user(self, user_guid: str) -> Optional[Dict[str, Any]]:
        rows = await self.list_for_user(user_guid)
        return rows[0] if rows else None


class OtEducationController(_EducationController):
    definition = OT_EDUCATION
    user_prefix = CachePrefix.EDUCATION_OT
    account_group = AccountGroup.OT
    institution_field = "university"

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        clean: Dict[str, Any] = {}
        missing = self._required(data, existing)

        status = validate_choice(data, "coto_status", CotoStatus, errors, clean)
        if status is None and existing is None and "coto_status" not in errors:
            missing["coto_status"] = "coto_status is required"
        if status is None and existing is not None and existing.get("coto_status") is not None:
            status = CotoStatus(int(existing["coto_status"]))

        registration = str(data.get("coto_registration") or "").strip()
        if registration:
            if not _COTO_RE.match(registration):
                add_error(errors, "coto_registration", "COTO registration must be exactly 8 digits")
            else:
                clean["coto_registration"] = registration
        elif status is not None and coto_registration_required(status):
            if not (existing or {}).get("coto_registration") or "coto_registration" in data:
                missing["coto_registration"] = f"COTO registration is required for status {status.name}"

        year = self._graduation_year(data, errors, clean)
        self._category(data, year, clean)
        return self._finish(data, errors, clean, missing)


class OtaEducationController(_EducationController):
    definition = OTA_EDUCATION
    user_prefix = CachePrefix.EDUCATION_OTA
    account_group = AccountGroup.OTA
    institution_field = "college"

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        clean: Dict[str, Any] = {}
        missing = self._required(data, existing)

        if existing is None and data.get("work_declaration") is not True:
            add_error(errors, "work_declaration", "You must accept the work declaration")
        if "work_declaration" in data:
            clean["work_declaration"] = bool(data["work_declaration"])

        year = self._graduation_year(data, errors, clean)
        self._category(data, year, clean)
        return self._finish(data, errors, clean, missing)


def controller_for_group(account_group: Any):
    """Education controller class matching an account group, or None."""
    if account_group is None:
        return None
    group = int(account_group)
    if group == AccountGroup.OT:
        return OtEducationController
    if group == AccountGroup.OTA:
        return OtaEducationController
    return None
