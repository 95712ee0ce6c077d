"""Controller for OSOT account records."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from osot.auth.passwords import hash_password
from osot.cache.cache_service import CachePrefix
from osot.controllers.base import EntityController, validate_choice
from osot.entities.definitions import ACCOUNT
from osot.entities.enums import AccessModifier, AccountGroup, AccountStatus, Privilege
from osot.error_handler import AppError, ErrorCode
from osot.utils.masking import mask_email
from osot.utils.password_policy import PersonalInfo, validate_password
from osot.validation import (
    add_error,
    raise_if_errors,
    validate_date_iso,
    validate_email,
    validate_person_name,
    validate_phone,
)

logger = logging.getLogger(__name__)

# Fields an OWNER may never set on their own records, with their defaults.
PRIVILEGED_FIELDS = {
    "privilege": (Privilege, Privilege.OWNER),
    "access_modifiers": (AccessModifier, AccessModifier.PRIVATE),
}


def enforce_privileged_fields(data: Dict[str, Any], caller_privilege: Privilege) -> Dict[str, Any]:
    """Only ADMIN and MAIN may set privilege or visibility to a non-default value.

    Returns the parsed values of whichever privileged fields are present.
    """
    errors: Dict[str, str] = {}
    parsed: Dict[str, Any] = {}
    for name, (enum_cls, _) in PRIVILEGED_FIELDS.items():
        validate_choice(data, name, enum_cls, errors, parsed)
    raise_if_errors(errors)
    if caller_privilege >= Privilege.ADMIN:
        return parsed
    for name, (_, default) in PRIVILEGED_FIELDS.items():
        if name in parsed and parsed[name] != default:
            raise AppError(
                ErrorCode.INSUFFICIENT_PRIVILEGE,
                f"Only administrators can change {name}",
            )
    return parsed


class AccountController(EntityController):
    definition = ACCOUNT
    user_prefix = CachePrefix.ACCOUNT_PROFILE

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        clean: Dict[str, Any] = {}
        creating = existing is None

        for field, label in (("first_name", "First name"), ("last_name", "Last name")):
            if creating or field in data:
                clean[field] = validate_person_name(data.get(field), errors, field, label=label)

        if creating:
            clean["date_of_birth"] = validate_date_iso(data.get("date_of_birth"), errors, "date_of_birth", not_future=True)

        if creating or "email" in data:
            clean["email"] = validate_email(data.get("email"), errors, "email")
        if creating or "mobile_phone" in data:
            clean["mobile_phone"] = validate_phone(data.get("mobile_phone"), errors, "mobile_phone")

        validate_choice(data, "account_group", AccountGroup, errors, clean, required=creating)
        validate_choice(data, "account_status", AccountStatus, errors, clean)
        validate_choice(data, "access_modifiers", AccessModifier, errors, clean)
        validate_choice(data, "privilege", Privilege, errors, clean)

        if creating:
            if data.get("account_declaration") is not True:
                add_error(errors, "account_declaration", "You must accept the account declaration")
            clean["account_declaration"] = True
        if "active_member" in data:
            clean["active_member"] = bool(data["active_member"])
        if "organization_id" in data:
            clean["organization_id"] = data.get("organization_id")

        if creating or "password" in data:
            password = data.get("password") or ""
            info = PersonalInfo(
                first_name=clean.get("first_name") or (existing or {}).get("first_name"),
                last_name=clean.get("last_name") or (existing or {}).get("last_name"),
                email=clean.get("email") or (existing or {}).get("email"),
                date_of_birth=clean.get("date_of_birth") or (existing or {}).get("date_of_birth"),
            )
            problems = validate_password(password, info)
            if problems:
                add_error(errors, "password", "; ".join(problems))
            else:
                clean["password"] = hash_password(password)

        raise_if_errors(errors)

        own_id = (existing or {}).get("id")
        if "email" in clean and clean["email"]:
            await self.ensure_unique("email", clean["email"], ErrorCode.EMAIL_ALREADY_EXISTS, own_id)
        if "mobile_phone" in clean and clean["mobile_phone"]:
            await self.ensure_unique("mobile_phone", clean["mobile_phone"], ErrorCode.PHONE_ALREADY_EXISTS, own_id)

        if creating:
            clean.setdefault("account_status", AccountStatus.PENDING)
            clean.setdefault("active_member", False)
        return clean

    async def ensure_unique(self, field: str, value: Any, code: ErrorCode, own_id: Optional[str] = None) -> None:
        match = await self.find_one(**{field: value})
        if match and match["id"] != own_id:
            logger.info("Duplicate account %s rejected (%s)", field, mask_email(value) if field == "email" else "***")
            raise AppError(code)

    async def find_by_email(self, email: str, organization_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        filters: Dict[str, Any] = {"email": (email or "").strip().lower()}
        if organization_id:
            filters["organization_id"] = organization_id
        return await self.find_one(include_hidden=True, **filters)

    async def get_profile(self, account_id: str) -> Optional[Dict[str, Any]]:
        cached = self.cache.get_user_data(CachePrefix.ACCOUNT_PROFILE, account_id)
        if cached is not None:
            return cached
        profile = await self.get(account_id)
        if profile:
            self.cache.set_user_data(CachePrefix.ACCOUNT_PROFILE, account_id, profile)
        return profile

    async def set_status(self, account_id: str, status: AccountStatus) -> Optional[Dict[str, Any]]:
        data: Dict[str, Any] = {"account_status": status}
        if status == AccountStatus.ACTIVE:
            data["active_member"] = True
        return await self.update(account_id, data)

    def _invalidate_owner(self, record: Dict[str, Any]) -> None:
        if record.get("id"):
            self.cache.invalidate_user_cache(record["id"])
