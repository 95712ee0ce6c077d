"""Controller for affiliate (business partner) accounts."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from osot.auth.passwords import hash_password
from osot.controllers.base import EntityController, copy_text, validate_choice
from osot.entities.definitions import AFFILIATE
from osot.entities.enums import AccessModifier, AccountStatus, AffiliateArea, Privilege
from osot.error_handler import AppError, ErrorCode
from osot.utils.masking import mask_email
from osot.utils.password_policy import PersonalInfo, validate_password
from osot.utils.url_sanitizer import UrlValidationError, sanitize_url
from osot.validation import (
    add_error,
    raise_if_errors,
    require_str,
    validate_email,
    validate_person_name,
    validate_phone,
    validate_postal_code,
)

logger = logging.getLogger(__name__)

AFFILIATE_LINKS = {
    "affiliate_website": "website",
    "affiliate_facebook": "facebook",
    "affiliate_instagram": "instagram",
    "affiliate_tiktok": "tiktok",
    "affiliate_linkedin": "linkedin",
}

_ADDRESS_FIELDS = (
    ("affiliate_address_1", "Address"),
    ("affiliate_city", "City"),
    ("affiliate_province", "Province"),
    ("affiliate_country", "Country"),
)


class AffiliateController(EntityController):
    definition = AFFILIATE

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        clean: Dict[str, Any] = {}
        creating = existing is None

        if creating:
            clean["affiliate_name"] = require_str(data, "affiliate_name", errors, label="Affiliate name")
        for field, label in (("representative_first_name", "First name"), ("representative_last_name", "Last name")):
            if creating or field in data:
                clean[field] = validate_person_name(data.get(field), errors, field, label=label)
        copy_text(data, ["representative_job_title", "affiliate_address_2"], errors, clean)

        if creating or "affiliate_email" in data:
            clean["affiliate_email"] = validate_email(data.get("affiliate_email"), errors, "affiliate_email")
        if creating or "affiliate_phone" in data:
            clean["affiliate_phone"] = validate_phone(data.get("affiliate_phone"), errors, "affiliate_phone")

        for field, label in _ADDRESS_FIELDS:
            if creating or field in data:
                clean[field] = require_str(data, field, errors, label=label)
        if creating or "affiliate_postal_code" in data:
            clean["affiliate_postal_code"] = validate_postal_code(
                data.get("affiliate_postal_code"), errors, "affiliate_postal_code"
            )

        for field, platform in AFFILIATE_LINKS.items():
            if field not in data:
                continue
            if not data[field]:
                clean[field] = ""
                continue
            try:
                clean[field] = sanitize_url(data[field], platform)
            except UrlValidationError as e:
                add_error(errors, field, str(e))

        validate_choice(data, "affiliate_area", AffiliateArea, errors, clean, required=creating)
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
                first_name=clean.get("representative_first_name") or (existing or {}).get("representative_first_name"),
                last_name=clean.get("representative_last_name") or (existing or {}).get("representative_last_name"),
                email=clean.get("affiliate_email") or (existing or {}).get("affiliate_email"),
            )
            problems = validate_password(password, info)
            if problems:
                add_error(errors, "password", "; ".join(problems))
            else:
                clean["password"] = hash_password(password)

        raise_if_errors(errors)

        own_id = (existing or {}).get("id")
        if clean.get("affiliate_email"):
            match = await self.find_one(affiliate_email=clean["affiliate_email"])
            if match and match["id"] != own_id:
                logger.info("Duplicate affiliate email rejected (%s)", mask_email(clean["affiliate_email"]))
                raise AppError(ErrorCode.EMAIL_ALREADY_EXISTS)

        if creating:
            clean.setdefault("account_status", AccountStatus.PENDING)
            clean.setdefault("active_member", False)
        return clean

    async def find_by_email(self, email: str, organization_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        filters: Dict[str, Any] = {"affiliate_email": (email or "").strip().lower()}
        if organization_id:
            filters["organization_id"] = organization_id
        return await self.find_one(include_hidden=True, **filters)

    async def set_status(self, affiliate_id: str, status: AccountStatus) -> Optional[Dict[str, Any]]:
        data: Dict[str, Any] = {"account_status": status}
        if status == AccountStatus.ACTIVE:
            data["active_member"] = True
        return await self.update(affiliate_id, data)
