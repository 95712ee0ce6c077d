"""
Controllers for the records that hang off an account: address, contact,
identity and account management flags.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from osot.cache.cache_service import CachePrefix
from osot.controllers.base import (
    EntityController,
    copy_flags,
    copy_text,
    validate_choice,
    validate_choice_list,
)
from osot.entities.definitions import ADDRESS, CONTACT, IDENTITY, MANAGEMENT
from osot.entities.enums import AccessModifier, AddressPreference, AddressType, Gender, Privilege
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


def _common(data: Dict[str, Any], errors: Dict[str, str], clean: Dict[str, Any]) -> None:
    """Ownership and visibility fields shared by every account child."""
    if data.get("account_id"):
        clean["account_id"] = data["account_id"]
    if data.get("user_business_id"):
        clean["user_business_id"] = str(data["user_business_id"])
    validate_choice(data, "access_modifiers", AccessModifier, errors, clean)
    validate_choice(data, "privilege", Privilege, errors, clean)


class AddressController(EntityController):
    definition = ADDRESS
    user_prefix = CachePrefix.ACCOUNT_ADDRESS

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        clean: Dict[str, Any] = {}
        creating = existing is None

        for field, label in (("address_1", "Address"), ("city", "City"), ("province", "Province"), ("country", "Country")):
            if creating or field in data:
                clean[field] = require_str(data, field, errors, label=label)
        copy_text(data, ["address_2"], errors, clean)
        if creating or "postal_code" in data:
            clean["postal_code"] = validate_postal_code(data.get("postal_code"), errors)
        validate_choice(data, "address_type", AddressType, errors, clean)
        validate_choice(data, "address_preference", AddressPreference, errors, clean)
        _common(data, errors, clean)

        raise_if_errors(errors)
        return clean


SOCIAL_PLATFORMS = ("facebook", "instagram", "tiktok", "linkedin")


class ContactController(EntityController):
    definition = CONTACT
    user_prefix = CachePrefix.ACCOUNT_CONTACT

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        clean: Dict[str, Any] = {}

        if "secondary_email" in data:
            clean["secondary_email"] = validate_email(data.get("secondary_email"), errors, "secondary_email", required=False)
        for field in ("home_phone", "work_phone"):
            if field in data:
                clean[field] = validate_phone(data.get(field), errors, field, required=False)
        copy_text(data, ["job_title"], errors, clean)

        links = {"business_website": "website"}
        links.update({p: p for p in SOCIAL_PLATFORMS})
        for field, platform in links.items():
            value = data.get(field)
            if field not in data:
                continue
            if not value:
                clean[field] = ""
                continue
            try:
                clean[field] = sanitize_url(value, platform)
            except UrlValidationError as e:
                add_error(errors, field, str(e))
        _common(data, errors, clean)

        raise_if_errors(errors)
        return clean


class IdentityController(EntityController):
    definition = IDENTITY
    user_prefix = CachePrefix.ACCOUNT_IDENTITY

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        clean: Dict[str, Any] = {}
        creating = existing is None

        if data.get("chosen_name"):
            clean["chosen_name"] = validate_person_name(data.get("chosen_name"), errors, "chosen_name", label="Chosen name")
        if creating or "language" in data:
            validate_choice_list(data, "language", None, errors, clean, required=True)
        validate_choice(data, "gender", Gender, errors, clean)
        copy_text(data, ["race"], errors, clean)
        copy_flags(data, ["indigenous", "disability"], errors, clean)
        _common(data, errors, clean)

        raise_if_errors(errors)
        return clean


MANAGEMENT_FLAGS = (
    "life_member_retired",
    "shadowing",
    "passed_away",
    "vendor",
    "advertising",
    "recruitment",
    "driver_rehab",
)


class ManagementController(EntityController):
    definition = MANAGEMENT

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        clean: Dict[str, Any] = {}
        copy_flags(data, MANAGEMENT_FLAGS, errors, clean)
        if existing is None:
            for flag in MANAGEMENT_FLAGS:
                clean.setdefault(flag, False)
        _common(data, errors, clean)
        raise_if_errors(errors)
        return clean
