"""Controller for organizations (tenants) and slug resolution."""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from osot.controllers.base import EntityController, copy_text, validate_choice
from osot.entities.definitions import ORGANIZATION
from osot.entities.enums import AccessModifier, OrganizationStatus, Privilege
from osot.error_handler import AppError, ErrorCode
from osot.utils.url_sanitizer import UrlValidationError, sanitize_url
from osot.validation import add_error, raise_if_errors, require_str, validate_email, validate_phone

SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def normalize_slug(value: Any) -> str:
    return str(value or "").strip().lower()


class OrganizationController(EntityController):
    definition = ORGANIZATION

    async def validate(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        clean: Dict[str, Any] = {}
        creating = existing is None

        if creating or "organization_name" in data:
            clean["organization_name"] = require_str(data, "organization_name", errors, label="Organization name")
        copy_text(data, ["legal_name", "acronym", "representative"], errors, clean)

        if creating or "slug" in data:
            slug = normalize_slug(data.get("slug"))
            if not slug:
                add_error(errors, "slug", "slug is required")
            elif len(slug) > 100 or not SLUG_RE.match(slug):
                add_error(errors, "slug", "slug may only contain lowercase letters, numbers and hyphens")
            clean["slug"] = slug

        validate_choice(data, "organization_status", OrganizationStatus, errors, clean)
        for field in ("organization_logo", "organization_website"):
            if field in data:
                if not data[field]:
                    clean[field] = ""
                    continue
                try:
                    clean[field] = sanitize_url(data[field])
                except UrlValidationError as e:
                    add_error(errors, field, str(e))
        if "organization_email" in data:
            clean["organization_email"] = validate_email(data.get("organization_email"), errors, "organization_email", required=False)
        if "organization_phone" in data:
            clean["organization_phone"] = validate_phone(data.get("organization_phone"), errors, "organization_phone", required=False)
        validate_choice(data, "access_modifiers", AccessModifier, errors, clean)
        validate_choice(data, "privilege", Privilege, errors, clean)
        raise_if_errors(errors)

        if creating:
            clean.setdefault("organization_status", OrganizationStatus.ACTIVE)
        if clean.get("slug"):
            match = await self.find_by_slug(clean["slug"])
            if match and match["id"] != (existing or {}).get("id"):
                raise AppError(ErrorCode.CONFLICT, f"Slug '{clean['slug']}' is already taken")
        return clean

    def apply_defaults(self, clean: Dict[str, Any]) -> Dict[str, Any]:
        clean.setdefault("access_modifiers", AccessModifier.PUBLIC)
        clean.setdefault("privilege", Privilege.MAIN)
        return clean

    async def find_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        slug = normalize_slug(slug)
        if not slug:
            return None
        return await self.find_one(slug=slug)

    async def resolve_active(self, slug: str) -> Dict[str, Any]:
        """Organization for `slug`, or NOT_FOUND when missing or inactive."""
        org = await self.find_by_slug(slug)
        if not org or int(org.get("organization_status") or OrganizationStatus.ACTIVE) != OrganizationStatus.ACTIVE:
            raise AppError(ErrorCode.NOT_FOUND, f"Organization '{normalize_slug(slug)}' not found")
        return org
