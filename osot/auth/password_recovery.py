"""
Forgotten-password flow for accounts and affiliates.

A reset request stores a single-use token in the cache for
`reset_token_ttl_seconds` and emails a link to it. Requests for unknown
emails look exactly like successful ones so the endpoint cannot be used to
discover which addresses are registered.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, Optional

from osot.auth.service import AuthService
from osot.entities.enums import UserType
from osot.error_handler import AppError, ErrorCode
from osot.integrations.contracts.email import EmailClient, EmailMessage
from osot.registration.emails import password_changed_email, password_reset_email
from osot.utils.masking import mask_email

logger = logging.getLogger(__name__)

RESET_PREFIX = "password-recovery:"

REQUEST_ACCEPTED = "If an account exists for this email, a reset link has been sent."


def _display_name(user: Dict[str, Any], user_type: UserType) -> str:
    if user_type == UserType.AFFILIATE:
        return user.get("representative_first_name") or user.get("affiliate_name") or ""
    return user.get("first_name") or ""


class PasswordRecoveryService:
    def __init__(self, auth: AuthService, email: EmailClient) -> None:
        self.auth = auth
        self.cache = auth.cache
        self.email = email
        self.ttl = auth.config.reset_token_ttl_seconds

    def _key(self, token: str) -> str:
        return f"{RESET_PREFIX}{token}"

    def _controller(self, user_type: UserType):
        return self.auth.affiliates if user_type == UserType.AFFILIATE else self.auth.accounts

    async def _send(self, message: EmailMessage) -> bool:
        try:
            return await self.email.send(message)
        except Exception:
            logger.exception("Email '%s' could not be sent", message.template)
            return False

    async def request_reset(self, email: str, organization_slug: str = "osot") -> Dict[str, Any]:
        email = (email or "").strip().lower()
        org = await self.auth.organizations.resolve_active(organization_slug)
        user, user_type = await self.auth.find_user(email, org["id"])
        if user is None:
            logger.info("Password reset requested for unknown email %s", mask_email(email))
            return {"success": True, "message": REQUEST_ACCEPTED}

        token = secrets.token_urlsafe(32)
        self.cache.set(
            self._key(token),
            {
                "email": email,
                "user_type": user_type.value,
                "user_id": user["id"],
                "organization_slug": org["slug"],
            },
            self.ttl,
        )
        await self._send(password_reset_email(email, _display_name(user, user_type), token, self.ttl // 60))
        logger.info("Password reset link sent to %s %s", user_type.value, mask_email(email))
        return {"success": True, "message": REQUEST_ACCEPTED}

    def _lookup(self, token: str) -> Optional[Dict[str, Any]]:
        if not token:
            return None
        return self.cache.get(self._key(token))

    def validate_token(self, token: str) -> bool:
        return self._lookup(token) is not None

    async def reset_password(self, token: str, new_password: str) -> Dict[str, Any]:
        entry = self._lookup(token)
        if entry is None:
            raise AppError(ErrorCode.INVALID_INPUT, "Invalid or expired reset token")

        user_type = UserType(entry["user_type"])
        # Password policy failures leave the token usable for another attempt.
        updated = await self._controller(user_type).update(entry["user_id"], {"password": new_password})
        if updated is None:
            self.cache.invalidate(self._key(token))
            raise AppError(ErrorCode.INVALID_INPUT, "Invalid or expired reset token")

        self.cache.invalidate(self._key(token))
        self.auth.clear_failures(entry["organization_slug"], entry["email"])
        await self._send(password_changed_email(entry["email"], _display_name(updated, user_type)))
        logger.info("Password reset for %s %s", user_type.value, mask_email(entry["email"]))
        return {"success": True, "message": "Your password has been reset. You can now sign in."}
