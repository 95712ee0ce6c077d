"""
Login / logout for OSOT accounts and affiliates.

Failed logins are counted per organization and email in the cache; after
`max_failed_logins` consecutive failures the account is locked for
`lockout_minutes`. Logged-out tokens are blacklisted until they expire.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from osot.auth.passwords import verify_password
from osot.auth.tokens import TokenClaims, create_access_token, decode_access_token
from osot.cache.cache_service import CacheService
from osot.controllers.accounts import AccountController
from osot.controllers.affiliates import AffiliateController
from osot.controllers.organizations import OrganizationController
from osot.entities.enums import AccountStatus, Privilege, UserType
from osot.error_handler import AppError, ErrorCode
from osot.integrations.contracts.dataverse import DataverseClient
from osot.utils.config_loader import AuthConfig
from osot.utils.masking import mask_email

logger = logging.getLogger(__name__)

BLACKLIST_PREFIX = "blacklist:"
FAILED_LOGIN_PREFIX = "auth:failed:"


class AuthService:
    def __init__(self, dataverse: DataverseClient, cache: CacheService, config: Optional[AuthConfig] = None) -> None:
        self.cache = cache
        self.config = config or AuthConfig()
        self.accounts = AccountController(dataverse, cache)
        self.affiliates = AffiliateController(dataverse, cache)
        self.organizations = OrganizationController(dataverse, cache)

    def _failed_key(self, organization_slug: str, email: str) -> str:
        return f"{FAILED_LOGIN_PREFIX}{organization_slug}:{email}"

    def _is_locked(self, key: str) -> bool:
        count = self.cache.get(key) or 0
        return int(count) >= self.config.max_failed_logins

    def _record_failure(self, key: str) -> int:
        try:
            return int(self.cache.store.incr(key, self.config.lockout_minutes * 60))
        except Exception as e:
            logger.warning("Could not record failed login: %s", e)
            return 0

    def clear_failures(self, organization_slug: str, email: str) -> None:
        self.cache.invalidate(self._failed_key(organization_slug, email))

    async def find_user(self, email: str, organization_id: str) -> Tuple[Optional[Dict[str, Any]], UserType]:
        """Accounts take precedence; affiliates sign in with their business email."""
        account = await self.accounts.find_by_email(email, organization_id)
        if account is not None:
            return account, UserType.ACCOUNT
        return await self.affiliates.find_by_email(email, organization_id), UserType.AFFILIATE

    async def login(self, email: str, password: str, organization_slug: str = "osot") -> Dict[str, Any]:
        email = (email or "").strip().lower()
        org = await self.organizations.resolve_active(organization_slug)
        key = self._failed_key(org["slug"], email)

        if self._is_locked(key):
            logger.warning("Login blocked for locked account %s", mask_email(email))
            raise AppError(ErrorCode.ACCOUNT_LOCKED)

        user, user_type = await self.find_user(email, org["id"])
        if user is None or not verify_password(password, user.get("password") or ""):
            failures = self._record_failure(key)
            logger.info("Failed login for %s (%d)", mask_email(email), failures)
            if failures >= self.config.max_failed_logins:
                raise AppError(ErrorCode.ACCOUNT_LOCKED)
            raise AppError(ErrorCode.INVALID_CREDENTIALS)

        status = user.get("account_status")
        if status == AccountStatus.PENDING:
            raise AppError(ErrorCode.ACCOUNT_PENDING_APPROVAL)
        if status == AccountStatus.INACTIVE:
            raise AppError(ErrorCode.ACCOUNT_INACTIVE)

        self.cache.invalidate(key)
        if user_type == UserType.AFFILIATE:
            # Affiliates only ever own their own records.
            privilege = Privilege.OWNER
        else:
            privilege = Privilege(int(user.get("privilege") or Privilege.OWNER))
        token = create_access_token(
            {
                "sub": user.get("business_id") or user["id"],
                "user_guid": user["id"],
                "email": email,
                "privilege": privilege,
                "role": privilege.role,
                "user_type": user_type.value,
                "organization_id": org["id"],
                "organization_slug": org["slug"],
            },
            self.config.token_expires_minutes,
        )
        logger.info("Login succeeded for %s %s", user_type.value, mask_email(email))
        user.pop("password", None)
        return {
            "access_token": token,
            "token_type": "Bearer",
            "expires_in": self.config.token_expires_minutes * 60,
            "user": user,
            "user_type": user_type.value,
            "role": privilege.role,
        }

    def logout(self, token: str) -> None:
        claims = decode_access_token(token)
        remaining = int((claims.exp - datetime.now(timezone.utc)).total_seconds())
        self.cache.set(f"{BLACKLIST_PREFIX}{token}", True, max(remaining, 1))
        logger.info("Logged out %s", mask_email(claims.email))

    def is_blacklisted(self, token: str) -> bool:
        return bool(self.cache.get(f"{BLACKLIST_PREFIX}{token}"))

    def authenticate(self, token: str) -> TokenClaims:
        claims = decode_access_token(token)
        if self.is_blacklisted(token):
            raise AppError(ErrorCode.TOKEN_INVALID, "This session has been signed out")
        return claims
