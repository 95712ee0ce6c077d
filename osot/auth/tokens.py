"""
Bearer tokens for the OSOT API.

Tokens are HS256 JWTs signed with JWT_SECRET. Claims carry everything the
permission checks need (privilege, role, organization) so that routes do not
have to load the account on every request.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from pydantic import BaseModel, ValidationError

from osot.entities.enums import Privilege, UserType
from osot.error_handler import AppError, ErrorCode

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
DEFAULT_EXPIRES_MINUTES = 60


class TokenClaims(BaseModel):
    sub: str                              # account business id, e.g. osot-0000001
    user_guid: str
    email: str
    role: str
    privilege: int
    user_type: str = UserType.ACCOUNT.value
    organization_id: Optional[str] = None
    organization_slug: Optional[str] = None
    exp: datetime
    iat: datetime

    @property
    def privilege_level(self) -> Privilege:
        return Privilege(self.privilege)

    def has_privilege(self, required: Privilege) -> bool:
        return self.privilege >= int(required)


def _get_jwt_secret() -> str:
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        logger.warning("No JWT_SECRET configured, using insecure default")
        return "insecure-default-secret-change-me"
    return secret


def _expires_minutes() -> int:
    raw = os.getenv("JWT_EXPIRES_MINUTES", "").strip()
    return int(raw) if raw.isdigit() else DEFAULT_EXPIRES_MINUTES


def create_access_token(claims: Dict[str, Any], expires_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    expiry = now + timedelta(minutes=expires_minutes or _expires_minutes())
    payload = dict(claims)
    privilege = Privilege(int(payload.get("privilege", Privilege.OWNER)))
    payload["privilege"] = int(privilege)
    payload.setdefault("role", privilege.role)
    payload.setdefault("user_type", UserType.ACCOUNT.value)
    payload["iat"] = int(now.timestamp())
    payload["exp"] = int(expiry.timestamp())
    return jwt.encode(payload, _get_jwt_secret(), algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> TokenClaims:
    try:
        payload = jwt.decode(token, _get_jwt_secret(), algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AppError(ErrorCode.SESSION_EXPIRED)
    except jwt.InvalidTokenError as e:
        logger.info("Rejected bearer token: %s", e)
        raise AppError(ErrorCode.TOKEN_INVALID)

    try:
        return TokenClaims(**payload)
    except ValidationError as e:
        logger.info("Bearer token has unexpected claims: %s", e)
        raise AppError(ErrorCode.TOKEN_INVALID)
