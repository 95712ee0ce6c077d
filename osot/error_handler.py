"""Error codes and uniform error payloads for the OSOT API.

Every failure that reaches a client is expressed as one numeric code from
`ErrorCode`. The catalog maps each code to an HTTP status and a message that
is safe to show to end users; `force_logout` marks codes after which the
frontend must drop the session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorCode(IntEnum):
    # Account
    ACCOUNT_NOT_FOUND = 1001
    INVALID_CREDENTIALS = 1002
    ACCOUNT_INACTIVE = 1003
    EMAIL_ALREADY_EXISTS = 1004
    PHONE_ALREADY_EXISTS = 1005
    ACCOUNT_LOCKED = 1006
    SESSION_EXPIRED = 1007
    ACCOUNT_PENDING_APPROVAL = 1008
    DUPLICATE_ACCOUNT = 1009
    ACCOUNT_CREATION_FAILED = 1010

    # Validation
    VALIDATION_ERROR = 2001
    INVALID_EMAIL_FORMAT = 2002
    INVALID_PHONE_FORMAT = 2003
    INVALID_POSTAL_CODE = 2004
    WEAK_PASSWORD = 2005
    INVALID_NAME_FORMAT = 2006
    INVALID_INPUT = 2007

    # Permission
    UNAUTHORIZED = 3001
    FORBIDDEN = 3002
    INSUFFICIENT_PRIVILEGE = 3003
    TOKEN_INVALID = 3004

    # External services
    DATAVERSE_SERVICE_ERROR = 4001
    CACHE_SERVICE_ERROR = 4002
    EMAIL_SERVICE_ERROR = 4003
    EXTERNAL_SERVICE_ERROR = 4004

    # Application / education
    NOT_FOUND = 5001
    CONFLICT = 5002
    INVALID_STATE_TRANSITION = 5003
    BUSINESS_RULE_VIOLATION = 5004
    REGISTRATION_SESSION_NOT_FOUND = 5005
    VERIFICATION_FAILED = 5006
    ORDER_TOTAL_MISMATCH = 5007
    EDUCATION_NOT_FOUND = 5101
    INVALID_EDUCATION_CATEGORY = 5102
    EDUCATION_DATA_INCOMPLETE = 5103


@dataclass(frozen=True)
class ErrorSpec:
    http_status: int
    public_message: str
    force_logout: bool = False


ERROR_CATALOG: Dict[ErrorCode, ErrorSpec] = {
    ErrorCode.ACCOUNT_NOT_FOUND: ErrorSpec(404, "Account not found."),
    ErrorCode.INVALID_CREDENTIALS: ErrorSpec(401, "Invalid email or password."),
    ErrorCode.ACCOUNT_INACTIVE: ErrorSpec(403, "This account is inactive. Please contact support."),
    ErrorCode.EMAIL_ALREADY_EXISTS: ErrorSpec(409, "An account with this email already exists."),
    ErrorCode.PHONE_ALREADY_EXISTS: ErrorSpec(409, "An account with this phone number already exists."),
    ErrorCode.ACCOUNT_LOCKED: ErrorSpec(423, "Your account is temporarily locked. Please try again later.", True),
    ErrorCode.SESSION_EXPIRED: ErrorSpec(401, "Your session has expired. Please sign in again.", True),
    ErrorCode.ACCOUNT_PENDING_APPROVAL: ErrorSpec(403, "Your account is awaiting approval."),
    ErrorCode.DUPLICATE_ACCOUNT: ErrorSpec(409, "This account already exists."),
    ErrorCode.ACCOUNT_CREATION_FAILED: ErrorSpec(500, "We could not create your account. Please try again."),
    ErrorCode.VALIDATION_ERROR: ErrorSpec(422, "Some fields are invalid. Please review and try again."),
    ErrorCode.INVALID_EMAIL_FORMAT: ErrorSpec(422, "Please enter a valid email address."),
    ErrorCode.INVALID_PHONE_FORMAT: ErrorSpec(422, "Please enter a valid phone number, e.g. (416) 555-1234."),
    ErrorCode.INVALID_POSTAL_CODE: ErrorSpec(422, "Please enter a valid postal code, e.g. K1A 0B1."),
    ErrorCode.WEAK_PASSWORD: ErrorSpec(422, "Password does not meet the security requirements."),
    ErrorCode.INVALID_NAME_FORMAT: ErrorSpec(422, "Names may only contain letters, spaces, apostrophes and hyphens."),
    ErrorCode.INVALID_INPUT: ErrorSpec(400, "The request could not be processed."),
    ErrorCode.UNAUTHORIZED: ErrorSpec(401, "Please sign in to continue."),
    ErrorCode.FORBIDDEN: ErrorSpec(403, "You do not have access to this resource."),
    ErrorCode.INSUFFICIENT_PRIVILEGE: ErrorSpec(403, "You do not have permission to perform this action."),
    ErrorCode.TOKEN_INVALID: ErrorSpec(401, "Your session is no longer valid. Please sign in again.", True),
    ErrorCode.DATAVERSE_SERVICE_ERROR: ErrorSpec(502, "A data service is temporarily unavailable."),
    ErrorCode.CACHE_SERVICE_ERROR: ErrorSpec(503, "A cache service is temporarily unavailable."),
    ErrorCode.EMAIL_SERVICE_ERROR: ErrorSpec(502, "We could not send the email. Please try again later."),
    ErrorCode.EXTERNAL_SERVICE_ERROR: ErrorSpec(502, "An external service is temporarily unavailable."),
    ErrorCode.NOT_FOUND: ErrorSpec(404, "The requested resource was not found."),
    ErrorCode.CONFLICT: ErrorSpec(409, "The request conflicts with an existing record."),
    ErrorCode.INVALID_STATE_TRANSITION: ErrorSpec(409, "This action is not allowed in the current state."),
    ErrorCode.BUSINESS_RULE_VIOLATION: ErrorSpec(422, "The request violates a business rule."),
    ErrorCode.REGISTRATION_SESSION_NOT_FOUND: ErrorSpec(404, "Registration session not found or expired."),
    ErrorCode.VERIFICATION_FAILED: ErrorSpec(400, "Verification failed."),
    ErrorCode.ORDER_TOTAL_MISMATCH: ErrorSpec(422, "Order totals do not add up."),
    ErrorCode.EDUCATION_NOT_FOUND: ErrorSpec(404, "Education record not found."),
    ErrorCode.INVALID_EDUCATION_CATEGORY: ErrorSpec(422, "Invalid education category."),
    ErrorCode.EDUCATION_DATA_INCOMPLETE: ErrorSpec(422, "Education information is incomplete."),
}


def get_error_spec(code: ErrorCode) -> ErrorSpec:
    return ERROR_CATALOG.get(code, ErrorSpec(500, "An unexpected error occurred."))


class AppError(Exception):
    """Application error carrying an `ErrorCode` and optional context."""

    def __init__(
        self,
        code: ErrorCode,
        detail: Optional[str] = None,
        *,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.code = code
        self.detail = detail or get_error_spec(code).public_message
        self.context = context or {}
        super().__init__(self.detail)

    @property
    def http_status(self) -> int:
        return get_error_spec(self.code).http_status

    @property
    def force_logout(self) -> bool:
        return get_error_spec(self.code).force_logout


def error_payload(
    code: ErrorCode,
    detail: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    spec = get_error_spec(code)
    body: Dict[str, Any] = {
        "code": int(code),
        "message": spec.public_message,
        "detail": detail or spec.public_message,
        "forceLogout": spec.force_logout,
    }
    if extra:
        body.update(extra)
    return {"error": body}


class ErrorHandler:
    def handle_exception(self, exc: Exception, context: Dict[str, Any] = None) -> Dict[str, Any]:
        """Format any exception as a uniform error payload.

        `AppError` keeps its own code; anything else is logged with a
        traceback and reported as a generic external/internal failure.
        """
        if isinstance(exc, AppError):
            if exc.http_status >= 500:
                logger.error("AppError %s: %s context=%s", int(exc.code), exc.detail, exc.context)
            else:
                logger.info("AppError %s: %s", int(exc.code), exc.detail)
            return error_payload(exc.code, exc.detail)

        logger.error("Unhandled exception: %s context=%s", exc, context or {}, exc_info=True)
        payload = error_payload(ErrorCode.EXTERNAL_SERVICE_ERROR, "An internal error occurred while processing your request.")
        payload["error"]["message"] = "An internal error occurred. Please try again later."
        return payload

    def status_for(self, exc: Exception) -> int:
        if isinstance(exc, AppError):
            return exc.http_status
        return 500
