"""Shared backend validation for API payloads.

Controllers receive request bodies as dictionaries (already shaped by the
pydantic DTOs). These helpers enforce the record-level rules the DTOs cannot
express on their own and collect every problem into one `field_errors` map.

On validation failure, raise `FormValidationError` so the API can return HTTP
422 with structured `field_errors`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, Optional

from osot.error_handler import ErrorCode


@dataclass
class FormValidationError(Exception):
    """Exception raised for form validation failures.

    Attributes:
        field_errors: mapping of field name -> human-readable error message.
        message: optional top-level message.
        code: error code reported to the client.
    """

    field_errors: Dict[str, str]
    message: str = "Validation failed"
    code: ErrorCode = ErrorCode.VALIDATION_ERROR

    def __str__(self) -> str:  # pragma: no cover
        return self.message


def _as_str(v: Any) -> str:
    return "" if v is None else str(v)


def _strip(v: Any) -> str:
    return _as_str(v).strip()


def add_error(errors: Dict[str, str], field: str, message: str) -> None:
    if field not in errors:
        errors[field] = message


def require_str(payload: Dict[str, Any], field: str, errors: Dict[str, str], *, label: Optional[str] = None) -> str:
    value = _strip(payload.get(field))
    if not value:
        add_error(errors, field, f"{label or field} is required")
    return value


def optional_str(payload: Dict[str, Any], field: str) -> str:
    return _strip(payload.get(field))


_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(value: str) -> bool:
    return bool(_EMAIL_RE.match(_strip(value)))


def validate_email(value: str, errors: Dict[str, str], field: str = "email", *, required: bool = True) -> str:
    value = _strip(value).lower()
    if not value:
        if required:
            add_error(errors, field, "Email is required")
        return value
    if len(value) > 255 or not _EMAIL_RE.match(value):
        add_error(errors, field, "Email is not valid")
    return value


_PHONE_RE = re.compile(r"^\(\d{3}\) \d{3}-\d{4}$")


def normalize_phone(value: str) -> str:
    """Normalize North American numbers to `(XXX) XXX-XXXX`.

    Accepts 10 digits in any punctuation, or 11 digits with a leading 1.
    Anything else is returned stripped and unchanged.
    """
    s = _strip(value)
    digits = re.sub(r"\D", "", s)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return s


def validate_phone(value: str, errors: Dict[str, str], field: str = "mobile_phone", *, required: bool = True) -> str:
    raw = _strip(value)
    if not raw:
        if required:
            add_error(errors, field, "Phone number is required")
        return raw
    norm = normalize_phone(raw)
    if not _PHONE_RE.match(norm):
        add_error(errors, field, "Phone number must look like (416) 555-1234")
        return raw
    return norm


_POSTAL_RE = re.compile(r"^[ABCEGHJ-NPRSTVXY]\d[ABCEGHJ-NPRSTV-Z] ?\d[ABCEGHJ-NPRSTV-Z]\d$")


def normalize_postal_code(value: str) -> str:
    s = re.sub(r"\s+", "", _strip(value).upper())
    if len(s) == 6:
        return f"{s[:3]} {s[3:]}"
    return s


def validate_postal_code(value: str, errors: Dict[str, str], field: str = "postal_code", *, required: bool = True) -> str:
    raw = _strip(value)
    if not raw:
        if required:
            add_error(errors, field, "Postal code is required")
        return raw
    norm = normalize_postal_code(raw)
    if not _POSTAL_RE.match(norm):
        add_error(errors, field, "Postal code must look like K1A 0B1")
        return raw
    return norm


_NAME_RE = re.compile(r"^[A-Za-zÀ-ÖØ-öø-ÿ]+(?:[ '\-][A-Za-zÀ-ÖØ-öø-ÿ]+)*$")


def validate_person_name(value: str, errors: Dict[str, str], field: str, *, label: Optional[str] = None, required: bool = True) -> str:
    raw = _strip(value)
    if not raw:
        if required:
            add_error(errors, field, f"{label or field} is required")
        return raw
    if len(raw) > 255 or not _NAME_RE.match(raw):
        add_error(errors, field, f"{label or field} may only contain letters, spaces, apostrophes and hyphens")
    return raw


def validate_date_iso(value: Any, errors: Dict[str, str], field: str, *, required: bool = True, not_future: bool = False) -> str:
    if isinstance(value, date):
        value = value.isoformat()
    raw = _strip(value)
    if not raw:
        if required:
            add_error(errors, field, f"{field} is required")
        return raw
    try:
        d = date.fromisoformat(raw)
    except ValueError:
        add_error(errors, field, f"{field} must be a valid date (YYYY-MM-DD)")
        return raw
    if not_future and d > date.today():
        add_error(errors, field, f"{field} cannot be in the future")
    return raw


def validate_in(value: Any, allowed: Iterable[Any], errors: Dict[str, str], field: str, *, required: bool = True) -> Any:
    if value is None or _strip(value) == "":
        if required:
            add_error(errors, field, f"{field} is required")
        return value
    if value not in set(allowed):
        add_error(errors, field, f"{field} has an invalid value")
    return value


# Field-specific codes, most specific first. A payload with a single kind of
# problem is reported under that kind's code.
_FIELD_CODES = (
    ("password", ErrorCode.WEAK_PASSWORD),
    ("email", ErrorCode.INVALID_EMAIL_FORMAT),
    ("phone", ErrorCode.INVALID_PHONE_FORMAT),
    ("postal_code", ErrorCode.INVALID_POSTAL_CODE),
    ("first_name", ErrorCode.INVALID_NAME_FORMAT),
    ("last_name", ErrorCode.INVALID_NAME_FORMAT),
)


def _code_for(errors: Dict[str, str]) -> ErrorCode:
    if len(errors) != 1:
        return ErrorCode.VALIDATION_ERROR
    field = next(iter(errors))
    for marker, code in _FIELD_CODES:
        if marker in field:
            return code
    return ErrorCode.VALIDATION_ERROR


def raise_if_errors(errors: Dict[str, str], message: str = "Please correct the highlighted fields") -> None:
    if errors:
        raise FormValidationError(field_errors=errors, message=message, code=_code_for(errors))
