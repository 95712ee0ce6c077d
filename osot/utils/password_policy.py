"""
Password complexity rules and strength scoring.

`validate_password` decides whether a password is acceptable;
`analyze_password_strength` scores it for UI feedback only.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from osot.error_handler import AppError, ErrorCode

MIN_LENGTH = 8
MAX_LENGTH = 255

_COMPLEXITY_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)[a-zA-Z\d@$!%*?&]{8,}$")
_SPECIAL_RE = re.compile(r'[!@#$%^&*(),.?":{}|<>]')

_SEQUENCES = (
    "abcdefghijklmnopqrstuvwxyz",
    "0123456789",
    "qwertyuiopasdfghjklzxcvbnm",
)
_SEQUENCE_LENGTH = 4

STRENGTH_WEIGHTS = {
    "min_length": 10,
    "uppercase": 15,
    "lowercase": 15,
    "number": 15,
    "special": 20,
    "no_personal_info": 10,
    "no_sequential": 5,
    "no_repeated": 5,
}


@dataclass
class PersonalInfo:
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    date_of_birth: Optional[str] = None  # ISO YYYY-MM-DD


def _personal_tokens(info: Optional[PersonalInfo]) -> List[str]:
    if info is None:
        return []
    tokens: List[str] = []
    for name in (info.first_name, info.last_name):
        if name and len(name.strip()) >= 3:
            tokens.append(name.strip().lower())
    if info.email and "@" in info.email:
        local = info.email.split("@", 1)[0].strip().lower()
        if len(local) >= 3:
            tokens.append(local)
    if info.date_of_birth and len(info.date_of_birth) >= 4:
        year = info.date_of_birth[:4]
        if year.isdigit():
            tokens.append(year)
    return tokens


def contains_personal_info(password: str, info: Optional[PersonalInfo]) -> bool:
    lowered = password.lower()
    return any(token in lowered for token in _personal_tokens(info))


def has_sequential_chars(password: str) -> bool:
    lowered = password.lower()
    for seq in _SEQUENCES:
        for source in (seq, seq[::-1]):
            for i in range(len(source) - _SEQUENCE_LENGTH + 1):
                if source[i : i + _SEQUENCE_LENGTH] in lowered:
                    return True
    return False


def has_repeated_chars(password: str) -> bool:
    return re.search(r"(.)\1{2,}", password) is not None


def validate_password(password: str, personal_info: Optional[PersonalInfo] = None) -> List[str]:
    errors: List[str] = []
    password = password or ""

    if len(password) < MIN_LENGTH:
        errors.append(f"Password must be at least {MIN_LENGTH} characters")
    if len(password) > MAX_LENGTH:
        errors.append(f"Password must be at most {MAX_LENGTH} characters")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain a lowercase letter")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain an uppercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain a number")
    if password and not errors and not _COMPLEXITY_RE.match(password):
        errors.append("Password may only contain letters, numbers and @$!%*?&")
    if contains_personal_info(password, personal_info):
        errors.append("Password must not contain your name, email or birth year")
    if has_sequential_chars(password):
        errors.append("Password must not contain sequences like 'abcd' or '1234'")
    if has_repeated_chars(password):
        errors.append("Password must not repeat the same character 3 times in a row")

    return errors


def assert_strong_password(password: str, personal_info: Optional[PersonalInfo] = None) -> None:
    errors = validate_password(password, personal_info)
    if errors:
        raise AppError(ErrorCode.WEAK_PASSWORD, "; ".join(errors), context={"errors": errors})


def _strength_level(score: int) -> str:
    if score >= 90:
        return "very_strong"
    if score >= 75:
        return "strong"
    if score >= 60:
        return "moderate"
    if score >= 40:
        return "weak"
    return "very_weak"


def analyze_password_strength(password: str, personal_info: Optional[PersonalInfo] = None) -> Dict[str, Any]:
    password = password or ""
    checks = {
        "min_length": len(password) >= 10,
        "uppercase": bool(re.search(r"[A-Z]", password)),
        "lowercase": bool(re.search(r"[a-z]", password)),
        "number": bool(re.search(r"\d", password)),
        "special": bool(_SPECIAL_RE.search(password)),
        "no_personal_info": not contains_personal_info(password, personal_info),
        "no_sequential": not has_sequential_chars(password),
        "no_repeated": not has_repeated_chars(password),
    }
    score = sum(STRENGTH_WEIGHTS[name] for name, passed in checks.items() if passed)

    feedback = []
    if not checks["min_length"]:
        feedback.append("Use at least 10 characters")
    if not checks["special"]:
        feedback.append("Add a special character for extra strength")
    if not checks["no_personal_info"]:
        feedback.append("Avoid personal information")
    if not checks["no_sequential"]:
        feedback.append("Avoid sequences like 'abcd' or '1234'")
    if not checks["no_repeated"]:
        feedback.append("Avoid repeating characters")

    return {
        "score": score,
        "level": _strength_level(score),
        "checks": checks,
        "feedback": feedback,
        "is_valid": not validate_password(password, personal_info),
    }
