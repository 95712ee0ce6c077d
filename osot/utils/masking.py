"""Masking helpers for personal data shown in logs and API responses."""

from __future__ import annotations

import re


def mask_email(email: str) -> str:
    value = (email or "").strip()
    if "@" not in value:
        return "***"
    local, domain = value.split("@", 1)
    keep = 3 if len(local) > 3 else 1
    if not local:
        return f"***@{domain}"
    return f"{local[:keep]}{'*' * (len(local) - keep)}@{domain}"


def mask_phone(phone: str) -> str:
    value = phone or ""
    total = len(re.findall(r"\d", value))
    if total <= 4:
        return value
    seen = 0
    out = []
    for ch in value:
        if ch.isdigit():
            seen += 1
            out.append(ch if seen > total - 4 else "*")
        else:
            out.append(ch)
    return "".join(out)
