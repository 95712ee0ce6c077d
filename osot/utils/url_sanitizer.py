"""
URL sanitization for user-supplied links (websites, social profiles, logos).
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Optional
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 255

DANGEROUS_SCHEMES = ("javascript:", "data:", "vbscript:", "file:", "ftp:")

PLATFORM_DOMAINS: Dict[str, Optional[FrozenSet[str]]] = {
    "facebook": frozenset({"facebook.com", "www.facebook.com", "fb.com", "www.fb.com"}),
    "instagram": frozenset({"instagram.com", "www.instagram.com"}),
    "linkedin": frozenset({"linkedin.com", "www.linkedin.com"}),
    "tiktok": frozenset({"tiktok.com", "www.tiktok.com"}),
    "youtube": frozenset({"youtube.com", "www.youtube.com"}),
    "website": None,
}


class UrlValidationError(ValueError):
    def __init__(self, message: str, *, url: str = "") -> None:
        super().__init__(message)
        self.url = url


def sanitize_url(
    url: str,
    platform: str = "website",
    *,
    allow_http: bool = False,
    max_length: int = DEFAULT_MAX_LENGTH,
) -> str:
    """
    Normalize a user-supplied URL and enforce the platform's domain allowlist.

    Returns the cleaned https URL. Raises UrlValidationError when the value is
    empty, too long, uses a dangerous scheme, has a malformed host, or points
    outside the platform's domains.
    """
    if platform not in PLATFORM_DOMAINS:
        raise UrlValidationError(f"Unknown platform '{platform}'", url=url or "")

    value = (url or "").strip()
    if not value:
        raise UrlValidationError("URL is required", url=value)
    if len(value) > max_length:
        raise UrlValidationError(f"URL must be at most {max_length} characters", url=value)

    lowered = value.lower()
    if any(lowered.startswith(prefix) for prefix in DANGEROUS_SCHEMES):
        raise UrlValidationError("URL scheme is not allowed", url=value)

    if "://" not in value:
        value = f"https://{value}"

    try:
        parts = urlsplit(value)
        port = parts.port
    except ValueError as exc:
        raise UrlValidationError("URL is malformed", url=value) from exc

    scheme = parts.scheme.lower()
    if scheme not in ("http", "https"):
        raise UrlValidationError("URL scheme is not allowed", url=value)
    if scheme == "http" and not allow_http:
        scheme = "https"

    host = (parts.hostname or "").lower()
    if not host or host in (".", "..") or ".." in host:
        raise UrlValidationError("URL host is not valid", url=value)

    allowed = PLATFORM_DOMAINS[platform]
    if allowed is not None and host not in allowed:
        raise UrlValidationError(f"URL must point to {platform}", url=value)

    netloc = host if port is None else f"{host}:{port}"
    path = parts.path
    if path == "/":
        path = ""

    return urlunsplit((scheme, netloc, path, parts.query, parts.fragment))


def is_valid_url(url: str, platform: str = "website", *, allow_http: bool = False) -> bool:
    try:
        sanitize_url(url, platform, allow_http=allow_http)
        return True
    except UrlValidationError:
        return False


def extract_domain(url: str) -> Optional[str]:
    try:
        cleaned = sanitize_url(url)
    except UrlValidationError:
        return None
    return urlsplit(cleaned).hostname


def is_url_from_platform(url: str, platform: str) -> bool:
    if PLATFORM_DOMAINS.get(platform) is None:
        return False
    return is_valid_url(url, platform)
