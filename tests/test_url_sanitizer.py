import pytest

from osot.utils.url_sanitizer import (
    UrlValidationError,
    extract_domain,
    is_url_from_platform,
    is_valid_url,
    sanitize_url,
)


def test_adds_https_and_trims_root_slash():
    assert sanitize_url("  example.com/  ") == "https://example.com"
    assert sanitize_url("example.com/about?x=1") == "https://example.com/about?x=1"


def test_http_is_upgraded_unless_allowed():
    assert sanitize_url("http://example.com/page") == "https://example.com/page"
    assert sanitize_url("http://example.com/page", allow_http=True) == "http://example.com/page"


def test_host_is_lowercased():
    assert sanitize_url("HTTPS://WWW.Example.COM/Path") == "https://www.example.com/Path"


@pytest.mark.parametrize(
    "url",
    ["javascript:alert(1)", "data:text/html,hi", "vbscript:msgbox", "file:///etc/passwd", "ftp://example.com"],
)
def test_dangerous_schemes_rejected(url):
    with pytest.raises(UrlValidationError):
        sanitize_url(url)


def test_empty_and_too_long_rejected():
    with pytest.raises(UrlValidationError):
        sanitize_url("   ")
    with pytest.raises(UrlValidationError):
        sanitize_url("example.com/" + "a" * 300)


def test_platform_allowlist():
    assert sanitize_url("facebook.com/osot", "facebook") == "https://facebook.com/osot"
    assert sanitize_url("https://www.linkedin.com/company/osot", "linkedin") == "https://www.linkedin.com/company/osot"
    with pytest.raises(UrlValidationError) as exc:
        sanitize_url("https://evil.example/osot", "instagram")
    assert "instagram" in str(exc.value)


def test_unknown_platform_rejected():
    with pytest.raises(UrlValidationError):
        sanitize_url("example.com", "myspace")


def test_helpers():
    assert is_valid_url("osot.on.ca")
    assert not is_valid_url("javascript:void(0)")
    assert extract_domain("WWW.OSOT.ON.CA/join") == "www.osot.on.ca"
    assert extract_domain("") is None
    assert is_url_from_platform("tiktok.com/@osot", "tiktok")
    assert not is_url_from_platform("osot.on.ca", "website")
