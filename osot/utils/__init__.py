"""
Utility modules for the OSOT API
"""
from .config_loader import load_osot_config
from .masking import mask_email, mask_phone
from .rate_limiter import RateLimiter
from .url_sanitizer import UrlValidationError, sanitize_url

__all__ = ["load_osot_config", "mask_email", "mask_phone", "RateLimiter", "UrlValidationError", "sanitize_url"]
