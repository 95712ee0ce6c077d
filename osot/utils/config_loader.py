"""
Configuration loader for the OSOT API
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ValidationError
import logging

logger = logging.getLogger(__name__)


class CacheConfig(BaseModel):
    """Read-through cache TTLs (seconds)"""

    account_ttl: int = Field(default=60, ge=1)
    education_ttl: int = Field(default=60, ge=1)
    expiration_ttl: int = Field(default=60, ge=1)
    entity_ttl: int = Field(default=60, ge=1)


class DataverseConfig(BaseModel):
    """Dataverse Web API settings"""

    api_version: str = "v9.2"
    timeout_seconds: float = Field(default=30.0, gt=0)
    requests_per_minute: int = Field(default=100, ge=1, le=6000)
    max_attempts: int = Field(default=3, ge=1, le=10)
    retry_delay_seconds: float = Field(default=0.5, ge=0.0)
    token_margin_seconds: int = Field(default=60, ge=0)


class RegistrationConfig(BaseModel):
    """Registration workflow timeouts and limits"""

    session_ttl_hours: int = Field(default=24, ge=1)
    verification_token_ttl_seconds: int = Field(default=3600, ge=60)
    approval_token_ttl_seconds: int = Field(default=604800, ge=60)
    max_verification_attempts: int = Field(default=3, ge=1)
    max_resends: int = Field(default=3, ge=0)
    max_retry_attempts: int = Field(default=3, ge=1)
    default_organization_slug: str = "osot"


class AuthConfig(BaseModel):
    """Bearer token and login lockout settings"""

    token_expires_minutes: int = Field(default=60, ge=1)
    max_failed_logins: int = Field(default=5, ge=1)
    lockout_minutes: int = Field(default=15, ge=1)
    reset_token_ttl_seconds: int = Field(default=1800, ge=60)


class CorsConfig(BaseModel):
    allow_origins: List[str] = Field(default_factory=lambda: ["*"])


class OsotConfig(BaseModel):
    """Complete OSOT API configuration"""

    cache: CacheConfig = Field(default_factory=CacheConfig)
    dataverse: DataverseConfig = Field(default_factory=DataverseConfig)
    registration: RegistrationConfig = Field(default_factory=RegistrationConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    cors: CorsConfig = Field(default_factory=CorsConfig)


_ENV_OVERRIDES = {
    "ACCOUNT_CACHE_TTL": ("cache", "account_ttl"),
    "EDUCATION_CACHE_TTL": ("cache", "education_ttl"),
    "EXPIRATION_CACHE_TTL": ("cache", "expiration_ttl"),
    "DATAVERSE_RATE_LIMIT": ("dataverse", "requests_per_minute"),
    "REGISTRATION_EMAIL_CONFIRMATION_TIMEOUT_HOURS": ("registration", "session_ttl_hours"),
    "JWT_EXPIRES_MINUTES": ("auth", "token_expires_minutes"),
}


def _apply_env_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is None or not raw.strip():
            continue
        config_data.setdefault(section, {})
        config_data[section][key] = raw.strip()
    return config_data


def load_osot_config(config_path: Optional[Path] = None) -> OsotConfig:
    """
    Load and validate OSOT configuration from YAML file

    Args:
        config_path: Path to config file. Defaults to config/osot_config.yml

    Returns:
        Validated OsotConfig object. A missing file yields the defaults.

    Raises:
        ValidationError: If config doesn't match schema
    """
    if config_path is None:
        config_path = Path(__file__).parent.parent.parent / "config" / "osot_config.yml"

    config_data: Dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("Config file not found: %s (using defaults)", config_path)

    config_data = _apply_env_overrides(config_data)

    try:
        config = OsotConfig(**config_data)
        logger.info("Loaded OSOT config from %s", config_path)
        return config
    except ValidationError as e:
        logger.error("Config validation failed: %s", e)
        raise
