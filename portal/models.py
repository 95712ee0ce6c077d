"""Request and response models for portal accounts and organizations."""

import re
from datetime import datetime
from enum import Enum
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, Field

from osot.utils.url_sanitizer import UrlValidationError, sanitize_url
from osot.validation import is_valid_email

SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


class AccountRole(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


def _email(value: str) -> str:
    value = value.strip().lower()
    if not is_valid_email(value):
        raise ValueError("Invalid email address")
    return value


def _website(value: str) -> str:
    if not value:
        return value
    try:
        return sanitize_url(value)
    except UrlValidationError as e:
        raise ValueError(str(e))


def _slug(value: str) -> str:
    value = value.strip().lower()
    if not SLUG_RE.match(value):
        raise ValueError("slug may only contain lowercase letters, numbers and hyphens")
    return value


Email = Annotated[str, AfterValidator(_email)]
Website = Annotated[str, AfterValidator(_website)]
Slug = Annotated[str, Field(min_length=1, max_length=100), AfterValidator(_slug)]
Name = Annotated[str, Field(min_length=1, max_length=200)]


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

class AccountCreate(BaseModel):
    name: Name
    email: Email
    phone: Optional[str] = Field(default=None, max_length=30)
    role: AccountRole = AccountRole.MEMBER
    status: AccountStatus = AccountStatus.ACTIVE
    organization_id: Optional[str] = None


class AccountUpdate(BaseModel):
    name: Optional[Name] = None
    email: Optional[Email] = None
    phone: Optional[str] = Field(default=None, max_length=30)
    role: Optional[AccountRole] = None
    status: Optional[AccountStatus] = None
    organization_id: Optional[str] = None


class Account(BaseModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    role: AccountRole
    status: AccountStatus
    organization_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

class OrganizationCreate(BaseModel):
    name: Name
    slug: Slug
    description: Optional[str] = Field(default=None, max_length=2000)
    website: Optional[Website] = None


class OrganizationUpdate(BaseModel):
    name: Optional[Name] = None
    slug: Optional[Slug] = None
    description: Optional[str] = Field(default=None, max_length=2000)
    website: Optional[Website] = None


class Organization(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    website: Optional[str] = None
    created_at: datetime
    updated_at: datetime
