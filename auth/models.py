"""
auth/models.py -- Domain dataclasses and enums for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these types only own the domain shape.

Role and UserStatus are closed enumerations. Allow-lists elsewhere are
frozensets of Role members, never raw strings.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    USER = "User"
    ADMIN = "Admin"
    SUPER_ADMIN = "SuperAdmin"
    CEO = "Ceo"


class UserStatus(str, Enum):
    INACTIVE = "Inactive"
    ACTIVE = "Active"


@dataclass
class User:
    """A registered account.

    hashed_password is the bcrypt digest. It is write-only: response models
    in api/models.py have no field for it and the logging helpers never
    receive it.

    status starts Inactive and only ever moves to Active (see
    AccountManager.activate). id is None before the record is written.
    """

    email: str
    full_name: str
    year_of_birth: int
    phone: str
    hashed_password: str = ""
    role: Role = Role.USER
    status: UserStatus = UserStatus.INACTIVE
    avatar: str | None = None
    id: int | None = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass
class Session:
    """One login event. Only the most recent row per user is reachable."""

    user_id: int
    ip_address: str | None = None
    device_info: str | None = None
    id: int | None = None
    created_at: str = ""


@dataclass(frozen=True)
class Identity:
    """The {identity, role} pair the Role Gate attaches to a request."""

    id: int
    role: Role


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass
class UserPage:
    """One page of a filtered, sorted user listing."""

    total: int
    page: int
    total_pages: int
    data: list[User]
