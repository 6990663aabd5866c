"""
API request and response models for Storekeep REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
separate from the dataclasses in auth/models.py and catalog/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire names are camelCase (fullName, yearOfBirth, createdAt...). Models
inherit from _CamelModel, which generates the aliases and still accepts the
snake_case names. FastAPI serializes response models by alias by default.

The password digest has no field in any response model, so it cannot be
serialized out by accident.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import Role, Session, User, UserPage, UserStatus
from auth.passwords import MAX_PASSWORD_BYTES, password_fits
from catalog.models import Category, Product

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

NAME_PATTERN = r"^[a-zA-Z0-9\s'-]+$"
FULL_NAME_PATTERN = r"^[^\W\d_]+(?:[\s'.-][^\W\d_]+)*$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
PHONE_PATTERN = r"^\+?\d{7,15}$"
_MIN_BIRTH_YEAR = 1900


def _current_year() -> int:
    return datetime.now(timezone.utc).year


def _check_birth_year(value: Optional[int]) -> Optional[int]:
    if value is not None and value > _current_year():
        raise ValueError("year of birth cannot be in the future")
    return value


def _check_password_bytes(value: Optional[str]) -> Optional[str]:
    if value is not None and not password_fits(value):
        raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
    return value


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Accounts -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(_CamelModel):
    """Request body for POST /auth/register."""

    full_name: str = Field(min_length=2, max_length=100, pattern=FULL_NAME_PATTERN)
    year_of_birth: int = Field(ge=_MIN_BIRTH_YEAR)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    # bcrypt accepts at most 72 bytes; multibyte input is checked below.
    password: str = Field(min_length=6, max_length=72)
    phone: str = Field(pattern=PHONE_PATTERN)
    role: Role = Role.USER
    avatar: Optional[str] = Field(default=None, max_length=500)

    @field_validator("year_of_birth")
    @classmethod
    def _not_in_future(cls, value: int) -> int:
        return _check_birth_year(value)

    @field_validator("password")
    @classmethod
    def _fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)

    def to_domain(self) -> User:
        return User(
            email=self.email,
            full_name=self.full_name,
            year_of_birth=self.year_of_birth,
            phone=self.phone,
            role=self.role,
            avatar=self.avatar,
        )


class VerifyOtpRequest(_CamelModel):
    email: str = Field(max_length=255)
    otp: str = Field(min_length=1, max_length=10)


class LoginRequest(_CamelModel):
    email: str = Field(max_length=255)
    password: str = Field(min_length=1, max_length=72)


class RefreshRequest(BaseModel):
    """Request body for POST /auth/get-access-token (snake_case on the wire)."""

    refresh_token: str = Field(min_length=1)


class UserPatch(_CamelModel):
    """Request body for PATCH /auth/{id}. Every field optional."""

    model_config = ConfigDict(extra="forbid")

    full_name: Optional[str] = Field(default=None, min_length=2, max_length=100, pattern=FULL_NAME_PATTERN)
    year_of_birth: Optional[int] = Field(default=None, ge=_MIN_BIRTH_YEAR)
    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=6, max_length=72)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    role: Optional[Role] = None
    avatar: Optional[str] = Field(default=None, max_length=500)

    @field_validator("year_of_birth")
    @classmethod
    def _not_in_future(cls, value: Optional[int]) -> Optional[int]:
        return _check_birth_year(value)

    @field_validator("password")
    @classmethod
    def _fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        return _check_password_bytes(value)


# ---------------------------------------------------------------------------
# Accounts -- responses
# ---------------------------------------------------------------------------


class UserResponse(_CamelModel):
    id: int
    full_name: str
    year_of_birth: int
    email: str
    phone: str
    role: Role
    status: UserStatus
    avatar: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            full_name=user.full_name,
            year_of_birth=user.year_of_birth,
            email=user.email,
            phone=user.phone,
            role=user.role,
            status=user.status,
            avatar=user.avatar,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class UserEnvelope(BaseModel):
    message: Optional[str] = None
    data: UserResponse


class UserListResponse(_CamelModel):
    total: int
    page: int
    total_pages: int
    data: list[UserResponse]

    @classmethod
    def from_domain(cls, page: UserPage) -> "UserListResponse":
        return cls(
            total=page.total,
            page=page.page,
            total_pages=page.total_pages,
            data=[UserResponse.from_domain(u) for u in page.data],
        )


class LoginResponse(_CamelModel):
    access_token: str
    refresh_token: str


class AccessTokenResponse(BaseModel):
    message: str
    access_token: str


class SessionResponse(_CamelModel):
    id: int
    user_id: int
    ip_address: Optional[str]
    device_info: Optional[str]
    created_at: str

    @classmethod
    def from_domain(cls, session: Session) -> "SessionResponse":
        return cls(
            id=session.id,
            user_id=session.user_id,
            ip_address=session.ip_address,
            device_info=session.device_info,
            created_at=session.created_at,
        )


class SessionEnvelope(BaseModel):
    message: Optional[str] = None
    data: SessionResponse


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class CategoryCreate(_CamelModel):
    name: str = Field(min_length=2, max_length=100, pattern=NAME_PATTERN)


class CategoryResponse(_CamelModel):
    id: int
    name: str
    created_at: str

    @classmethod
    def from_domain(cls, category: Category) -> "CategoryResponse":
        return cls(id=category.id, name=category.name, created_at=category.created_at)


class ProductCreate(_CamelModel):
    name: str = Field(min_length=2, max_length=100, pattern=NAME_PATTERN)
    price: Decimal = Field(ge=Decimal("0.01"), decimal_places=2, max_digits=12)
    category_id: int = Field(ge=1)


class ProductUpdate(_CamelModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=2, max_length=100, pattern=NAME_PATTERN)
    price: Optional[Decimal] = Field(default=None, ge=Decimal("0.01"), decimal_places=2, max_digits=12)
    category_id: Optional[int] = Field(default=None, ge=1)


class ProductResponse(_CamelModel):
    id: int
    name: str
    price: float
    category_id: int
    created_at: str
    category: Optional[CategoryResponse] = None

    @classmethod
    def from_domain(cls, product: Product) -> "ProductResponse":
        return cls(
            id=product.id,
            name=product.name,
            price=float(product.price),
            category_id=product.category_id,
            created_at=product.created_at,
            category=CategoryResponse.from_domain(product.category) if product.category else None,
        )


class UploadResponse(BaseModel):
    url: str
