"""
API request and response models for AccountGuard REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two
with the from_domain() factories below.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from auth.models import AccountProfile, AccountSummary

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _normalize_email(value: object) -> object:
    """Lowercase and strip before the pattern check, so " A@X.com" is accepted."""
    return value.strip().lower() if isinstance(value, str) else value


# The BeforeValidator is listed last so it wraps the constrained schema and
# runs first.
_Email = Annotated[str, Field(max_length=255, pattern=EMAIL_PATTERN), BeforeValidator(_normalize_email)]
_Password = Annotated[str, Field(min_length=5, max_length=100)]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    user = "user"
    admin = "admin"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    name: str = Field(min_length=3, max_length=100)
    email: _Email
    password: _Password


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: _Email
    password: str = Field(min_length=1, max_length=100)


class VerifyRequest(BaseModel):
    """Request body for POST /api/v1/auth/verify. id is the emailed verification code."""

    id: str = Field(min_length=1, max_length=64)


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/forgot."""

    email: _Email


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/reset. id is the reset code."""

    id: str = Field(min_length=1, max_length=64)
    password: _Password


class ProfileUpdate(BaseModel):
    """Request body for PATCH /api/v1/profile.

    extra="forbid" rejects attempts to send role (or any other field) with 422
    rather than silently dropping it.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=3, max_length=100)
    email: Optional[_Email] = None
    phone: Optional[str] = Field(default=None, max_length=50)
    city: Optional[str] = Field(default=None, max_length=100)
    country: Optional[str] = Field(default=None, max_length=100)


class ChangePasswordRequest(BaseModel):
    """Request body for POST /api/v1/profile/change-password."""

    old_password: str = Field(min_length=1, max_length=100)
    new_password: _Password


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users (admin only)."""

    name: str = Field(min_length=3, max_length=100)
    email: _Email
    password: _Password
    role: RoleEnum = RoleEnum.user
    phone: Optional[str] = Field(default=None, max_length=50)
    city: Optional[str] = Field(default=None, max_length=100)
    country: Optional[str] = Field(default=None, max_length=100)


class UserUpdate(BaseModel):
    """Request body for PATCH /api/v1/users/{id} (admin only). Unlike ProfileUpdate, role may change."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=3, max_length=100)
    email: Optional[_Email] = None
    role: Optional[RoleEnum] = None
    phone: Optional[str] = Field(default=None, max_length=50)
    city: Optional[str] = Field(default=None, max_length=100)
    country: Optional[str] = Field(default=None, max_length=100)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserSummary(BaseModel):
    """Redacted account. verification is present only outside production."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    role: str
    verified: bool
    verification: Optional[str] = None

    @classmethod
    def from_domain(cls, summary: AccountSummary) -> "UserSummary":
        return cls(
            id=summary.id,
            name=summary.name,
            email=summary.email,
            role=summary.role,
            verified=summary.verified,
            verification=summary.verification,
        )


class AuthResponse(BaseModel):
    """Response for login and register: the bearer token plus the redacted account."""

    model_config = ConfigDict(frozen=True)

    token: str
    user: UserSummary


class TokenResponse(BaseModel):
    """Response for GET /api/v1/auth/token. The account is intentionally omitted."""

    model_config = ConfigDict(frozen=True)

    token: str


class VerifyResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str
    verified: bool


class ForgotPasswordResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str
    msg: str
    verification: Optional[str] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    msg: str


class ProfileResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    email: str
    role: str
    verified: bool
    phone: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    @classmethod
    def from_domain(cls, profile: AccountProfile) -> "ProfileResponse":
        return cls(
            name=profile.name,
            email=profile.email,
            role=profile.role,
            verified=profile.verified,
            phone=profile.phone,
            city=profile.city,
            country=profile.country,
        )


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
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = {}
