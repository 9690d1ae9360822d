"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, almost zero logic). Stores and
services do the work. The only behaviour here is projection: AccountSummary
and AccountProfile are the redacted shapes that leave the service layer, so
password hashes and lockout counters can never be serialized by accident.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

# "Unset" block_expires. Any real timestamp compares greater than this.
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

ROLES = ("user", "admin")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Account:
    """A registered identity with credentials and role.

    id is None before the record is written to the database; the store
    assigns an opaque uuid hex string on insert and it never changes.

    verification is the email-verification code. It stays on the record after
    verification for audit visibility but is no longer consulted once
    verified is True.

    block_expires is EPOCH when no block has ever been applied.
    """

    email: str
    password_hash: str
    name: str = ""
    role: str = "user"
    id: str | None = None
    verified: bool = False
    verification: str | None = None
    login_attempts: int = 0
    block_expires: datetime = EPOCH
    phone: str | None = None
    city: str | None = None
    country: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class RequestMeta:
    """Origin of a request, recorded on audit entries and reset requests."""

    ip: str = "unknown"
    browser: str = "unknown"
    country: str = "XX"


@dataclass(frozen=True)
class AccessRecord:
    """Immutable audit entry written once per successful authentication."""

    email: str
    ip: str
    browser: str
    country: str
    id: int | None = None
    created_at: str | None = None


@dataclass
class PasswordResetRequest:
    """A forgot-password request.

    The *_request fields describe where the reset was asked for; the *_changed
    fields are stamped when the code is consumed. Both sets are kept so the two
    origins can be compared later.
    """

    email: str
    verification: str
    ip_request: str = "unknown"
    browser_request: str = "unknown"
    country_request: str = "XX"
    used: bool = False
    ip_changed: str | None = None
    browser_changed: str | None = None
    country_changed: str | None = None
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Claims:
    """Payload signed into a token."""

    account_id: str
    expires_at: int  # Unix seconds


# ---------------------------------------------------------------------------
# Response projections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountSummary:
    """Redacted account returned by login, register and admin endpoints."""

    id: str
    name: str
    email: str
    role: str
    verified: bool
    verification: str | None = None

    @classmethod
    def from_account(cls, account: Account, *, expose_verification: bool = False) -> "AccountSummary":
        return cls(
            id=account.id or "",
            name=account.name,
            email=account.email,
            role=account.role,
            verified=account.verified,
            verification=account.verification if expose_verification else None,
        )


@dataclass(frozen=True)
class AccountProfile:
    """The caller's own profile. Never carries credentials or lockout state."""

    name: str
    email: str
    role: str
    verified: bool
    phone: str | None = None
    city: str | None = None
    country: str | None = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountProfile":
        return cls(
            name=account.name,
            email=account.email,
            role=account.role,
            verified=account.verified,
            phone=account.phone,
            city=account.city,
            country=account.country,
        )


@dataclass(frozen=True)
class LoginResult:
    token: str
    user: AccountSummary


@dataclass(frozen=True)
class VerifyResult:
    email: str
    verified: bool


@dataclass(frozen=True)
class ResetRequested:
    email: str
    msg: str = "RESET_EMAIL_SENT"
    verification: str | None = None


@dataclass(frozen=True)
class Message:
    msg: str


@dataclass
class ProfileChanges:
    """Fields a caller may change on their own profile. None means unchanged."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    city: str | None = None
    country: str | None = None

    def as_fields(self) -> dict:
        values = {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "city": self.city,
            "country": self.country,
        }
        return {k: v for k, v in values.items() if v is not None}


@dataclass
class AccountChanges(ProfileChanges):
    """Admin edit of any account: the profile fields plus role."""

    role: str | None = None

    def as_fields(self) -> dict:
        fields = super().as_fields()
        if self.role is not None:
            fields["role"] = self.role
        return fields
