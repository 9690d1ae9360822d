"""
auth/store.py -- SQLAlchemy Core persistence layer for account security.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account / _row_to_access / _row_to_reset are the mappers. Services
never touch SQL directly.

Tables:
  accounts          -- one row per account, including lockout counters.
  user_access       -- append-only audit log of successful authentications.
  forgot_passwords  -- password reset requests; `used` flips once.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Single-use transitions (verify, consume reset code) are conditional UPDATEs
  whose WHERE clause repeats the lookup predicate (verified = 0 / used = 0).
  rowcount tells the caller whether it won; a concurrent second request finds
  zero matching rows and fails cleanly. consume_reset() claims the request
  before it touches the password, inside one transaction, so the loser of a
  race writes nothing.

  update_account() writes only the fields it is given, in one statement. It
  does not compare-and-swap login_attempts: two concurrent failed logins may
  both read N and both write N + 1.

Timestamps are ISO 8601 UTC strings. block_expires "unset" is the Unix epoch.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import EPOCH, AccessRecord, Account, PasswordResetRequest, RequestMeta

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'accountguard_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(100), nullable=False, server_default=""),
    Column("password_hash", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("verified", Integer, nullable=False, server_default="0"),
    Column("verification", String(64)),
    Column("login_attempts", Integer, nullable=False, server_default="0"),
    Column("block_expires", String(32), nullable=False),
    Column("phone", String(50)),
    Column("city", String(100)),
    Column("country", String(100)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)
Index("ix_accounts_verification", _accounts.c.verification)

_user_access = Table(
    "user_access",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False),
    Column("ip", String(64), nullable=False),
    Column("browser", String(255), nullable=False),
    Column("country", String(8), nullable=False),
    Column("created_at", String(32), nullable=False),
)

_forgot_passwords = Table(
    "forgot_passwords",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False),
    Column("verification", String(64), nullable=False, unique=True),
    Column("ip_request", String(64), nullable=False),
    Column("browser_request", String(255), nullable=False),
    Column("country_request", String(8), nullable=False),
    Column("used", Integer, nullable=False, server_default="0"),
    Column("ip_changed", String(64)),
    Column("browser_changed", String(255)),
    Column("country_changed", String(8)),
    Column("created_at", String(32), nullable=False),
)

# Columns update_account() accepts. Anything else is a programming error.
_UPDATABLE = {
    "email",
    "name",
    "password_hash",
    "role",
    "verified",
    "verification",
    "login_attempts",
    "block_expires",
    "phone",
    "city",
    "country",
}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: str | None) -> datetime:
    if not value:
        return EPOCH
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account, AccessRecord and PasswordResetRequest entities.

    Usage:
        store = AccountStore("sqlite:///:memory:")
        account_id = store.create_account(Account(email="a@x.com", password_hash=hash_password("pw")))
        account = store.find_by_email("A@x.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Account queries
    # ------------------------------------------------------------------

    def has_accounts(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_accounts)).scalar()
        return (result or 0) > 0

    def create_account(self, account: Account) -> str:
        """Insert a new account and return its assigned opaque id.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Services run this inside persistence_errors(), which maps that to
        AlreadyExistsError.
        """
        account_id = uuid.uuid4().hex
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _accounts.insert().values(
                    id=account_id,
                    email=normalize_email(account.email),
                    name=account.name,
                    password_hash=account.password_hash,
                    role=account.role,
                    verified=1 if account.verified else 0,
                    verification=account.verification,
                    login_attempts=account.login_attempts,
                    block_expires=_to_iso(account.block_expires),
                    phone=account.phone,
                    city=account.city,
                    country=account.country,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return account_id

    def find_by_email(self, email: str) -> Account | None:
        """Look up an account by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_id(self, account_id: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_unverified_by_code(self, code: str) -> Account | None:
        """Return the unverified account holding this verification code.

        Verified accounts are excluded by the query itself, so "already
        verified" and "no such code" look the same to the caller.
        """
        with self.engine.connect() as conn:
            row = conn.execute(
                _accounts.select().where((_accounts.c.verification == code) & (_accounts.c.verified == 0))
            ).fetchone()
        return _row_to_account(row) if row is not None else None

    def list_accounts(self) -> list[Account]:
        with self.engine.connect() as conn:
            rows = conn.execute(_accounts.select().order_by(_accounts.c.email)).fetchall()
        return [_row_to_account(r) for r in rows]

    def update_account(self, account_id: str, **fields) -> bool:
        """Write the given fields of one account in a single UPDATE.

        Accepted fields: see _UPDATABLE. verified may be passed as bool and
        block_expires as datetime; both are converted for storage.

        Returns True if a row was updated, False if account_id was not found.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown account fields: {unknown!r}")
        if "verified" in fields:
            fields["verified"] = 1 if fields["verified"] else 0
        if "block_expires" in fields:
            fields["block_expires"] = _to_iso(fields["block_expires"])
        if "email" in fields:
            fields["email"] = normalize_email(fields["email"])
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def mark_verified(self, account_id: str) -> bool:
        """Flip verified to true. Returns False if the account was already verified."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where((_accounts.c.id == account_id) & (_accounts.c.verified == 0))
                .values(verified=1, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def email_exists(self, email: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_accounts.c.id).where(_accounts.c.email == normalize_email(email)).limit(1)
            ).fetchone()
        return row is not None

    def email_exists_excluding(self, account_id: str, email: str) -> bool:
        """True if another account (not account_id) already uses this email."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_accounts.c.id)
                .where((_accounts.c.email == normalize_email(email)) & (_accounts.c.id != account_id))
                .limit(1)
            ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Access log
    # ------------------------------------------------------------------

    def add_access(self, record: AccessRecord) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _user_access.insert().values(
                    email=normalize_email(record.email),
                    ip=record.ip,
                    browser=record.browser,
                    country=record.country,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_access(self, email: str) -> list[AccessRecord]:
        """Return audit entries for one email, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _user_access.select()
                .where(_user_access.c.email == normalize_email(email))
                .order_by(_user_access.c.id)
            ).fetchall()
        return [_row_to_access(r) for r in rows]

    # ------------------------------------------------------------------
    # Password reset requests
    # ------------------------------------------------------------------

    def create_reset_request(self, request: PasswordResetRequest) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _forgot_passwords.insert().values(
                    email=normalize_email(request.email),
                    verification=request.verification,
                    ip_request=request.ip_request,
                    browser_request=request.browser_request,
                    country_request=request.country_request,
                    used=0,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def find_unused_reset(self, code: str) -> PasswordResetRequest | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _forgot_passwords.select().where(
                    (_forgot_passwords.c.verification == code) & (_forgot_passwords.c.used == 0)
                )
            ).fetchone()
        return _row_to_reset(row) if row is not None else None

    def get_reset_request(self, request_id: int) -> PasswordResetRequest | None:
        with self.engine.connect() as conn:
            row = conn.execute(_forgot_passwords.select().where(_forgot_passwords.c.id == request_id)).fetchone()
        return _row_to_reset(row) if row is not None else None

    def consume_reset(self, request_id: int, account_id: str, password_hash: str, meta: RequestMeta) -> bool:
        """Claim a reset request and write the new password hash in one transaction.

        The claim (used 0 -> 1, stamping where it was consumed from) runs
        first. If it matches no row the request was already used or does not
        exist: nothing is written and False is returned. If the password write
        fails, the claim is rolled back with it.
        """
        with self.engine.begin() as conn:
            claimed = conn.execute(
                _forgot_passwords.update()
                .where((_forgot_passwords.c.id == request_id) & (_forgot_passwords.c.used == 0))
                .values(
                    used=1,
                    ip_changed=meta.ip,
                    browser_changed=meta.browser,
                    country_changed=meta.country,
                )
            )
            if claimed.rowcount == 0:
                return False
            conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(password_hash=password_hash, updated_at=_now_iso())
            )
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        name=row.name,
        password_hash=row.password_hash,
        role=row.role,
        verified=bool(row.verified),
        verification=row.verification,
        login_attempts=row.login_attempts,
        block_expires=_from_iso(row.block_expires),
        phone=row.phone,
        city=row.city,
        country=row.country,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_access(row) -> AccessRecord:
    return AccessRecord(
        id=row.id,
        email=row.email,
        ip=row.ip,
        browser=row.browser,
        country=row.country,
        created_at=row.created_at,
    )


def _row_to_reset(row) -> PasswordResetRequest:
    return PasswordResetRequest(
        id=row.id,
        email=row.email,
        verification=row.verification,
        ip_request=row.ip_request,
        browser_request=row.browser_request,
        country_request=row.country_request,
        used=bool(row.used),
        ip_changed=row.ip_changed,
        browser_changed=row.browser_changed,
        country_changed=row.country_changed,
        created_at=row.created_at,
    )
