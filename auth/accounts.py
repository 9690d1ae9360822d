"""
auth/accounts.py -- Registration, profile and account administration.

Thin use cases around the store: unique-email checks before writes, password
hashing, and redaction into AccountSummary / AccountProfile. Lockout and token
logic live in login.py and tokens.py; this module only calls into them.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable

from auth.errors import (
    AlreadyExistsError,
    NotFoundError,
    UnauthorizedError,
    ValidationFailedError,
    WrongPasswordError,
    persistence_errors,
)
from auth.models import (
    EPOCH,
    ROLES,
    Account,
    AccountChanges,
    AccountProfile,
    AccountSummary,
    LoginResult,
    Message,
    ProfileChanges,
)
from auth.store import AccountStore
from auth.tokens import TokenService, hash_password, verify_password
from core.config import AuthPolicy

logger = logging.getLogger("accountguard.auth.accounts")


class AccountService:
    def __init__(self, store: AccountStore, tokens: TokenService, policy: AuthPolicy) -> None:
        self.store = store
        self.tokens = tokens
        self.policy = policy

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, name: str, email: str, password: str) -> LoginResult:
        """Create a user-role account and sign it in.

        The new account starts unverified with a fresh verification code.
        No AccessRecord is written: the audit log covers logins and refreshes.
        """
        password_hash = hash_password(password, self.policy.bcrypt_rounds)
        account = self._create(Account(name=name, email=email, password_hash=password_hash))
        logger.info("Registered %s", account.email)
        return LoginResult(
            token=self.tokens.issue(account.id),
            user=AccountSummary.from_account(account, expose_verification=self.policy.expose_verification),
        )

    def create_account(
        self,
        name: str,
        email: str,
        password: str,
        role: str = "user",
        *,
        verified: bool = False,
        phone: str | None = None,
        city: str | None = None,
        country: str | None = None,
    ) -> AccountSummary:
        """Admin/seed path: create an account of any role without signing in."""
        account = self._create(
            Account(
                name=name,
                email=email,
                password_hash=hash_password(password, self.policy.bcrypt_rounds),
                role=role,
                verified=verified,
                phone=phone,
                city=city,
                country=country,
            )
        )
        logger.info("Created %s account %s", role, account.email)
        return AccountSummary.from_account(account, expose_verification=self.policy.expose_verification)

    def _create(self, account: Account) -> Account:
        account.verification = str(uuid.uuid4())
        with persistence_errors():
            if self.store.email_exists(account.email):
                raise AlreadyExistsError()
            account_id = self.store.create_account(account)
            created = self.store.find_by_id(account_id)
        if created is None:
            raise NotFoundError()
        return created

    # ------------------------------------------------------------------
    # Profile (the caller's own account)
    # ------------------------------------------------------------------

    def get_profile(self, account_id: str) -> AccountProfile:
        return AccountProfile.from_account(self._require(account_id))

    def update_profile(self, account_id: str, changes: ProfileChanges) -> AccountProfile:
        """Apply profile changes. Role is not part of ProfileChanges, so it cannot move here."""
        fields = changes.as_fields()
        with persistence_errors():
            if "email" in fields and self.store.email_exists_excluding(account_id, fields["email"]):
                raise AlreadyExistsError()
            if fields and not self.store.update_account(account_id, **fields):
                raise NotFoundError()
        return self.get_profile(account_id)

    def change_password(self, account_id: str, old_password: str, new_password: str) -> Message:
        """Replace the password after checking the current one.

        A wrong current password does not count toward the login lockout.
        """
        account = self._require(account_id)
        if not verify_password(old_password, account.password_hash):
            raise WrongPasswordError()
        with persistence_errors():
            new_hash = hash_password(new_password, self.policy.bcrypt_rounds)
            self.store.update_account(account_id, password_hash=new_hash)
        logger.info("Password changed for %s", account.email)
        return Message(msg="PASSWORD_CHANGED")

    # ------------------------------------------------------------------
    # Authorization and administration
    # ------------------------------------------------------------------

    def check_role(self, account_id: str, roles: Iterable[str]) -> Account:
        account = self._require(account_id)
        if account.role not in set(roles):
            logger.info("Role check failed for %s (role=%s)", account.email, account.role)
            raise UnauthorizedError()
        return account

    def get_account(self, account_id: str) -> AccountSummary:
        return AccountSummary.from_account(
            self._require(account_id), expose_verification=self.policy.expose_verification
        )

    def list_accounts(self) -> list[AccountSummary]:
        with persistence_errors():
            accounts = self.store.list_accounts()
        return [
            AccountSummary.from_account(a, expose_verification=self.policy.expose_verification) for a in accounts
        ]

    def update_account(self, account_id: str, changes: AccountChanges) -> AccountSummary:
        """Admin edit of another account, role included.

        The email must stay unique across every other account.
        """
        fields = changes.as_fields()
        if "role" in fields and fields["role"] not in ROLES:
            raise ValidationFailedError(f"Unknown role {fields['role']!r}.")
        with persistence_errors():
            if "email" in fields and self.store.email_exists_excluding(account_id, fields["email"]):
                raise AlreadyExistsError()
            if fields and not self.store.update_account(account_id, **fields):
                raise NotFoundError()
        logger.info("Account %s updated by admin: %s", account_id, ", ".join(sorted(fields)))
        return self.get_account(account_id)

    def unblock(self, email: str) -> bool:
        """Clear lockout state for an email. Returns False if no such account."""
        with persistence_errors():
            account = self.store.find_by_email(email)
            if account is None:
                return False
            self.store.update_account(account.id, login_attempts=0, block_expires=EPOCH)
        logger.info("Lockout cleared for %s", account.email)
        return True

    def _require(self, account_id: str) -> Account:
        with persistence_errors():
            account = self.store.find_by_id(account_id)
        if account is None:
            raise NotFoundError()
        return account
