"""
auth/login.py -- Password login with progressive lockout.

CredentialVerifier.login() runs these steps in order; each failure stops the
flow with a typed AuthError:

  1. Find the account by email           -> NotFoundError (user_does_not_exist)
  2. Active block                        -> BlockedError, password NOT checked
  3. Lapsed block                        -> attempts reset to 0 and persisted
  4. bcrypt comparison
  5. Mismatch: attempts + 1, persisted   -> WrongPasswordError while <= limit,
     else block_expires stamped          -> BlockedError
  6. Match: attempts reset, access audited, token issued

Counter writes happen before the error is raised, so an attempt is never lost
because the request ultimately failed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from auth.auditor import AccessAuditor
from auth.errors import BlockedError, NotFoundError, WrongPasswordError, persistence_errors
from auth.lockout import block_is_expired, block_until, is_blocked, limit_exceeded
from auth.models import AccountSummary, LoginResult, RequestMeta, utc_now
from auth.store import AccountStore
from auth.tokens import TokenService, burn_password_check, verify_password
from core.config import AuthPolicy

logger = logging.getLogger("accountguard.auth.login")


class CredentialVerifier:
    def __init__(
        self,
        store: AccountStore,
        tokens: TokenService,
        auditor: AccessAuditor,
        policy: AuthPolicy,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.auditor = auditor
        self.policy = policy
        self.clock = clock
        # Builds the timing dummy hash now rather than on the first unknown email.
        burn_password_check("", policy.bcrypt_rounds)

    def login(self, email: str, password: str, meta: RequestMeta) -> LoginResult:
        now = self.clock()
        with persistence_errors():
            account = self.store.find_by_email(email)
            if account is None:
                burn_password_check(password, self.policy.bcrypt_rounds)
                raise NotFoundError("User does not exist.", code="user_does_not_exist")

            if is_blocked(account, now):
                logger.info("Login refused for %s: blocked until %s", account.email, account.block_expires.isoformat())
                raise BlockedError()

            if block_is_expired(account, now, self.policy):
                account.login_attempts = 0
                self.store.update_account(account.id, login_attempts=0)
                logger.info("Block lapsed for %s; attempt budget reset", account.email)

            if not verify_password(password, account.password_hash):
                self._record_failure(account.id, account.email, account.login_attempts + 1, now)

            account.login_attempts = 0
            self.store.update_account(account.id, login_attempts=0)

        self.auditor.record(account.email, meta)
        token = self.tokens.issue(account.id)
        summary = AccountSummary.from_account(account, expose_verification=self.policy.expose_verification)
        return LoginResult(token=token, user=summary)

    def _record_failure(self, account_id: str, email: str, attempts: int, now: datetime) -> None:
        """Persist a failed attempt, block when the limit is crossed, and raise."""
        self.store.update_account(account_id, login_attempts=attempts)
        if not limit_exceeded(attempts, self.policy):
            logger.info("Wrong password for %s (attempt %d/%d)", email, attempts, self.policy.attempt_limit)
            raise WrongPasswordError()
        expires = block_until(now, self.policy)
        self.store.update_account(account_id, block_expires=expires)
        logger.warning("Account %s blocked until %s after %d failed attempts", email, expires.isoformat(), attempts)
        raise BlockedError()
