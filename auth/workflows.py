"""
auth/workflows.py -- Single-use code workflows: email verification and password reset.

Both workflows look a record up by code with a predicate that excludes
already-consumed records (verified = 0 / used = 0), then consume it with a
conditional UPDATE on the same predicate. A replayed or concurrent second
request therefore fails with the same NotFound* error as an unknown code.

Verification:  Unverified --(matching code)--> Verified   (terminal)
Reset:         request_reset() creates an unused request with a fresh code;
               reset_password() flips used once, stamping the change origin
               next to the request origin, and rewrites the hash in the same
               transaction. A caller that loses the claim changes nothing.
"""

from __future__ import annotations

import logging
import uuid

from auth.errors import NotFoundError, NotFoundOrAlreadyUsedError, NotFoundOrAlreadyVerifiedError, persistence_errors
from auth.models import Message, PasswordResetRequest, RequestMeta, ResetRequested, VerifyResult
from auth.store import AccountStore
from auth.tokens import hash_password
from core.config import AuthPolicy

logger = logging.getLogger("accountguard.auth.workflows")


class VerificationWorkflow:
    def __init__(self, store: AccountStore) -> None:
        self.store = store

    def verify(self, code: str) -> VerifyResult:
        with persistence_errors():
            account = self.store.find_unverified_by_code(code)
            if account is None or not self.store.mark_verified(account.id):
                raise NotFoundOrAlreadyVerifiedError()
        logger.info("Email verified for %s", account.email)
        return VerifyResult(email=account.email, verified=True)


class PasswordResetWorkflow:
    def __init__(self, store: AccountStore, policy: AuthPolicy) -> None:
        self.store = store
        self.policy = policy

    def request_reset(self, email: str, meta: RequestMeta) -> ResetRequested:
        """Create a reset request for an existing account.

        Unknown emails fail with NotFoundError before any record is written.
        The code is echoed back only outside production; in production it
        would travel by email, which this service does not send.
        """
        with persistence_errors():
            account = self.store.find_by_email(email)
            if account is None:
                raise NotFoundError("User does not exist.", code="user_does_not_exist")
            request = PasswordResetRequest(
                email=account.email,
                verification=str(uuid.uuid4()),
                ip_request=meta.ip,
                browser_request=meta.browser,
                country_request=meta.country,
            )
            self.store.create_reset_request(request)
        logger.info("Password reset requested for %s from %s", account.email, meta.ip)
        return ResetRequested(
            email=account.email,
            verification=request.verification if self.policy.expose_verification else None,
        )

    def reset_password(self, code: str, new_password: str, meta: RequestMeta) -> Message:
        with persistence_errors():
            request = self.store.find_unused_reset(code)
            if request is None:
                raise NotFoundOrAlreadyUsedError()
            account = self.store.find_by_email(request.email)
            if account is None:
                raise NotFoundError()
            new_hash = hash_password(new_password, self.policy.bcrypt_rounds)
            if not self.store.consume_reset(request.id, account.id, new_hash, meta):
                raise NotFoundOrAlreadyUsedError()
        if request.ip_request != meta.ip:
            logger.warning(
                "Password for %s reset from %s; reset was requested from %s",
                account.email,
                meta.ip,
                request.ip_request,
            )
        else:
            logger.info("Password reset completed for %s", account.email)
        return Message(msg="PASSWORD_CHANGED")
