"""
auth/errors.py -- Typed failures raised by the account security services.

Every failure a caller can see is an AuthError carrying a stable machine code
and the HTTP status the API layer maps it to. The services raise these; the
single exception handler in api/main.py renders them. Lower-layer exceptions
(SQLAlchemy, cryptography, jose) never cross a service boundary -- they are
converted here or at the call site.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger("accountguard.auth.errors")


class AuthError(Exception):
    """Base class for every classified failure."""

    status_code: int = 400
    code: str = "auth_error"
    message: str = "Request could not be completed."

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        if message is not None:
            self.message = message
        if code is not None:
            self.code = code
        super().__init__(self.message)


class NotFoundError(AuthError):
    status_code = 404
    code = "not_found"
    message = "Not found."


class NotFoundOrAlreadyVerifiedError(NotFoundError):
    code = "not_found_or_already_verified"
    message = "Verification code not found or account already verified."


class NotFoundOrAlreadyUsedError(NotFoundError):
    code = "not_found_or_already_used"
    message = "Reset code not found or already used."


class AlreadyExistsError(AuthError):
    status_code = 422
    code = "email_already_exists"
    message = "An account with that email already exists."


class BlockedError(AuthError):
    status_code = 409
    code = "blocked_user"
    message = "Account is temporarily blocked."


class WrongPasswordError(AuthError):
    status_code = 409
    code = "wrong_password"
    message = "Wrong password."


class BadTokenError(AuthError):
    """Token could not be decrypted, verified or is expired.

    reason names the failing stage for logs only; callers always see bad_token.
    """

    status_code = 409
    code = "bad_token"
    message = "Invalid or expired token."

    def __init__(self, reason: str) -> None:
        super().__init__()
        self.reason = reason


class UnauthorizedError(AuthError):
    status_code = 401
    code = "unauthorized"
    message = "Not authorized."


class ValidationFailedError(AuthError):
    status_code = 422
    code = "validation_error"
    message = "Request validation failed."


class PersistenceError(ValidationFailedError):
    code = "persistence_error"
    message = "The record could not be saved."


@contextmanager
def persistence_errors() -> Iterator[None]:
    """Convert store exceptions raised inside the block into AuthErrors.

    IntegrityError means a unique constraint fired (duplicate email); every
    other SQLAlchemyError becomes a PersistenceError. The original exception is
    chained and logged, never sent to the client.
    """
    try:
        yield
    except IntegrityError as exc:
        logger.info("Integrity violation: %s", exc.orig)
        raise AlreadyExistsError() from exc
    except SQLAlchemyError as exc:
        logger.error("Store operation failed: %s", exc.__class__.__name__)
        raise PersistenceError() from exc
