"""
auth/tokens.py -- Password hashing, token signing and the token service.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). Cost factor comes from
       AuthPolicy.bcrypt_rounds, passed in by the services, so tests can run at
       the minimum cost without touching the environment. _dummy_hash() lets
       the login path spend the same bcrypt work on an unknown email as on a
       wrong password.

  Tokens have two layers:
       1. TokenSigner -- python-jose HS256 JWT with {sub, exp}. Integrity.
       2. SecretCodec -- Fernet encryption of the signed JWT. Confidentiality.
       The ciphertext is what clients carry as `Authorization: Bearer ...`.
       Reading a token runs the layers in reverse: decrypt, verify signature,
       parse claims, check expiry. Each stage raises BadTokenError with its
       own reason so logs can tell a forged ciphertext from an expired token;
       callers only ever see "bad_token".

  Expiry is checked against the injected clock rather than jose's internal
       time.time() call, so tests can move time forward without sleeping.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime
from functools import lru_cache
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.crypto import DecryptError, SecretCodec
from auth.errors import BadTokenError, NotFoundError, ValidationFailedError, persistence_errors
from auth.models import Claims, RequestMeta, utc_now
from core.config import DEFAULT_BCRYPT_ROUNDS, AuthPolicy, Settings

if TYPE_CHECKING:
    from auth.auditor import AccessAuditor
    from auth.store import AccountStore

logger = logging.getLogger("accountguard.auth.tokens")

_ALGORITHM = "HS256"

# Account ids are uuid4 hex strings assigned by the store.
_ACCOUNT_ID_RE = re.compile(r"^[0-9a-f]{32}$")

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Services pass AuthPolicy.bcrypt_rounds. Passwords longer than 72 bytes are
    truncated by bcrypt; the API layer caps password length at 100 characters.
    """
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash (constant time)."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


@lru_cache(maxsize=None)
def _dummy_hash(rounds: int) -> str:
    # One throwaway hash per cost factor; bcrypt checks run at the cost stored in the hash.
    return hash_password("accountguard_timing_dummy", rounds)


def burn_password_check(plain: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> None:
    """Spend one bcrypt comparison at the given cost against a throwaway hash."""
    verify_password(plain, _dummy_hash(rounds))


def is_account_id(value: object) -> bool:
    return isinstance(value, str) and bool(_ACCOUNT_ID_RE.match(value))


# ---------------------------------------------------------------------------
# JWT signing
# ---------------------------------------------------------------------------


class TokenSigner:
    """Signs and verifies claims with HS256. Expiry is left to the caller."""

    def __init__(self, secret: str) -> None:
        self._secret = secret

    def sign(self, claims: Claims) -> str:
        payload = {"sub": claims.account_id, "exp": claims.expires_at}
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str) -> dict:
        """Return the payload if the signature is valid. Raises JWTError otherwise."""
        return jwt.decode(token, self._secret, algorithms=[_ALGORITHM], options={"verify_exp": False})


# ---------------------------------------------------------------------------
# Token service
# ---------------------------------------------------------------------------


class TokenService:
    """Issues, reads and refreshes the signed+encrypted bearer tokens."""

    def __init__(
        self,
        signer: TokenSigner,
        codec: SecretCodec,
        store: AccountStore,
        auditor: AccessAuditor,
        policy: AuthPolicy,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.signer = signer
        self.codec = codec
        self.store = store
        self.auditor = auditor
        self.policy = policy
        self.clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: AccountStore,
        auditor: AccessAuditor,
        policy: AuthPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> "TokenService":
        if settings.token_encryption_key:
            codec = SecretCodec(settings.token_encryption_key)
        else:
            codec = SecretCodec.from_secret(settings.secret_key)
        return cls(
            signer=TokenSigner(settings.secret_key),
            codec=codec,
            store=store,
            auditor=auditor,
            policy=policy or AuthPolicy.from_settings(settings),
            clock=clock,
        )

    def issue(self, account_id: str) -> str:
        expires_at = int((self.clock() + self.policy.token_lifetime).timestamp())
        signed = self.signer.sign(Claims(account_id=account_id, expires_at=expires_at))
        return self.codec.encrypt(signed)

    def decode(self, bearer: str) -> Claims:
        """Decrypt, verify and expiry-check a bearer token.

        Raises BadTokenError; its reason is one of decrypt, signature, claims,
        expired.
        """
        try:
            signed = self.codec.decrypt(bearer)
        except DecryptError as exc:
            logger.info("Rejected token: decrypt failed")
            raise BadTokenError("decrypt") from exc
        try:
            payload = self.signer.verify(signed)
        except JWTError as exc:
            logger.warning("Rejected token: signature check failed")
            raise BadTokenError("signature") from exc

        subject = payload.get("sub")
        expires_at = payload.get("exp")
        if not isinstance(subject, str) or not isinstance(expires_at, int):
            logger.warning("Rejected token: malformed claims")
            raise BadTokenError("claims")
        if self.clock().timestamp() >= expires_at:
            logger.info("Rejected token: expired")
            raise BadTokenError("expired")
        return Claims(account_id=subject, expires_at=expires_at)

    def resolve_account_id(self, bearer: str) -> str:
        return self.decode(bearer).account_id

    def refresh(self, bearer: str, meta: RequestMeta) -> str:
        """Exchange a valid token for a new one. No password is involved.

        Returns only the token; the account payload is deliberately left out.
        """
        account_id = self.resolve_account_id(bearer)
        if not is_account_id(account_id):
            raise ValidationFailedError("Account id is malformed.", code="id_malformed")
        with persistence_errors():
            account = self.store.find_by_id(account_id)
        if account is None:
            raise NotFoundError("User does not exist.", code="user_does_not_exist")
        token = self.issue(account.id)
        self.auditor.record(account.email, meta)
        return token
