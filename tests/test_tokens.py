"""Unit tests for auth/tokens.py and auth/crypto.py.

Covers:
- bcrypt hash/verify, including a malformed stored hash
- issue() -> decode() round trip within the lifetime
- Expiry is judged against the injected clock (exact boundary is expired)
- Each failing layer surfaces as BadTokenError with its own reason
- Token payload is not readable without the encryption key
- refresh(): new token, access audited, unknown account, malformed id
"""

import base64
import json
from types import SimpleNamespace

import pytest
from cryptography.fernet import Fernet
from jose import jwt

from auth.crypto import DecryptError, SecretCodec
from auth.errors import BadTokenError, NotFoundError, ValidationFailedError
from auth.models import Claims
from auth.tokens import TokenService, TokenSigner, hash_password, is_account_id, verify_password
from conftest import META, TEST_BCRYPT_ROUNDS
from core.config import get_settings


@pytest.fixture
def account_id(services) -> str:
    return services.accounts.create_account("Bob", "bob@example.com", "hunter22").id


class TestPasswordHashing:
    def test_hash_verifies(self):
        hashed = hash_password("s3cret-pw", TEST_BCRYPT_ROUNDS)
        assert hashed != "s3cret-pw"
        assert verify_password("s3cret-pw", hashed)
        assert not verify_password("other", hashed)

    def test_malformed_hash_is_false_not_error(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestSecretCodec:
    def test_derived_key_is_stable(self):
        a = SecretCodec.from_secret("x" * 40)
        b = SecretCodec.from_secret("x" * 40)
        assert b.decrypt(a.encrypt("payload")) == "payload"

    def test_other_key_cannot_decrypt(self):
        ciphertext = SecretCodec.from_secret("x" * 40).encrypt("payload")
        with pytest.raises(DecryptError):
            SecretCodec.from_secret("y" * 40).decrypt(ciphertext)

    def test_explicit_fernet_key(self):
        codec = SecretCodec(Fernet.generate_key())
        assert codec.decrypt(codec.encrypt("payload")) == "payload"


class TestDecode:
    def test_round_trip(self, services, account_id, clock):
        token = services.tokens.issue(account_id)
        claims = services.tokens.decode(token)
        assert claims.account_id == account_id
        assert claims.expires_at == int((clock() + services.policy.token_lifetime).timestamp())

    def test_claims_not_visible_in_bearer(self, services, account_id):
        token = services.tokens.issue(account_id)
        assert account_id not in token
        assert not token.startswith("eyJ")

    def test_valid_until_just_before_expiry(self, services, account_id, clock):
        token = services.tokens.issue(account_id)
        clock.advance(hours=1, seconds=-1)
        assert services.tokens.resolve_account_id(token) == account_id

    def test_expired_at_boundary(self, services, account_id, clock):
        token = services.tokens.issue(account_id)
        clock.advance(hours=1)
        with pytest.raises(BadTokenError) as exc_info:
            services.tokens.decode(token)
        assert exc_info.value.reason == "expired"
        assert exc_info.value.code == "bad_token"

    def test_garbage_fails_at_decrypt(self, services):
        with pytest.raises(BadTokenError) as exc_info:
            services.tokens.decode("not-a-token")
        assert exc_info.value.reason == "decrypt"

    def test_tampered_ciphertext_fails_at_decrypt(self, services, account_id):
        token = services.tokens.issue(account_id)
        tampered = token[:-4] + ("AAAA" if not token.endswith("AAAA") else "BBBB")
        with pytest.raises(BadTokenError) as exc_info:
            services.tokens.decode(tampered)
        assert exc_info.value.reason == "decrypt"

    def test_foreign_signing_key_fails_at_signature(self, services, account_id, clock):
        """Correctly encrypted, but signed with another secret."""
        forged = TokenSigner("z" * 40).sign(Claims(account_id=account_id, expires_at=int(clock().timestamp()) + 60))
        with pytest.raises(BadTokenError) as exc_info:
            services.tokens.decode(services.tokens.codec.encrypt(forged))
        assert exc_info.value.reason == "signature"

    def test_missing_subject_fails_at_claims(self, services):
        """A validly signed JWT whose payload lacks sub."""
        bare = jwt.encode({"exp": 2_000_000_000}, get_settings().secret_key, algorithm="HS256")
        with pytest.raises(BadTokenError) as exc_info:
            services.tokens.decode(services.tokens.codec.encrypt(bare))
        assert exc_info.value.reason == "claims"

    def test_signed_payload_is_plain_jwt_inside(self, services, account_id):
        signed = services.tokens.codec.decrypt(services.tokens.issue(account_id))
        payload_b64 = signed.split(".")[1]
        payload = json.loads(base64.urlsafe_b64decode(payload_b64 + "=" * (-len(payload_b64) % 4)))
        assert payload["sub"] == account_id
        assert set(payload) == {"sub", "exp"}


class TestRefresh:
    def test_refresh_returns_new_valid_token(self, services, account_id, clock):
        old = services.tokens.issue(account_id)
        clock.advance(minutes=30)
        new = services.tokens.refresh(old, META)
        assert new != old
        assert services.tokens.decode(new).expires_at > services.tokens.decode(old).expires_at

    def test_refresh_records_access(self, services, account_id):
        services.tokens.refresh(services.tokens.issue(account_id), META)
        assert len(services.store.list_access("bob@example.com")) == 1

    def test_refresh_expired_token_rejected(self, services, account_id, clock):
        token = services.tokens.issue(account_id)
        clock.advance(hours=2)
        with pytest.raises(BadTokenError):
            services.tokens.refresh(token, META)

    def test_refresh_unknown_account(self, services):
        token = services.tokens.issue("0" * 32)
        with pytest.raises(NotFoundError) as exc_info:
            services.tokens.refresh(token, META)
        assert exc_info.value.code == "user_does_not_exist"

    def test_refresh_malformed_id(self, services):
        token = services.tokens.issue("../../etc")
        with pytest.raises(ValidationFailedError) as exc_info:
            services.tokens.refresh(token, META)
        assert exc_info.value.code == "id_malformed"


def test_is_account_id():
    assert is_account_id("a" * 32)
    assert not is_account_id("A" * 32)
    assert not is_account_id("abc")
    assert not is_account_id(None)


def test_from_settings_uses_explicit_encryption_key(store, policy):
    key = Fernet.generate_key().decode()
    settings = SimpleNamespace(secret_key="s" * 40, token_encryption_key=key)
    service = TokenService.from_settings(settings, store, auditor=None, policy=policy)
    token = service.issue("a" * 32)
    assert SecretCodec(key).decrypt(token)
