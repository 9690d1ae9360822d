"""Unit tests for auth/store.py -- AccountStore persistence.

Covers:
- create/find round trip with opaque uuid ids and lowercased emails
- unique email enforced by the schema (IntegrityError)
- update_account() whitelist, type conversion and missing-row result
- mark_verified() / consume_reset() are single-use conditional updates
- consume_reset() writes the new hash only when it wins the claim
- find_unverified_by_code() excludes verified accounts
- access log ordering per email
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import EPOCH, AccessRecord, Account, PasswordResetRequest, RequestMeta


def _account(email: str = "Carol@Example.com", verification: str | None = "code-1") -> Account:
    return Account(email=email, password_hash="$2b$04$hash", name="Carol", verification=verification)


class TestAccounts:
    def test_create_and_find(self, store):
        account_id = store.create_account(_account())
        assert len(account_id) == 32
        found = store.find_by_email("carol@example.com")
        assert found.id == account_id
        assert found.email == "carol@example.com"
        assert found.role == "user"
        assert found.verified is False
        assert found.login_attempts == 0
        assert found.block_expires == EPOCH
        assert store.has_accounts()

    def test_find_missing_returns_none(self, store):
        assert store.find_by_email("nobody@example.com") is None
        assert store.find_by_id("f" * 32) is None

    def test_duplicate_email_rejected_by_schema(self, store):
        store.create_account(_account())
        with pytest.raises(IntegrityError):
            store.create_account(_account("CAROL@example.com", verification="code-2"))

    def test_update_converts_fields(self, store):
        account_id = store.create_account(_account())
        until = datetime(2030, 1, 1, tzinfo=timezone.utc)
        assert store.update_account(account_id, login_attempts=6, block_expires=until, verified=True)
        found = store.find_by_id(account_id)
        assert found.login_attempts == 6
        assert found.block_expires == until
        assert found.verified is True

    def test_update_unknown_field_rejected(self, store):
        account_id = store.create_account(_account())
        with pytest.raises(ValueError):
            store.update_account(account_id, id="other")

    def test_update_missing_row_returns_false(self, store):
        assert store.update_account("0" * 32, name="x") is False

    def test_email_exists_excluding_self(self, store):
        carol = store.create_account(_account())
        dave = store.create_account(_account("dave@example.com", verification="code-2"))
        assert store.email_exists("CAROL@example.com")
        assert not store.email_exists_excluding(carol, "carol@example.com")
        assert store.email_exists_excluding(dave, "carol@example.com")

    def test_list_accounts_sorted_by_email(self, store):
        store.create_account(_account("zed@example.com", verification="z"))
        store.create_account(_account("amy@example.com", verification="a"))
        assert [a.email for a in store.list_accounts()] == ["amy@example.com", "zed@example.com"]


class TestVerificationFlag:
    def test_mark_verified_once(self, store):
        account_id = store.create_account(_account())
        assert store.find_unverified_by_code("code-1").id == account_id
        assert store.mark_verified(account_id) is True
        assert store.mark_verified(account_id) is False
        assert store.find_unverified_by_code("code-1") is None


class TestResetRequests:
    META = RequestMeta(ip="10.0.0.1", browser="b", country="FR")

    @pytest.fixture
    def carol(self, store) -> str:
        return store.create_account(_account())

    def _request(self, store) -> int:
        return store.create_reset_request(PasswordResetRequest(email="carol@example.com", verification="r-1"))

    def test_consume_once(self, store, carol):
        request_id = self._request(store)
        assert store.find_unused_reset("r-1").id == request_id
        assert store.consume_reset(request_id, carol, "$2b$04$first", self.META) is True
        assert store.find_by_id(carol).password_hash == "$2b$04$first"
        assert store.find_unused_reset("r-1") is None
        assert store.get_reset_request(request_id).ip_changed == "10.0.0.1"

    def test_second_consume_leaves_first_password(self, store, carol):
        """The loser of the claim writes neither the hash nor the change origin."""
        request_id = self._request(store)
        store.consume_reset(request_id, carol, "$2b$04$first", self.META)
        late = RequestMeta(ip="10.9.9.9", browser="late", country="SE")
        assert store.consume_reset(request_id, carol, "$2b$04$second", late) is False
        assert store.find_by_id(carol).password_hash == "$2b$04$first"
        assert store.get_reset_request(request_id).ip_changed == "10.0.0.1"

    def test_missing_request_writes_nothing(self, store, carol):
        assert store.consume_reset(99, carol, "$2b$04$other", self.META) is False
        assert store.find_by_id(carol).password_hash == "$2b$04$hash"


def test_access_log_per_email_in_order(store):
    store.add_access(AccessRecord(email="a@x.com", ip="1.1.1.1", browser="b", country="US"))
    store.add_access(AccessRecord(email="b@x.com", ip="2.2.2.2", browser="b", country="US"))
    store.add_access(AccessRecord(email="A@X.com", ip="3.3.3.3", browser="b", country="US"))
    assert [r.ip for r in store.list_access("a@x.com")] == ["1.1.1.1", "3.3.3.3"]
