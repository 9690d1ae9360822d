"""Unit tests for auth/accounts.py -- registration, profile and administration.

Covers:
- register(): token + unverified summary, no access record; duplicate email is AlreadyExists
- update_profile(): partial update; email collision with another account
- change_password(): wrong current password does not touch the lockout counter
- check_role(): Unauthorized for roles not listed
- unblock(): clears counter and block
- update_account(): admin edit of role and profile; email collision and unknown role change nothing
"""

from datetime import timedelta

import pytest

from auth.errors import AlreadyExistsError, NotFoundError, UnauthorizedError, ValidationFailedError, WrongPasswordError
from auth.models import EPOCH, AccountChanges, ProfileChanges
from conftest import META


class TestRegister:
    def test_register_signs_in(self, services):
        result = services.accounts.register("Erin", "Erin@Example.com", "pw12345")
        assert result.user.email == "erin@example.com"
        assert result.user.role == "user"
        assert result.user.verified is False
        assert result.user.verification
        assert services.tokens.resolve_account_id(result.token) == result.user.id
        assert services.store.list_access("erin@example.com") == []

    def test_duplicate_email(self, services):
        services.accounts.register("Erin", "erin@example.com", "pw12345")
        with pytest.raises(AlreadyExistsError) as exc_info:
            services.accounts.register("Erin 2", "ERIN@example.com", "pw12345")
        assert exc_info.value.status_code == 422


class TestProfile:
    @pytest.fixture
    def erin(self, services) -> str:
        return services.accounts.create_account("Erin", "erin@example.com", "pw12345").id

    def test_get_profile_has_no_credentials(self, services, erin):
        profile = services.accounts.get_profile(erin)
        assert profile.email == "erin@example.com"
        assert not hasattr(profile, "password_hash")

    def test_partial_update(self, services, erin):
        profile = services.accounts.update_profile(erin, ProfileChanges(city="Leiden"))
        assert profile.city == "Leiden"
        assert profile.name == "Erin"

    def test_keeping_own_email_is_fine(self, services, erin):
        profile = services.accounts.update_profile(erin, ProfileChanges(email="erin@example.com", name="E"))
        assert profile.name == "E"

    def test_taking_another_email_fails(self, services, erin):
        services.accounts.create_account("Frank", "frank@example.com", "pw12345")
        with pytest.raises(AlreadyExistsError):
            services.accounts.update_profile(erin, ProfileChanges(email="frank@example.com"))

    def test_unknown_account(self, services):
        with pytest.raises(NotFoundError):
            services.accounts.get_profile("0" * 32)

    def test_change_password(self, services, erin):
        services.accounts.change_password(erin, "pw12345", "newpw99")
        assert services.verifier.login("erin@example.com", "newpw99", META).token

    def test_wrong_current_password_does_not_count(self, services, erin):
        with pytest.raises(WrongPasswordError):
            services.accounts.change_password(erin, "nope", "newpw99")
        assert services.store.find_by_id(erin).login_attempts == 0


class TestAdministration:
    def test_check_role(self, services):
        admin = services.accounts.create_account("Root", "root@example.com", "pw12345", "admin")
        user = services.accounts.create_account("U", "u@example.com", "pw12345")
        assert services.accounts.check_role(admin.id, ["admin"]).email == "root@example.com"
        with pytest.raises(UnauthorizedError):
            services.accounts.check_role(user.id, ["admin"])

    def test_unblock(self, services, clock):
        user = services.accounts.create_account("U", "u@example.com", "pw12345")
        services.store.update_account(user.id, login_attempts=9, block_expires=clock() + timedelta(hours=1))
        assert services.accounts.unblock("U@example.com") is True
        account = services.store.find_by_id(user.id)
        assert account.login_attempts == 0
        assert account.block_expires == EPOCH
        assert services.verifier.login("u@example.com", "pw12345", META).token

    def test_unblock_unknown(self, services):
        assert services.accounts.unblock("ghost@example.com") is False

    def test_list_accounts(self, services):
        services.accounts.create_account("U", "u@example.com", "pw12345")
        services.accounts.create_account("V", "v@example.com", "pw12345", verified=True)
        summaries = services.accounts.list_accounts()
        assert [s.email for s in summaries] == ["u@example.com", "v@example.com"]
        assert summaries[1].verified is True


class TestAdminUpdate:
    @pytest.fixture
    def user_id(self, services) -> str:
        return services.accounts.create_account("U", "u@example.com", "pw12345").id

    def test_role_and_profile_change(self, services, user_id):
        summary = services.accounts.update_account(user_id, AccountChanges(role="admin", city="Utrecht"))
        assert summary.role == "admin"
        assert services.store.find_by_id(user_id).city == "Utrecht"

    def test_taken_email_leaves_account_unchanged(self, services, user_id):
        services.accounts.create_account("V", "v@example.com", "pw12345")
        with pytest.raises(AlreadyExistsError):
            services.accounts.update_account(user_id, AccountChanges(email="V@example.com", role="admin"))
        account = services.store.find_by_id(user_id)
        assert (account.email, account.role) == ("u@example.com", "user")

    def test_unknown_role_rejected(self, services, user_id):
        with pytest.raises(ValidationFailedError):
            services.accounts.update_account(user_id, AccountChanges(role="root"))
        assert services.store.find_by_id(user_id).role == "user"

    def test_unknown_account(self, services):
        with pytest.raises(NotFoundError):
            services.accounts.update_account("0" * 32, AccountChanges(name="Ghost"))
