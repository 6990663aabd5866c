"""
tests/test_accounts.py -- Service-level tests for AccountManager and SessionRegistry.

These run against real stores on an isolated shared-memory SQLite database
(see conftest.make_services). The notifier is a CapturingNotifier, so the
code "delivered" at registration can be read back and submitted.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from api.main import Services
from auth.models import Identity, Role, User, UserStatus
from auth.notify import DeliveryError
from auth.passwords import verify_password
from auth.tokens import TokenClass
from core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidCodeError,
    InvalidTokenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)


def _profile(email: str = "a@x.com", role: Role = Role.USER) -> User:
    return User(email=email, full_name="Ada Lovelace", year_of_birth=1990, phone="+15550001111", role=role)


class TestRegister:
    def test_creates_one_inactive_user_with_hashed_password(self, services: Services) -> None:
        user = services.accounts.register(_profile(), "secret1")
        assert user.id is not None
        assert user.status == UserStatus.INACTIVE
        assert user.hashed_password != "secret1"
        assert verify_password("secret1", user.hashed_password)
        _, total = services.user_store.search_users()
        assert total == 1

    def test_sends_a_code_that_activates_the_account(self, services: Services) -> None:
        services.accounts.register(_profile(), "secret1")
        code = services.notifier.last_code_for("a@x.com")
        assert services.codes.verify("a@x.com", code)

    def test_duplicate_email_conflicts(self, services: Services) -> None:
        services.accounts.register(_profile(), "secret1")
        with pytest.raises(ConflictError) as excinfo:
            services.accounts.register(_profile(), "other-password")
        assert excinfo.value.status_code == 405
        _, total = services.user_store.search_users()
        assert total == 1

    def test_missing_password_is_rejected_before_any_write(self, services: Services) -> None:
        with pytest.raises(ValidationError):
            services.accounts.register(_profile(), "")
        assert services.user_store.get_by_email("a@x.com") is None

    def test_multibyte_password_over_72_bytes_is_invalid(self, services: Services) -> None:
        with pytest.raises(ValidationError):
            services.accounts.register(_profile(), "é" * 40)
        assert services.user_store.get_by_email("a@x.com") is None

    def test_delivery_failure_leaves_inactive_account(self, services: Services) -> None:
        services.accounts.notifier = MagicMock()
        services.accounts.notifier.send_code.side_effect = DeliveryError("SMTP down")
        with pytest.raises(DeliveryError):
            services.accounts.register(_profile(), "secret1")
        stored = services.user_store.get_by_email("a@x.com")
        assert stored is not None
        assert stored.status == UserStatus.INACTIVE


class TestActivate:
    def test_correct_code_activates(self, services: Services) -> None:
        services.accounts.register(_profile(), "secret1")
        code = services.notifier.last_code_for("a@x.com")
        user = services.accounts.activate("a@x.com", code)
        assert user.status == UserStatus.ACTIVE

    def test_activation_is_repeatable(self, services: Services) -> None:
        services.accounts.register(_profile(), "secret1")
        code = services.notifier.last_code_for("a@x.com")
        services.accounts.activate("a@x.com", code)
        assert services.accounts.activate("a@x.com", code).status == UserStatus.ACTIVE

    def test_wrong_code_is_rejected(self, services: Services) -> None:
        services.accounts.register(_profile(), "secret1")
        code = services.notifier.last_code_for("a@x.com")
        wrong = f"{(int(code) + 1) % 1_000_000:06d}"
        with pytest.raises(InvalidCodeError):
            services.accounts.activate("a@x.com", wrong)
        assert services.user_store.get_by_email("a@x.com").status == UserStatus.INACTIVE

    def test_unknown_email_is_not_found(self, services: Services) -> None:
        with pytest.raises(NotFoundError):
            services.accounts.activate("ghost@x.com", "123456")


class TestLogin:
    def test_success_returns_pair_and_appends_one_session(self, services: Services, create_user, count_sessions) -> None:
        user = create_user("a@x.com")
        pair = services.accounts.login("a@x.com", "secret1", "10.0.0.1", "pytest-agent")

        assert pair.access_token != pair.refresh_token
        access = services.tokens.verify(pair.access_token, TokenClass.ACCESS)
        refresh = services.tokens.verify(pair.refresh_token, TokenClass.REFRESH)
        assert access["id"] == refresh["id"] == user.id
        assert access["role"] == refresh["role"] == Role.USER

        assert count_sessions(user.id) == 1
        session = services.sessions.current_session(user.id)
        assert session.ip_address == "10.0.0.1"
        assert session.device_info == "pytest-agent"

    def test_every_login_appends_a_session(self, services: Services, create_user, count_sessions) -> None:
        user = create_user("a@x.com")
        services.accounts.login("a@x.com", "secret1")
        services.accounts.login("a@x.com", "secret1")
        assert count_sessions(user.id) == 2

    def test_unknown_email_is_not_found(self, services: Services) -> None:
        with pytest.raises(NotFoundError):
            services.accounts.login("ghost@x.com", "secret1")

    def test_wrong_password_is_unauthorized_and_records_nothing(self, services: Services, create_user, count_sessions) -> None:
        user = create_user("a@x.com")
        with pytest.raises(UnauthorizedError):
            services.accounts.login("a@x.com", "wrong-password")
        assert count_sessions(user.id) == 0

    def test_inactive_account_may_log_in_by_default(self, services: Services, create_user) -> None:
        create_user("a@x.com", status=UserStatus.INACTIVE)
        assert services.accounts.login("a@x.com", "secret1").access_token

    def test_inactive_account_blocked_when_policy_enabled(self, make_services) -> None:
        services = make_services(block_inactive_login=True)
        services.accounts.register(_profile(), "secret1")
        with pytest.raises(ForbiddenError):
            services.accounts.login("a@x.com", "secret1")


class TestRefresh:
    def test_refresh_issues_access_token_with_current_role(self, services: Services, create_user) -> None:
        user = create_user("a@x.com")
        pair = services.accounts.login("a@x.com", "secret1")
        services.user_store.update_user(user.id, role=Role.ADMIN)

        claims = services.tokens.verify(services.accounts.refresh(pair.refresh_token), TokenClass.ACCESS)
        assert claims["id"] == user.id
        assert claims["role"] == Role.ADMIN
        assert claims["email"] == "a@x.com"

    def test_access_token_cannot_refresh(self, services: Services, create_user) -> None:
        create_user("a@x.com")
        pair = services.accounts.login("a@x.com", "secret1")
        with pytest.raises(InvalidTokenError):
            services.accounts.refresh(pair.access_token)

    def test_deleted_user_cannot_refresh(self, services: Services, create_user) -> None:
        user = create_user("a@x.com")
        pair = services.accounts.login("a@x.com", "secret1")
        services.user_store.delete_user(user.id)
        with pytest.raises(NotFoundError):
            services.accounts.refresh(pair.refresh_token)

    def test_inactive_refresh_blocked_when_policy_enabled(self, make_services) -> None:
        services = make_services(refresh_requires_active=True)
        services.accounts.register(_profile(), "secret1")
        refresh = services.tokens.issue_refresh(services.user_store.get_by_email("a@x.com").id, Role.USER)
        with pytest.raises(ForbiddenError):
            services.accounts.refresh(refresh)


class TestPromote:
    def test_promote_sets_admin(self, services: Services, create_user) -> None:
        user = create_user("a@x.com")
        assert services.accounts.promote(user.id).role == Role.ADMIN

    def test_missing_target_is_not_found(self, services: Services) -> None:
        with pytest.raises(NotFoundError):
            services.accounts.promote(999)

    def test_superadmin_policy(self, make_services) -> None:
        services = make_services(promote_requires_superadmin=True)
        target_id = services.user_store.create_user(_profile())
        with pytest.raises(ForbiddenError):
            services.accounts.promote(target_id, caller=Identity(id=1, role=Role.ADMIN))
        promoted = services.accounts.promote(target_id, caller=Identity(id=1, role=Role.SUPER_ADMIN))
        assert promoted.role == Role.ADMIN


class TestUpdate:
    def test_admin_updates_fields(self, services: Services, create_user) -> None:
        user = create_user("a@x.com")
        updated = services.accounts.update(user.id, {"full_name": "Grace Hopper", "phone": None}, Role.ADMIN)
        assert updated.full_name == "Grace Hopper"
        assert updated.phone == user.phone

    def test_password_is_rehashed(self, services: Services, create_user) -> None:
        user = create_user("a@x.com")
        updated = services.accounts.update(user.id, {"password": "new-secret"}, Role.SUPER_ADMIN)
        assert updated.hashed_password != "new-secret"
        assert verify_password("new-secret", updated.hashed_password)
        assert services.accounts.login("a@x.com", "new-secret").access_token

    def test_password_over_72_bytes_is_invalid_and_keeps_old_hash(self, services: Services, create_user) -> None:
        user = create_user("a@x.com")
        with pytest.raises(ValidationError):
            services.accounts.update(user.id, {"password": "é" * 40}, Role.ADMIN)
        assert services.user_store.get_by_id(user.id).hashed_password == user.hashed_password

    @pytest.mark.parametrize("caller", [Role.USER, Role.CEO])
    def test_other_roles_are_forbidden(self, services: Services, create_user, caller: Role) -> None:
        user = create_user("a@x.com")
        with pytest.raises(ForbiddenError):
            services.accounts.update(user.id, {"full_name": "Nope Nope"}, caller)

    def test_validation_runs_before_role_check(self, services: Services, create_user) -> None:
        user = create_user("a@x.com")
        with pytest.raises(ValidationError):
            services.accounts.update(user.id, {"hashed_password": "x"}, Role.USER)

    def test_empty_patch_is_invalid(self, services: Services, create_user) -> None:
        user = create_user("a@x.com")
        with pytest.raises(ValidationError):
            services.accounts.update(user.id, {"avatar": None}, Role.ADMIN)

    def test_unknown_role_value_is_invalid(self, services: Services, create_user) -> None:
        user = create_user("a@x.com")
        with pytest.raises(ValidationError):
            services.accounts.update(user.id, {"role": "Root"}, Role.ADMIN)

    def test_missing_target_is_not_found(self, services: Services) -> None:
        with pytest.raises(NotFoundError):
            services.accounts.update(999, {"full_name": "Ghost User"}, Role.ADMIN)

    def test_email_collision_conflicts(self, services: Services, create_user) -> None:
        create_user("a@x.com")
        other = create_user("b@x.com")
        with pytest.raises(ConflictError):
            services.accounts.update(other.id, {"email": "a@x.com"}, Role.ADMIN)


class TestRemove:
    def test_plain_user_is_deleted_with_sessions(self, services: Services, create_user, count_sessions) -> None:
        user = create_user("a@x.com")
        services.accounts.login("a@x.com", "secret1")
        services.accounts.remove(user.id, Role.ADMIN)
        assert services.user_store.get_by_id(user.id) is None
        assert count_sessions(user.id) == 0

    def test_admin_can_never_be_deleted(self, services: Services, create_user) -> None:
        admin = create_user("admin@x.com", role=Role.ADMIN)
        with pytest.raises(ForbiddenError) as excinfo:
            services.accounts.remove(admin.id, Role.ADMIN)
        assert excinfo.value.error_code == "protected_admin"
        assert services.user_store.get_by_id(admin.id) is not None

    @pytest.mark.parametrize("role", [Role.SUPER_ADMIN, Role.CEO])
    def test_other_elevated_roles_are_protected(self, services: Services, create_user, role: Role) -> None:
        target = create_user("boss@x.com", role=role)
        with pytest.raises(ForbiddenError) as excinfo:
            services.accounts.remove(target.id, Role.ADMIN)
        assert excinfo.value.error_code == "protected_role"

    def test_missing_target_is_not_found(self, services: Services) -> None:
        with pytest.raises(NotFoundError):
            services.accounts.remove(999, Role.ADMIN)


class TestListUsers:
    @pytest.fixture
    def populated(self, services: Services, create_user) -> Services:
        create_user("alice@x.com", full_name="Alice Smith")
        create_user("bob@x.com", full_name="Bob Jones", status=UserStatus.INACTIVE)
        create_user("carol@x.com", full_name="Carol Smith", role=Role.ADMIN)
        return services

    def test_only_admin_may_list(self, populated: Services) -> None:
        with pytest.raises(ForbiddenError):
            populated.accounts.list_users(Role.SUPER_ADMIN)

    def test_pagination_reports_totals(self, populated: Services) -> None:
        page = populated.accounts.list_users(Role.ADMIN, page=2, limit=2)
        assert page.total == 3
        assert page.page == 2
        assert page.total_pages == 2
        assert len(page.data) == 1

    def test_empty_result_has_zero_pages(self, services: Services) -> None:
        page = services.accounts.list_users(Role.ADMIN)
        assert page.total == 0
        assert page.total_pages == 0
        assert page.data == []

    def test_search_is_case_sensitive_substring(self, populated: Services) -> None:
        assert {u.email for u in populated.accounts.list_users(Role.ADMIN, search="Smith").data} == {
            "alice@x.com",
            "carol@x.com",
        }
        assert populated.accounts.list_users(Role.ADMIN, search="smith").total == 0

    @pytest.mark.parametrize("term", ["%", "_", "S%h"])
    def test_search_treats_wildcards_literally(self, populated: Services, term: str) -> None:
        assert populated.accounts.list_users(Role.ADMIN, search=term).total == 0

    def test_role_and_status_filters(self, populated: Services) -> None:
        admins = populated.accounts.list_users(Role.ADMIN, role="Admin")
        assert [u.email for u in admins.data] == ["carol@x.com"]
        inactive = populated.accounts.list_users(Role.ADMIN, status="Inactive")
        assert [u.email for u in inactive.data] == ["bob@x.com"]

    def test_sort_by_name_ascending(self, populated: Services) -> None:
        page = populated.accounts.list_users(Role.ADMIN, sort_by="fullName", sort_order="asc")
        assert [u.full_name for u in page.data] == ["Alice Smith", "Bob Jones", "Carol Smith"]

    @pytest.mark.parametrize(
        "kwargs",
        [{"page": 0}, {"limit": 0}, {"limit": 101}, {"sort_by": "password"}, {"sort_order": "up"}, {"role": "Root"}],
    )
    def test_bad_query_is_invalid(self, populated: Services, kwargs) -> None:
        with pytest.raises(ValidationError):
            populated.accounts.list_users(Role.ADMIN, **kwargs)


class TestSessionRegistry:
    def test_current_session_is_the_latest(self, services: Services, create_user) -> None:
        user = create_user("a@x.com")
        first = services.sessions.record_login(user.id, "10.0.0.1", "first")
        second = services.sessions.record_login(user.id, "10.0.0.2", "second")
        assert services.sessions.current_session(user.id).id == second.id
        assert second.id > first.id

    def test_ending_current_exposes_previous(self, services: Services, create_user) -> None:
        user = create_user("a@x.com")
        first = services.sessions.record_login(user.id, "10.0.0.1", "first")
        second = services.sessions.record_login(user.id, "10.0.0.2", "second")
        assert services.sessions.end_current_session(user.id).id == second.id
        assert services.sessions.current_session(user.id).id == first.id

    def test_no_session_is_not_found(self, services: Services, create_user) -> None:
        user = create_user("a@x.com")
        with pytest.raises(NotFoundError):
            services.sessions.current_session(user.id)
        with pytest.raises(NotFoundError):
            services.sessions.end_current_session(user.id)

    def test_sessions_are_per_user(self, services: Services, create_user) -> None:
        alice = create_user("alice@x.com")
        bob = create_user("bob@x.com")
        services.sessions.record_login(alice.id, None, None)
        with pytest.raises(NotFoundError):
            services.sessions.current_session(bob.id)
