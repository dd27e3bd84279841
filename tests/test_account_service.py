"""Unit tests for accounts/service.py -- AccountService operations.

Covers:
- register: hashing, forced USER role, conflicts, no hash in output
- login: token on success, identical InvalidCredentials for unknown email / wrong password
- identify: anonymous / rejected / authenticated
- update_profile: privileged fields dropped, self-or-admin rule, validation
- change_role / delete_account / record_profile_image authorization
- list_page: 1-based pages, limit cap, username filter
"""

from __future__ import annotations

import pytest
from conftest import run

from accounts.models import AccountView
from accounts.service import MAX_PAGE_LIMIT, AccountService
from accounts.store import AccountStore
from auth.models import Identity, Role
from core.errors import (
    AuthenticationInvalid,
    AuthenticationMissing,
    ConflictError,
    Denied,
    InvalidCredentials,
    NotFoundError,
    ValidationError,
)

ADMIN = Identity.authenticated(1000, Role.ADMIN)


def _register(service: AccountService, n: int, password: str = "password123") -> AccountView:
    return run(service.register(f"Person {n}", f"user{n:02d}", f"user{n:02d}@example.com", password))


class TestRegister:
    def test_returns_view_without_hash(self, service: AccountService) -> None:
        view = _register(service, 1)
        assert isinstance(view, AccountView)
        assert not hasattr(view, "password_hash")
        assert view.role is Role.USER
        assert view.created_at

    def test_stores_hash_not_plaintext(self, service: AccountService, store: AccountStore) -> None:
        view = _register(service, 1, password="s3cret-value")
        stored = store.find_by_id(view.id)
        assert stored.password_hash != "s3cret-value"
        assert service.hasher.verify("s3cret-value", stored.password_hash)

    def test_duplicate_username_conflicts_without_partial_record(
        self, service: AccountService, store: AccountStore
    ) -> None:
        _register(service, 1)
        with pytest.raises(ConflictError):
            run(service.register("Other", "user01", "other@example.com", "password123"))
        assert store.find_by_email("other@example.com") is None
        assert len(store.find_all()) == 1

    def test_duplicate_email_conflicts(self, service: AccountService) -> None:
        _register(service, 1)
        with pytest.raises(ConflictError):
            run(service.register("Other", "other", "user01@example.com", "password123"))

    @pytest.mark.parametrize(
        "args",
        [
            ("", "u", "u@example.com", "pw"),
            ("N", "   ", "u@example.com", "pw"),
            ("N", "u", "u@example.com", ""),
            ("N", "u", None, "pw"),
        ],
    )
    def test_rejects_empty_fields(self, service: AccountService, args: tuple) -> None:
        with pytest.raises(ValidationError):
            run(service.register(*args))


class TestLogin:
    def test_success_issues_token_with_current_role(self, service: AccountService, store: AccountStore) -> None:
        view = _register(service, 1)
        store.update(view.id, role=Role.ADMIN)
        claims = service.tokens.verify(run(service.login("user01@example.com", "password123")))
        assert claims.account_id == view.id
        assert claims.role is Role.ADMIN

    def test_unknown_email_and_wrong_password_are_indistinguishable(self, service: AccountService) -> None:
        _register(service, 1)
        with pytest.raises(InvalidCredentials) as wrong_password:
            run(service.login("user01@example.com", "wrong-password"))
        with pytest.raises(InvalidCredentials) as unknown_email:
            run(service.login("nobody@example.com", "password123"))
        assert type(wrong_password.value) is type(unknown_email.value)
        assert wrong_password.value.code == unknown_email.value.code
        assert str(wrong_password.value) == str(unknown_email.value)

    def test_malformed_stored_hash_fails_closed(self, service: AccountService, store: AccountStore) -> None:
        view = _register(service, 1)
        store.update(view.id, password_hash="corrupted")
        with pytest.raises(InvalidCredentials):
            run(service.login("user01@example.com", "password123"))


class TestIdentify:
    def test_no_token_is_anonymous(self, service: AccountService) -> None:
        assert service.identify(None) == Identity.anonymous()
        assert service.identify("") == Identity.anonymous()

    def test_bad_token_is_rejected(self, service: AccountService) -> None:
        identity = service.identify("garbage")
        assert identity.token_rejected
        assert not identity.is_authenticated

    def test_valid_token_is_authenticated(self, service: AccountService) -> None:
        identity = service.identify(service.tokens.issue(9, Role.USER))
        assert identity == Identity.authenticated(9, Role.USER)


class TestReads:
    def test_get_by_id(self, service: AccountService) -> None:
        view = _register(service, 1)
        assert run(service.get_by_id(view.id)) == view
        assert run(service.get_by_id(999)) is None

    def test_list_all_strips_hashes(self, service: AccountService) -> None:
        _register(service, 1)
        _register(service, 2)
        views = run(service.list_all())
        assert [v.username for v in views] == ["user01", "user02"]
        assert all(isinstance(v, AccountView) for v in views)

    def test_get_current(self, service: AccountService) -> None:
        view = _register(service, 1)
        assert run(service.get_current(Identity.authenticated(view.id, Role.USER))) == view
        with pytest.raises(AuthenticationMissing):
            run(service.get_current(Identity.anonymous()))


class TestListPage:
    @pytest.fixture
    def populated(self, service: AccountService, store: AccountStore) -> AccountService:
        from accounts.models import Account

        for n in range(1, 26):
            store.insert(Account(f"P{n}", f"user{n:02d}", f"user{n:02d}@example.com", "hash"))
        return service

    def test_page_two_of_ten(self, populated: AccountService) -> None:
        page = run(populated.list_page(page=2, limit=10))
        assert [v.id for v in page.items] == list(range(11, 21))
        assert page.total_items == 25
        assert page.total_pages == 3
        assert page.item_count == 10

    def test_limit_is_capped(self, populated: AccountService) -> None:
        page = run(populated.list_page(page=1, limit=1000))
        assert page.limit == MAX_PAGE_LIMIT

    def test_username_filter(self, populated: AccountService) -> None:
        page = run(populated.list_page(page=1, limit=10, username="user2"))
        assert page.total_items == 6  # user20 .. user25
        assert all("user2" in v.username for v in page.items)

    @pytest.mark.parametrize("page, limit", [(0, 10), (1, 0), (-1, 5)])
    def test_rejects_bad_bounds(self, populated: AccountService, page: int, limit: int) -> None:
        with pytest.raises(ValidationError):
            run(populated.list_page(page=page, limit=limit))


class TestUpdateProfile:
    def test_self_update_applies_only_profile_fields(self, service: AccountService) -> None:
        view = _register(service, 5)
        caller = Identity.authenticated(view.id, Role.USER)
        updated = run(
            service.update_profile(
                caller,
                view.id,
                {"email": "x", "role": "ADMIN", "password": "hijack", "name": "Bob"},
            )
        )
        assert updated.name == "Bob"
        assert updated.email == view.email
        assert updated.role is Role.USER
        assert run(service.login(view.email, "password123"))

    def test_non_admin_on_other_account_denied(self, service: AccountService) -> None:
        mine = _register(service, 5)
        other = _register(service, 7)
        with pytest.raises(Denied):
            run(service.update_profile(Identity.authenticated(mine.id, Role.USER), other.id, {"name": "Eve"}))
        assert run(service.get_by_id(other.id)).name == "Person 7"

    def test_admin_may_update_any_account(self, service: AccountService) -> None:
        other = _register(service, 7)
        updated = run(service.update_profile(ADMIN, other.id, {"username": "renamed"}))
        assert updated.username == "renamed"

    def test_anonymous_is_authentication_missing(self, service: AccountService) -> None:
        view = _register(service, 1)
        with pytest.raises(AuthenticationMissing):
            run(service.update_profile(Identity.anonymous(), view.id, {"name": "X"}))

    def test_rejected_token_is_authentication_invalid(self, service: AccountService) -> None:
        view = _register(service, 1)
        with pytest.raises(AuthenticationInvalid):
            run(service.update_profile(Identity.rejected(), view.id, {"name": "X"}))

    def test_missing_target_for_admin_is_not_found(self, service: AccountService) -> None:
        with pytest.raises(NotFoundError):
            run(service.update_profile(ADMIN, 999, {"name": "X"}))

    def test_username_conflict(self, service: AccountService) -> None:
        _register(service, 1)
        second = _register(service, 2)
        with pytest.raises(ConflictError):
            run(service.update_profile(ADMIN, second.id, {"username": "user01"}))

    @pytest.mark.parametrize("fields", [{"name": ""}, {"name": 123}, {"username": None}])
    def test_bad_values_rejected(self, service: AccountService, fields: dict) -> None:
        view = _register(service, 1)
        with pytest.raises(ValidationError):
            run(service.update_profile(ADMIN, view.id, fields))

    def test_only_privileged_fields_is_a_noop(self, service: AccountService) -> None:
        view = _register(service, 1)
        assert run(service.update_profile(ADMIN, view.id, {"role": "admin"})) == view


class TestChangeRole:
    def test_admin_can_promote(self, service: AccountService) -> None:
        view = _register(service, 1)
        assert run(service.change_role(ADMIN, view.id, Role.ADMIN)).role is Role.ADMIN

    def test_accepts_role_value_string(self, service: AccountService) -> None:
        view = _register(service, 1)
        assert run(service.change_role(ADMIN, view.id, "admin")).role is Role.ADMIN

    def test_user_denied_even_on_self(self, service: AccountService) -> None:
        view = _register(service, 1)
        with pytest.raises(Denied):
            run(service.change_role(Identity.authenticated(view.id, Role.USER), view.id, Role.ADMIN))
        assert run(service.get_by_id(view.id)).role is Role.USER

    def test_unknown_role_is_validation_error(self, service: AccountService) -> None:
        view = _register(service, 1)
        with pytest.raises(ValidationError):
            run(service.change_role(ADMIN, view.id, "superuser"))

    def test_missing_target(self, service: AccountService) -> None:
        with pytest.raises(NotFoundError):
            run(service.change_role(ADMIN, 999, Role.USER))


class TestDeleteAccount:
    def test_self_delete(self, service: AccountService) -> None:
        view = _register(service, 1)
        run(service.delete_account(Identity.authenticated(view.id, Role.USER), view.id))
        assert run(service.get_by_id(view.id)) is None

    def test_other_user_denied(self, service: AccountService) -> None:
        mine = _register(service, 1)
        other = _register(service, 2)
        with pytest.raises(Denied):
            run(service.delete_account(Identity.authenticated(mine.id, Role.USER), other.id))
        assert run(service.get_by_id(other.id)) is not None

    def test_admin_delete_and_missing(self, service: AccountService) -> None:
        view = _register(service, 1)
        run(service.delete_account(ADMIN, view.id))
        with pytest.raises(NotFoundError):
            run(service.delete_account(ADMIN, view.id))

    def test_anonymous_cannot_delete(self, service: AccountService) -> None:
        view = _register(service, 1)
        with pytest.raises(AuthenticationMissing):
            run(service.delete_account(Identity.anonymous(), view.id))


class TestRecordProfileImage:
    def test_attaches_to_callers_account(self, service: AccountService) -> None:
        view = _register(service, 1)
        updated = run(service.record_profile_image(Identity.authenticated(view.id, Role.USER), "me123.png"))
        assert updated.profile_image == "me123.png"

    def test_requires_authentication(self, service: AccountService) -> None:
        with pytest.raises(AuthenticationMissing):
            run(service.record_profile_image(Identity.anonymous(), "me.png"))

    def test_deleted_caller_is_not_found(self, service: AccountService) -> None:
        with pytest.raises(NotFoundError):
            run(service.record_profile_image(Identity.authenticated(999, Role.USER), "me.png"))
