"""Unit tests for main.py -- operator CLI commands."""

from __future__ import annotations

import pytest
from conftest import run

from accounts.models import Account
from accounts.service import AccountService
from accounts.store import AccountStore
from auth.models import Role
from core.errors import ConflictError, ValidationError
from main import create_admin


def test_create_admin_inserts_admin_in_one_write(service: AccountService, store: AccountStore) -> None:
    account_id = run(create_admin(service, "Ops", "ops", "ops@example.com", "ops-password"))
    account = store.find_by_id(account_id)
    assert account.role is Role.ADMIN
    assert service.tokens.verify(run(service.login("ops@example.com", "ops-password"))).role is Role.ADMIN


def test_create_admin_conflict_leaves_existing_account_untouched(
    service: AccountService, store: AccountStore
) -> None:
    store.insert(Account("Taken", "ops", "taken@example.com", "hash"))
    with pytest.raises(ConflictError):
        run(create_admin(service, "Ops", "ops", "ops@example.com", "ops-password"))
    assert store.find_by_email("ops@example.com") is None
    assert [a.role for a in store.find_all()] == [Role.USER]


@pytest.mark.parametrize("args", [("", "ops", "ops@example.com", "pw"), ("Ops", "ops", "ops@example.com", "")])
def test_create_admin_rejects_empty_fields(service: AccountService, store: AccountStore, args: tuple) -> None:
    with pytest.raises(ValidationError):
        run(create_admin(service, *args))
    assert store.find_all() == []
