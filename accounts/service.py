"""
accounts/service.py -- Account registration, login, profile and role management.

AccountService orchestrates the password hasher, token service, access
evaluator and store. Collaborators are passed in at construction; nothing is
read from module-level globals.

Authorization: every operation's Requirement is declared once, in
OPERATION_REQUIREMENTS. Operations that act on an existing account pass the
target id as owner_id; an account owns itself.

Concurrency: store calls run through asyncio.to_thread and hashing runs on the
hasher's own thread pool, so neither blocks the event loop. Every mutation is a
single store statement.

Output: every read and write returns AccountView, never Account, so the
password hash cannot leave this module.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from accounts.models import Account, AccountView, Page
from accounts.store import AccountStoreAdapter
from auth.access import AuthenticatedOnly, Public, Requirement, RoleRequired, SelfOrRole, enforce, evaluate
from auth.models import Identity, Role
from auth.passwords import PasswordHasher
from auth.tokens import TokenService
from core.errors import InvalidCredentials, InvalidToken, NotFoundError, ValidationError

logger = logging.getLogger("accountsvc.accounts")

_ADMIN_ONLY = frozenset({Role.ADMIN})

OPERATION_REQUIREMENTS: dict[str, Requirement] = {
    "register": Public(),
    "login": Public(),
    "get_by_id": Public(),
    "list_all": Public(),
    "list_page": Public(),
    "get_current": AuthenticatedOnly(),
    "update_profile": SelfOrRole(_ADMIN_ONLY),
    "change_role": RoleRequired(_ADMIN_ONLY),
    "delete_account": SelfOrRole(_ADMIN_ONLY),
    "record_profile_image": AuthenticatedOnly(),
}

# Fields a profile update may touch. email, password and role have their own
# paths (or none) and are dropped from profile updates without error.
PROFILE_FIELDS = frozenset({"name", "username", "profile_image"})

MAX_PAGE_LIMIT = 100


def _require_text(field: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string.")
    return value.strip()


class AccountService:
    """Account operations over an injected store, hasher and token service.

    Usage:
        service = AccountService(store, PasswordHasher(), TokenService(secret))
        view = await service.register("Ada", "ada", "ada@example.com", "pw")
        token = await service.login("ada@example.com", "pw")
        caller = service.identify(token)
        await service.update_profile(caller, view.id, {"name": "Ada L."})
    """

    def __init__(self, store: AccountStoreAdapter, hasher: PasswordHasher, tokens: TokenService) -> None:
        self.store = store
        self.hasher = hasher
        self.tokens = tokens

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def authorize(self, operation: str, caller: Identity, owner_id: int | None = None) -> None:
        """Raise the typed error if caller may not perform operation on owner_id's account."""
        decision = evaluate(caller, OPERATION_REQUIREMENTS[operation], owner_id=owner_id)
        if not decision.allowed:
            logger.info(
                "%s denied for account %s on %s: %s",
                operation,
                caller.account_id,
                owner_id,
                decision.kind.value,
            )
        enforce(decision)

    async def _load(self, account_id: int) -> Account:
        account = await asyncio.to_thread(self.store.find_by_id, account_id)
        if account is None:
            raise NotFoundError()
        return account

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def register(self, name: str, username: str, email: str, password: str) -> AccountView:
        """Create a USER account. Raises ConflictError if username or email is taken."""
        name = _require_text("name", name)
        username = _require_text("username", username)
        email = _require_text("email", email)
        if not isinstance(password, str) or not password:
            raise ValidationError("password must be a non-empty string.")

        account = Account(
            name=name,
            username=username,
            email=email,
            password_hash=await self.hasher.hash_async(password),
            role=Role.USER,
        )
        account.id = await asyncio.to_thread(self.store.insert, account)
        logger.info("Registered account %d", account.id)
        created = await self._load(account.id)
        return created.to_view()

    async def login(self, email: str, password: str) -> str:
        """Return an access token for valid credentials.

        Unknown email and wrong password raise the same InvalidCredentials,
        and both spend one bcrypt verification.
        """
        account = None
        if isinstance(email, str) and email:
            account = await asyncio.to_thread(self.store.find_by_email, email.strip())
        if account is None:
            await self.hasher.verify_dummy_async(password if isinstance(password, str) else "")
            logger.info("Login failed")
            raise InvalidCredentials()
        if not isinstance(password, str) or not await self.hasher.verify_async(password, account.password_hash):
            logger.info("Login failed")
            raise InvalidCredentials()
        return self.tokens.issue(account.id, account.role)

    def identify(self, token: str | None) -> Identity:
        """Map a raw bearer token to an Identity. Never raises."""
        if not token:
            return Identity.anonymous()
        try:
            claims = self.tokens.verify(token)
        except InvalidToken:
            return Identity.rejected()
        return Identity.authenticated(claims.account_id, claims.role)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_by_id(self, account_id: int) -> AccountView | None:
        account = await asyncio.to_thread(self.store.find_by_id, account_id)
        return account.to_view() if account is not None else None

    async def get_current(self, caller: Identity) -> AccountView:
        """Return the caller's own account."""
        self.authorize("get_current", caller)
        account = await self._load(caller.account_id)
        return account.to_view()

    async def list_all(self) -> list[AccountView]:
        accounts = await asyncio.to_thread(self.store.find_all)
        return [a.to_view() for a in accounts]

    async def list_page(self, page: int = 1, limit: int = 10, username: str | None = None) -> Page:
        """Return one page of accounts ordered by ascending id.

        page is 1-based. limit is capped at MAX_PAGE_LIMIT. When username is
        given, only accounts whose username contains it are counted and listed.
        """
        if not isinstance(page, int) or page < 1:
            raise ValidationError("page must be a positive integer.")
        if not isinstance(limit, int) or limit < 1:
            raise ValidationError("limit must be a positive integer.")
        limit = min(limit, MAX_PAGE_LIMIT)
        offset = (page - 1) * limit
        if username:
            accounts, total = await asyncio.to_thread(
                self.store.find_page_by_username_substring, offset, limit, username
            )
        else:
            accounts, total = await asyncio.to_thread(self.store.find_page, offset, limit)
        return Page(items=[a.to_view() for a in accounts], total_items=total, page=page, limit=limit)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def update_profile(self, caller: Identity, target_id: int, fields: Mapping[str, Any]) -> AccountView:
        """Apply name / username / profile_image changes to an account.

        Allowed for the account itself or an ADMIN. Any other key (email,
        password, role, id, ...) is dropped without error.
        """
        self.authorize("update_profile", caller, owner_id=target_id)

        updates: dict[str, Any] = {}
        for key, value in fields.items():
            if key not in PROFILE_FIELDS:
                continue
            if key == "profile_image" and value is None:
                updates[key] = None
            else:
                updates[key] = _require_text(key, value)

        await self._load(target_id)
        if updates:
            await asyncio.to_thread(self.store.update, target_id, **updates)
        updated = await self._load(target_id)
        return updated.to_view()

    async def change_role(self, caller: Identity, target_id: int, new_role: Role | str) -> AccountView:
        """Set an account's role. ADMIN only. Takes effect at the account's next login."""
        self.authorize("change_role", caller)
        try:
            role = Role(new_role)
        except ValueError as exc:
            raise ValidationError(f"Unknown role: {new_role!r}.") from exc

        if not await asyncio.to_thread(self.store.update, target_id, role=role):
            raise NotFoundError()
        logger.info("Account %s changed role of account %d to %s", caller.account_id, target_id, role.value)
        updated = await self._load(target_id)
        return updated.to_view()

    async def delete_account(self, caller: Identity, target_id: int) -> None:
        """Delete an account. Allowed for the account itself or an ADMIN."""
        self.authorize("delete_account", caller, owner_id=target_id)
        if not await asyncio.to_thread(self.store.delete, target_id):
            raise NotFoundError()
        logger.info("Account %s deleted account %d", caller.account_id, target_id)

    async def record_profile_image(self, caller: Identity, filename: str) -> AccountView:
        """Attach an already-generated image filename to the caller's own account."""
        self.authorize("record_profile_image", caller)
        filename = _require_text("filename", filename)
        if not await asyncio.to_thread(self.store.update, caller.account_id, profile_image=filename):
            raise NotFoundError()
        updated = await self._load(caller.account_id)
        return updated.to_view()
