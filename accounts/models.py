"""
accounts/models.py -- Domain dataclasses for user accounts.

Pure data containers. Account is the persisted record and is the only type
that carries password_hash; AccountView is what leaves the service. The
service never returns an Account.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from auth.models import Role


@dataclass
class AccountView:
    """Outward-facing account representation. Has no password hash field."""

    id: int
    name: str
    username: str
    email: str
    role: Role
    profile_image: str | None = None
    created_at: str = ""


@dataclass
class Account:
    """A persisted user account.

    id is None before the record is written to the database.
    profile_image holds the generated filename of the uploaded image, not a path.
    """

    name: str
    username: str
    email: str
    password_hash: str
    role: Role = Role.USER
    id: int | None = None
    profile_image: str | None = None
    created_at: str = ""  # ISO 8601, set by store on insert

    def to_view(self) -> AccountView:
        if self.id is None:
            raise ValueError("Account has not been persisted")
        return AccountView(
            id=self.id,
            name=self.name,
            username=self.username,
            email=self.email,
            role=self.role,
            profile_image=self.profile_image,
            created_at=self.created_at,
        )


@dataclass
class Page:
    """One page of accounts. page is 1-based."""

    items: list[AccountView] = field(default_factory=list)
    total_items: int = 0
    page: int = 1
    limit: int = 10

    @property
    def item_count(self) -> int:
        return len(self.items)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.limit) if self.limit else 0
