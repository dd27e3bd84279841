"""
auth/models.py -- Domain types for authentication and authorization.

Pattern: Data class (pure data containers). Stores, services and routes do
the work; these types own the shape.

Layer rule: no imports from api/ or accounts/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Account roles. A flat set: ADMIN does not imply USER capabilities."""

    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class Identity:
    """The caller of an operation, as established from its bearer token.

    Three states:
      - authenticated: account_id and role are set
      - anonymous: no token was presented
      - rejected: a token was presented but failed verification

    The evaluator distinguishes anonymous from rejected so the boundary can
    report "authentication missing" and "authentication invalid" separately.
    """

    account_id: int | None = None
    role: Role | None = None
    token_rejected: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.account_id is not None and self.role is not None

    @classmethod
    def authenticated(cls, account_id: int, role: Role) -> Identity:
        return cls(account_id=account_id, role=role)

    @classmethod
    def anonymous(cls) -> Identity:
        return cls()

    @classmethod
    def rejected(cls) -> Identity:
        return cls(token_rejected=True)
