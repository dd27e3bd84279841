"""
auth/access.py -- Access control evaluation.

Every account operation declares a Requirement value. evaluate() decides,
as a pure function of (identity, requirement, owner_id), whether the caller
may proceed, and returns a Decision rather than raising: denial is an
ordinary outcome, not an exceptional one. enforce() is the bridge for code
that propagates failures by exception.

Role semantics are flat membership. RoleRequired({Role.ADMIN}) admits ADMIN
only; a requirement that USER and ADMIN may both satisfy lists both.

Outcome order for any non-Public requirement:
  1. no token presented        -> AUTHENTICATION_MISSING
  2. token presented, rejected -> AUTHENTICATION_INVALID
  3. requirement not satisfied -> DENIED
  4. otherwise                 -> ALLOW

Layer rule: no imports from api/ or accounts/. Import from core/ is allowed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from auth.models import Identity, Role
from core.errors import AuthenticationInvalid, AuthenticationMissing, Denied

# ---------------------------------------------------------------------------
# Requirements
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Public:
    """Anyone, including anonymous callers."""


@dataclass(frozen=True)
class AuthenticatedOnly:
    """Any caller holding a valid token."""


@dataclass(frozen=True)
class RoleRequired:
    """Caller's role must be one of `roles`."""

    roles: frozenset[Role] = field(default_factory=frozenset)


@dataclass(frozen=True)
class SelfOrRole:
    """Caller must own the target resource, or hold one of `roles`."""

    roles: frozenset[Role] = field(default_factory=frozenset)


Requirement = Union[Public, AuthenticatedOnly, RoleRequired, SelfOrRole]


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


class DecisionKind(str, Enum):
    ALLOW = "allow"
    DENIED = "denied"
    AUTHENTICATION_MISSING = "authentication_missing"
    AUTHENTICATION_INVALID = "authentication_invalid"


@dataclass(frozen=True)
class Decision:
    kind: DecisionKind
    reason: str = ""

    @property
    def allowed(self) -> bool:
        return self.kind is DecisionKind.ALLOW


_ALLOW = Decision(DecisionKind.ALLOW)


def _role_names(roles: frozenset[Role]) -> str:
    return ", ".join(sorted(r.value for r in roles)) or "(none)"


def evaluate(identity: Identity, requirement: Requirement, owner_id: int | None = None) -> Decision:
    """Decide whether `identity` satisfies `requirement`.

    owner_id is the account id that owns the target resource. It is only
    consulted by SelfOrRole; the caller resolves it before asking.
    """
    if isinstance(requirement, Public):
        return _ALLOW

    if not identity.is_authenticated:
        if identity.token_rejected:
            return Decision(DecisionKind.AUTHENTICATION_INVALID, "The supplied token could not be verified.")
        return Decision(DecisionKind.AUTHENTICATION_MISSING, "Authentication required.")

    if isinstance(requirement, AuthenticatedOnly):
        return _ALLOW

    if isinstance(requirement, RoleRequired):
        if identity.role in requirement.roles:
            return _ALLOW
        return Decision(DecisionKind.DENIED, f"Requires role: {_role_names(requirement.roles)}.")

    if isinstance(requirement, SelfOrRole):
        if owner_id is not None and identity.account_id == owner_id:
            return _ALLOW
        if identity.role in requirement.roles:
            return _ALLOW
        return Decision(
            DecisionKind.DENIED,
            f"Only the account owner or role {_role_names(requirement.roles)} may do this.",
        )

    raise TypeError(f"Unknown requirement type: {type(requirement).__name__}")


def enforce(decision: Decision) -> None:
    """Raise the typed error matching a non-Allow decision. No-op on Allow."""
    if decision.kind is DecisionKind.ALLOW:
        return
    if decision.kind is DecisionKind.AUTHENTICATION_MISSING:
        raise AuthenticationMissing(decision.reason or None)
    if decision.kind is DecisionKind.AUTHENTICATION_INVALID:
        raise AuthenticationInvalid(decision.reason or None)
    raise Denied(decision.reason or None)
