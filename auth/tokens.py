"""
auth/tokens.py -- Stateless signed access tokens.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry the account id (sub), role, iat
       and exp, plus a `kid` header naming the key that signed them. Nothing
       is stored server-side: validity is signature + expiry only.

  Key resolution: verification looks the `kid` up through a pluggable
       resolver (kid -> secret | None). StaticKeyResolver covers the common
       case; configuring an active key plus a previous key gives a dual-key
       window for zero-downtime rotation. An unknown kid is an invalid token.

  Expiry: a token is valid while now < exp. At now == exp it is expired.
       No clock-skew leeway. Expiry is checked here against the injected
       clock rather than by jose so the boundary is exact and testable.

  Failures: verify() raises InvalidToken for every failure mode (malformed,
       unknown key, bad signature, bad claims, expired). Callers never need to
       tell them apart, and must not.

Layer rule: no imports from api/ or accounts/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from jose import JWTError, jwt

from auth.models import Role
from core.errors import InvalidToken

logger = logging.getLogger("accountsvc.auth")

_ALGORITHM = "HS256"

KeyResolver = Callable[[str | None], str | None]


class StaticKeyResolver:
    """Resolve a token's `kid` header against a fixed {kid: secret} map."""

    def __init__(self, keys: Mapping[str, str]) -> None:
        self._keys = dict(keys)

    def __call__(self, kid: str | None) -> str | None:
        if not isinstance(kid, str):
            return None
        return self._keys.get(kid)


@dataclass(frozen=True)
class TokenClaims:
    """Verified identity and lifetime extracted from an access token."""

    account_id: int
    role: Role
    issued_at: datetime
    expires_at: datetime


class TokenService:
    """Issue and verify HS256 access tokens.

    Usage:
        tokens = TokenService(secret, key_id="primary", ttl_seconds=3600)
        token = tokens.issue(42, Role.USER)
        claims = tokens.verify(token)   # raises InvalidToken on any failure
    """

    def __init__(
        self,
        signing_key: str,
        *,
        key_id: str = "primary",
        ttl_seconds: int = 3600,
        key_resolver: KeyResolver | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._signing_key = signing_key
        self.key_id = key_id
        self.ttl_seconds = ttl_seconds
        self._resolve_key = key_resolver or StaticKeyResolver({key_id: signing_key})
        self._clock = clock

    def issue(self, account_id: int, role: Role) -> str:
        """Return a signed token for the account, expiring ttl_seconds from now."""
        issued_at = int(self._clock())
        payload = {
            "sub": str(account_id),
            "role": Role(role).value,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
        }
        return jwt.encode(payload, self._signing_key, algorithm=_ALGORITHM, headers={"kid": self.key_id})

    def verify(self, token: str) -> TokenClaims:
        """Verify signature, structure and expiry. Raises InvalidToken on any failure."""
        if not isinstance(token, str) or not token:
            raise InvalidToken()
        try:
            kid = jwt.get_unverified_header(token).get("kid")
            # kid is attacker-controlled until the signature checks out.
            key = self._resolve_key(kid) if isinstance(kid, str) else None
            if key is None:
                logger.debug("Token rejected: unknown key id %r", kid)
                raise InvalidToken()
            payload = jwt.decode(token, key, algorithms=[_ALGORITHM], options={"verify_exp": False})
        except JWTError as exc:
            raise InvalidToken() from exc

        claims = _parse_claims(payload)
        if not self._clock() < claims.expires_at.timestamp():
            raise InvalidToken()
        return claims


def _parse_claims(payload: dict) -> TokenClaims:
    sub = payload.get("sub")
    iat = payload.get("iat")
    exp = payload.get("exp")
    if not isinstance(sub, str) or not sub.isdigit():
        raise InvalidToken()
    if not isinstance(iat, int) or not isinstance(exp, int):
        raise InvalidToken()
    try:
        role = Role(payload.get("role"))
    except ValueError as exc:
        raise InvalidToken() from exc
    return TokenClaims(
        account_id=int(sub),
        role=role,
        issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
        expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
    )
