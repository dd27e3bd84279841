"""
auth/dependencies.py -- FastAPI Depends() helper that identifies the caller.

Only the Authorization: Bearer header is consulted. Tokens are stateless, so
identifying a caller never touches the store; the account service decides
what the identity may do.

get_identity() never raises. A missing header yields an anonymous identity;
a header whose token fails verification yields a rejected identity. The
access evaluator turns those into AuthenticationMissing / AuthenticationInvalid
when an operation needs an authenticated caller.

Layer rule: no imports from accounts/ (the service is reached through
app.state). This module may import from fastapi because it is part of the
FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.models import Identity

logger = logging.getLogger("accountsvc.auth")


def bearer_token(request: Request) -> str | None:
    """Return the raw token from `Authorization: Bearer <token>`, or None."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def get_identity(request: Request) -> Identity:
    """Resolve the caller's Identity from its bearer token.

    Use as a FastAPI dependency:
        @router.put("/users/{account_id}")
        async def route(identity: Identity = Depends(get_identity)): ...
    """
    identity = request.app.state.account_service.identify(bearer_token(request))
    if identity.token_rejected:
        logger.info("Rejected bearer token on %s %s", request.method, request.url.path)
    return identity
