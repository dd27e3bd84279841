"""
core/errors.py -- Typed error taxonomy for the account service.

Every failure the core can report is a subclass of AccountServiceError with a
stable machine-readable `code`. The core raises these; it never maps them to
transport status codes. api/main.py owns the code -> HTTP status table.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or accounts/.
"""

from __future__ import annotations


class AccountServiceError(Exception):
    """Base class for every error the account core propagates to the boundary."""

    code = "error"
    default_message = "Account service error."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AccountServiceError):
    """Malformed input that reached the core (wrong type, empty value, bad role)."""

    code = "validation_error"
    default_message = "Invalid input."


class ConflictError(AccountServiceError):
    """Uniqueness violation reported by the store (username or email taken)."""

    code = "conflict"
    default_message = "An account with that username or email already exists."


class NotFoundError(AccountServiceError):
    code = "not_found"
    default_message = "Account not found."


class InvalidCredentials(AccountServiceError):
    """Login failure.

    Raised with the same message for an unknown email and for a wrong
    password so the response cannot be used to enumerate accounts.
    """

    code = "bad_credentials"
    default_message = "Invalid email or password."


class InvalidToken(AccountServiceError):
    """Token is malformed, signed with an unknown or wrong key, or expired."""

    code = "invalid_token"
    default_message = "Invalid or expired token."


class AuthenticationMissing(AccountServiceError):
    code = "unauthorized"
    default_message = "Authentication required."


class AuthenticationInvalid(AccountServiceError):
    """A token was presented but could not be verified."""

    code = "authentication_invalid"
    default_message = "The supplied credentials could not be verified."


class Denied(AccountServiceError):
    """Authorization failure. `message` carries the evaluator's reason."""

    code = "forbidden"
    default_message = "Access denied."
