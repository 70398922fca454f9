"""
auth/errors.py -- Error taxonomy for the authentication core.

These are returned inside Err(...) results (see auth/results.py) rather than
raised across the core boundary. Each carries a stable machine-readable code
and the message a caller may show to the end user.

Anti-enumeration: InvalidCredentials and InvalidToken deliberately collapse
several internal causes (unknown email, wrong role, wrong password, ambiguous
match / missing, expired, owner inactive) into one outcome.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class. code and message are safe to expose to clients."""

    code = "auth_error"
    message = "Authentication failed."

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.message)
        self.detail = detail


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    message = "Invalid email or password."


class AccountInactive(AuthError):
    """The password matched but the account is not active.

    status is for internal use; the caller decides how much of it to disclose.
    """

    code = "account_inactive"

    def __init__(self, status: str) -> None:
        super().__init__(f"account status is {status!r}")
        self.status = status

    @property
    def message(self) -> str:  # type: ignore[override]
        return f"Account is {self.status}."


class InvalidToken(AuthError):
    code = "invalid_token"
    message = "Remember-me token is invalid or expired."


class InvalidRole(AuthError):
    code = "invalid_role"
    message = "Unrecognized user type."


class StorageError(AuthError):
    code = "storage_error"
    message = "Authentication failed."


class RevokeError(AuthError):
    code = "revoke_error"
    message = "Could not revoke remember-me token."
