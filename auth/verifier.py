"""
auth/verifier.py -- Credential Verifier: (email, password, role) -> identity.

Outcome order matters and mirrors what a caller may learn:
  1. Lookup by email AND role. Zero or several rows -> InvalidCredentials.
  2. bcrypt comparison. Mismatch -> InvalidCredentials.
  3. Status check. Not "active" -> AccountInactive(status).

The status check runs only after the password matched, so AccountInactive is
never disclosed to someone who does not know the password.

bcrypt always runs exactly once per call, including when no user matched
(against DUMMY_HASH), so response time does not reveal whether an email is
registered under the given role.

The verifier performs no writes and does not log; the HTTP layer logs outcomes.
"""

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError

from auth.errors import AccountInactive, AuthError, InvalidCredentials, StorageError
from auth.models import Role, UserView
from auth.results import Err, Ok, Result
from auth.store import CredentialStore
from auth.tokens import DUMMY_HASH, verify_password


class CredentialVerifier:
    def __init__(self, store: CredentialStore) -> None:
        self.store = store

    def authenticate(self, email: str, password: str, role: Role) -> Result[UserView, AuthError]:
        if not email or not password:
            return Err(InvalidCredentials("empty email or password"))
        try:
            matches = self.store.find_by_email_and_role(email, role)
        except SQLAlchemyError as exc:
            return Err(StorageError(f"credential lookup failed: {exc.__class__.__name__}"))

        if len(matches) != 1:
            # Equalize timing -- do NOT return before running bcrypt
            verify_password(password, DUMMY_HASH)
            return Err(InvalidCredentials("no unique user for email and role"))

        user = matches[0]
        if not verify_password(password, user.hashed_password):
            return Err(InvalidCredentials("password mismatch"))
        if not user.is_active:
            return Err(AccountInactive(user.status))
        return Ok(user.to_view())
