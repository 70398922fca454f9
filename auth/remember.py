"""
auth/remember.py -- Remember-Token Manager.

Issues, validates, and revokes long-lived "remember me" tokens.

Lifecycle:
  issue(user_id)   -- new random token, stored as an HMAC hash with an
                      absolute expiry of now + REMEMBER_TOKEN_DAYS.
  validate(token)  -- owner identity if the token exists, is unexpired, and
                      the owner is active. No sliding renewal, no rotation.
  revoke(token)    -- delete the row. Idempotent.
  purge_expired()  -- housekeeping; expired rows are already invisible to
                      validate(), this just reclaims space.

Storage failures become StorageError / RevokeError results. A failed issue()
must not fail the login that requested it -- the caller simply skips the cookie.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import SQLAlchemyError

from auth.errors import AuthError, InvalidToken, RevokeError, StorageError
from auth.models import UserView
from auth.results import Err, Ok, Result
from auth.store import CredentialStore, to_iso
from auth.tokens import generate_remember_token, hash_remember_token

logger = logging.getLogger("fitzone.auth.remember")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RememberTokenManager:
    """Remember-token service bound to a CredentialStore.

    clock is injectable so tests can move time past a token's expiry.
    """

    def __init__(
        self,
        store: CredentialStore,
        lifetime: timedelta = timedelta(days=30),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.lifetime = lifetime
        self.clock = clock

    def issue(self, user_id: int) -> Result[str, StorageError]:
        token = generate_remember_token()
        expires_at = to_iso(self.clock() + self.lifetime)
        try:
            self.store.create_remember_token(user_id, hash_remember_token(token), expires_at)
        except SQLAlchemyError as exc:
            logger.warning("Remember token issue failed for user %s", user_id, exc_info=True)
            return Err(StorageError(f"token insert failed: {exc.__class__.__name__}"))
        return Ok(token)

    def validate(self, token: str) -> Result[UserView, AuthError]:
        if not token:
            return Err(InvalidToken("empty token"))
        try:
            user = self.store.get_user_by_remember_token(hash_remember_token(token), to_iso(self.clock()))
        except SQLAlchemyError as exc:
            logger.warning("Remember token lookup failed", exc_info=True)
            return Err(StorageError(f"token lookup failed: {exc.__class__.__name__}"))
        if user is None:
            return Err(InvalidToken("token not found, expired, or owner inactive"))
        return Ok(user.to_view())

    def revoke(self, token: str) -> Result[None, RevokeError]:
        if not token:
            return Ok(None)
        try:
            self.store.delete_remember_token(hash_remember_token(token))
        except SQLAlchemyError as exc:
            logger.warning("Remember token revoke failed", exc_info=True)
            return Err(RevokeError(f"token delete failed: {exc.__class__.__name__}"))
        return Ok(None)

    def purge_expired(self) -> int:
        return self.store.purge_expired_remember_tokens(to_iso(self.clock()))
