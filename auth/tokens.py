"""
auth/tokens.py -- Password hashing, remember-token generation, and cookie helpers.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). Bcrypt's cost factor makes
       brute-force of low-entropy secrets expensive. DUMMY_HASH lets the
       verifier run a full bcrypt check even when no account matches, so
       response time does not reveal which emails are registered.

  Remember tokens: secrets.token_hex(32) gives 256 bits of entropy. The store
       keeps HMAC-SHA256(SECRET_KEY, token) so a leaked database cannot be
       replayed as cookies without also knowing SECRET_KEY. The hash is
       deterministic, so lookup is a single indexed equality match.

  Cookies: secure (when SECURE_COOKIES=true, the default), httponly,
       samesite=strict, path=/. Clearing a cookie repeats the exact same
       attributes -- browsers only drop a cookie when path/domain match.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

import bcrypt

from core.config import get_settings

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes; the API layer caps password
    length at 255 characters.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash is a mismatch, not an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at import so the first login is not measurably slower.
DUMMY_HASH: str = hash_password("fitzone_timing_dummy")


# ---------------------------------------------------------------------------
# Remember tokens
# ---------------------------------------------------------------------------


def generate_remember_token() -> str:
    """Return a new opaque remember token: 64 hex chars, 256 bits of entropy."""
    return secrets.token_hex(32)


def hash_remember_token(raw_token: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw_token) as a hex string."""
    return hmac.new(
        get_settings().secret_key.encode(),
        raw_token.encode(),
        hashlib.sha256,
    ).hexdigest()


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_remember_cookie(response, token: str) -> None:
    """Write the raw remember token as a long-lived httpOnly cookie.

    max_age matches the server-side absolute expiry so both end together.
    """
    settings = get_settings()
    response.set_cookie(
        settings.remember_cookie_name,
        value=token,
        max_age=settings.remember_token_days * 24 * 3600,
        path="/",
        secure=settings.secure_cookies,
        httponly=True,
        samesite="strict",
    )


def clear_remember_cookie(response) -> None:
    """Expire the remember cookie with the attributes it was set with."""
    settings = get_settings()
    response.delete_cookie(
        settings.remember_cookie_name,
        path="/",
        secure=settings.secure_cookies,
        httponly=True,
        samesite="strict",
    )
