"""
api/routes/v1/auth.py -- Login, session resume, logout, and identity endpoints.

Routes:
  POST /api/v1/auth/login   -- password login; establishes the session,
                               optionally issues a remember-me cookie
  POST /api/v1/auth/resume  -- restore the session from the remember-me cookie
  POST /api/v1/auth/logout  -- revoke remember token, clear cookies, destroy session
  GET  /api/v1/auth/me      -- current identity (requires an active session)

Security:
  Wrong email, wrong password and wrong user type all return the same
  invalid_credentials error. Only a correct password reveals account status.
  Cache-Control: no-store on every login/resume response.
  Passwords and raw tokens are never logged.

The session cookie itself is written by the session middleware in api/main.py
after the handler returns; handlers only mutate request.state.session.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, IdentityResponse, LoginRequest, LoginResponse, MessageResponse
from auth.dependencies import get_current_user, get_session, get_session_manager
from auth.errors import AccountInactive, AuthError, InvalidCredentials, InvalidRole, InvalidToken, StorageError
from auth.models import Role, UserView, parse_role
from auth.remember import RememberTokenManager
from auth.results import Err
from auth.tokens import clear_remember_cookie, set_remember_cookie
from auth.verifier import CredentialVerifier
from core.config import get_settings

logger = logging.getLogger("fitzone.api.auth")

# Auth policy:
# - POST /api/v1/auth/login:   public
# - POST /api/v1/auth/resume:  public -- the remember cookie is the credential
# - POST /api/v1/auth/logout:  public -- tearing down needs no prior auth
# - GET  /api/v1/auth/me:      requires an authenticated session
router = APIRouter()

LANDING_PAGES: dict[Role, str] = {
    Role.admin: "/admin_dashboard",
    Role.staff: "/staff_dashboard",
    Role.customer: "/dashboard",
}

_FAILURE_STATUS: dict[type[AuthError], int] = {
    InvalidCredentials: 401,
    AccountInactive: 403,
    InvalidRole: 422,
    InvalidToken: 401,
    StorageError: 503,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _error_response(error: AuthError) -> JSONResponse:
    """Render an AuthError as the standard error envelope.

    Only code and the client-safe message go out; error.detail stays internal.
    """
    resp = JSONResponse(
        status_code=_FAILURE_STATUS.get(type(error), 401),
        content=ErrorResponse(error=ErrorDetail(code=error.code, message=error.message)).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _login_response(view: UserView, remembered: bool) -> JSONResponse:
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            user=IdentityResponse.from_view(view),
            redirect=LANDING_PAGES[view.role],
            remember=remembered,
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email, password and user type; start a session.

    A storage failure while issuing the remember-me token does not fail the
    login -- the response simply reports remember=false and sets no cookie.
    """
    parsed = parse_role(body.user_type)
    if isinstance(parsed, Err):
        logger.warning("Login rejected: %s", parsed.error.detail)
        return _error_response(parsed.error)
    role = parsed.value

    verifier: CredentialVerifier = request.app.state.verifier
    result = verifier.authenticate(body.email, body.password, role)
    if isinstance(result, Err):
        error = result.error
        if isinstance(error, StorageError):
            logger.error("Login failed (role=%s): %s", role.value, error.detail)
        else:
            logger.warning("Login failed (role=%s, code=%s)", role.value, error.code)
        return _error_response(error)

    view = result.value
    get_session_manager(request).establish(get_session(request), view)
    logger.info("Login succeeded for user %s (role=%s)", view.id, view.role.value)

    token: str | None = None
    if body.remember:
        remember_tokens: RememberTokenManager = request.app.state.remember_tokens
        issued = remember_tokens.issue(view.id)
        if isinstance(issued, Err):
            logger.warning("Remember-me unavailable for user %s: %s", view.id, issued.error.code)
        else:
            token = issued.value

    resp = _login_response(view, remembered=token is not None)
    if token is not None:
        set_remember_cookie(resp, token)
    return resp


@router.post("/auth/resume", response_model=LoginResponse)
def resume(request: Request) -> JSONResponse:
    """Re-establish a session from the remember-me cookie.

    An already-authenticated session is returned as-is. An invalid or expired
    token clears the cookie; a storage failure leaves it in place so the next
    visit can retry.
    """
    manager = get_session_manager(request)
    session = get_session(request)
    current = manager.current_identity(session)
    if current is not None:
        return _login_response(current, remembered=False)

    token = request.cookies.get(get_settings().remember_cookie_name)
    if not token:
        return _error_response(InvalidToken("no remember cookie"))

    remember_tokens: RememberTokenManager = request.app.state.remember_tokens
    result = remember_tokens.validate(token)
    if isinstance(result, Err):
        logger.info("Session resume failed: %s", result.error.code)
        resp = _error_response(result.error)
        if isinstance(result.error, InvalidToken):
            clear_remember_cookie(resp)
        return resp

    manager.establish(session, result.value)
    logger.info("Session resumed from remember token for user %s", result.value.id)
    return _login_response(result.value, remembered=False)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Revoke the remember token, clear both cookies, destroy the session."""
    resp = JSONResponse(content=MessageResponse(message="You have been successfully logged out.").model_dump())
    token = request.cookies.get(get_settings().remember_cookie_name)
    if token:
        remember_tokens: RememberTokenManager = request.app.state.remember_tokens
        revoked = remember_tokens.revoke(token)
        if isinstance(revoked, Err):
            logger.warning("Logout could not revoke remember token: %s", revoked.error.detail)
        clear_remember_cookie(resp)
    get_session_manager(request).destroy(get_session(request))
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=IdentityResponse)
def me(current_user: UserView = Depends(get_current_user)) -> IdentityResponse:
    """Return identity information for the current session."""
    return IdentityResponse.from_view(current_user)
