"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The request-scoped RequestSession is created by the session middleware in
api/main.py and stored on request.state.session. These helpers read it
through the SessionManager held on app.state.

try_get_current_user() is the soft variant (returns None when anonymous).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_role() builds a dependency that also raises HTTP 403 on a role mismatch.

Remember-me cookies are NOT consulted here. Restoring a session from a
remember token is an explicit step (POST /auth/resume) because it must be
able to clear an invalid cookie on the response.

Layer rule: auth/dependencies.py may import from fastapi because it is part of
the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import Role, UserView
from auth.sessions import RequestSession, SessionManager


def get_session(request: Request) -> RequestSession:
    """Return the RequestSession attached by the session middleware."""
    session = getattr(request.state, "session", None)
    if session is None:
        # Route reached without the middleware (e.g. a bare test app).
        session = RequestSession()
        request.state.session = session
    return session


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def try_get_current_user(request: Request) -> UserView | None:
    """Return the identity on the active session, or None. Never raises."""
    manager = get_session_manager(request)
    return manager.current_identity(get_session(request))


def get_current_user(request: Request) -> UserView:
    """Require authentication. Raises HTTP 401 if the session is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: UserView = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user


def require_role(*roles: Role):
    """Build a dependency that requires one of the given roles.

    Raises HTTP 401 if unauthenticated, HTTP 403 if the role does not match:
        @router.get("/admin-only")
        async def route(user: UserView = Depends(require_role(Role.admin))): ...
    """
    allowed = set(roles)

    def dependency(request: Request) -> UserView:
        user = get_current_user(request)
        if user.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "Insufficient role for this resource."},
            )
        return user

    return dependency
