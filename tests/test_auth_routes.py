"""
tests/test_auth_routes.py -- Integration tests for the login / resume / logout flow.

These run through the real ASGI stack (session middleware included) with the
api_client fixture, so cookies round-trip through the TestClient jar exactly
as a browser would send them back.

Coverage:
  - login success per role: session cookie, landing page, no password in body
  - generic invalid_credentials for every wrong factor
  - account_inactive only after a correct password
  - invalid_role for unrecognized user types
  - anonymous requests create no session; session writes stay off the event loop
  - remember-me cookie attributes; degraded login when token storage fails
  - resume from the remember cookie after the session is gone
  - logout revokes the token and clears both cookies
"""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from core.config import get_settings

SESSION_COOKIE = get_settings().session_cookie_name
REMEMBER_COOKIE = get_settings().remember_cookie_name


def _login(client: TestClient, email: str = "a@x.com", password: str = "hunter2", **extra):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password, **extra})


def _plant_cookie(client: TestClient, name: str, value: str) -> None:
    """Put a cookie in the jar under the same key a server-set cookie uses.

    The stdlib cookie jar files host-only cookies for "testserver" under
    "testserver.local"; planting under that domain replaces rather than
    duplicates a cookie the app set earlier.
    """
    client.cookies.set(name, value, domain="testserver.local")


def _set_cookie_headers(resp) -> list[str]:
    return resp.headers.get_list("set-cookie")


def _cookie_header(resp, name: str) -> str | None:
    for header in _set_cookie_headers(resp):
        if header.startswith(f"{name}="):
            return header
    return None


class TestLogin:
    def test_customer_login_succeeds(self, client: TestClient) -> None:
        resp = _login(client, user_type="Member")
        assert resp.status_code == 200
        data = resp.json()
        assert data["user"] == {"id": data["user"]["id"], "name": "Ann Customer", "email": "a@x.com", "role": "customer"}
        assert data["redirect"] == "/dashboard"
        assert data["remember"] is False
        assert "password" not in resp.text
        assert resp.headers["Cache-Control"] == "no-store"
        assert client.cookies.get(SESSION_COOKIE)
        assert client.cookies.get(REMEMBER_COOKIE) is None

    @pytest.mark.parametrize(
        ("email", "user_type", "redirect"),
        [("s@x.com", "Staff", "/staff_dashboard"), ("admin@x.com", "Admin", "/admin_dashboard")],
    )
    def test_role_landing_pages(self, client: TestClient, email: str, user_type: str, redirect: str) -> None:
        resp = _login(client, email=email, user_type=user_type)
        assert resp.status_code == 200
        assert resp.json()["redirect"] == redirect

    def test_session_cookie_attributes(self, client: TestClient) -> None:
        resp = _login(client)
        header = _cookie_header(resp, SESSION_COOKIE).lower()
        assert "httponly" in header
        assert "secure" in header
        assert "samesite=strict" in header

    def test_me_after_login(self, client: TestClient) -> None:
        _login(client)
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json()["email"] == "a@x.com"
        assert resp.json()["role"] == "customer"

    def test_me_requires_session(self, client: TestClient) -> None:
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_anonymous_check_sets_no_session_cookie(self, client: TestClient, monkeypatch) -> None:
        saved = []
        monkeypatch.setattr(client.app.state.session_store, "save", lambda sid, data: saved.append(sid))
        _plant_cookie(client, SESSION_COOKIE, "stale-id")
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert _cookie_header(resp, SESSION_COOKIE) is None
        assert client.post("/api/v1/auth/resume").status_code == 401
        assert saved == []

    def test_session_is_saved_off_the_event_loop(self, client: TestClient, monkeypatch) -> None:
        session_store = client.app.state.session_store
        original_save = session_store.save
        seen = []

        def recording_save(sid, data):
            try:
                asyncio.get_running_loop()
                seen.append("event-loop")
            except RuntimeError:
                seen.append("worker-thread")
            original_save(sid, data)

        monkeypatch.setattr(session_store, "save", recording_save)
        assert _login(client).status_code == 200
        assert seen == ["worker-thread"]

    def test_client_chosen_session_id_is_replaced(self, client: TestClient) -> None:
        _plant_cookie(client, SESSION_COOKIE, "attacker-fixed-id")
        _login(client)
        assert client.cookies.get(SESSION_COOKIE) != "attacker-fixed-id"
        assert client.get("/api/v1/auth/me").status_code == 200

    @pytest.mark.parametrize(
        ("email", "password", "user_type"),
        [
            ("a@x.com", "wrong", "Member"),
            ("a@x.com", "hunter2", "Staff"),
            ("ghost@x.com", "hunter2", "Member"),
        ],
    )
    def test_bad_credentials_are_generic(self, client: TestClient, email: str, password: str, user_type: str) -> None:
        resp = _login(client, email=email, password=password, user_type=user_type)
        assert resp.status_code == 401
        assert resp.json() == {
            "error": {"code": "invalid_credentials", "message": "Invalid email or password.", "detail": None}
        }
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_suspended_account(self, client: TestClient) -> None:
        resp = _login(client, email="b@x.com")
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "account_inactive"
        assert resp.json()["error"]["message"] == "Account is suspended."
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_unknown_user_type_rejected(self, client: TestClient) -> None:
        resp = _login(client, user_type="Owner")
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "invalid_role"

    def test_missing_password_is_validation_error(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/login", json={"email": "a@x.com"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestRememberMe:
    def test_remember_cookie_issued(self, client: TestClient) -> None:
        resp = _login(client, remember=True)
        assert resp.status_code == 200
        assert resp.json()["remember"] is True
        header = _cookie_header(resp, REMEMBER_COOKIE).lower()
        assert "max-age=2592000" in header
        assert "httponly" in header
        assert "secure" in header
        assert "samesite=strict" in header
        assert "path=/" in header
        assert len(client.cookies.get(REMEMBER_COOKIE)) == 64

    def test_token_storage_failure_does_not_block_login(self, client: TestClient, api_client, monkeypatch) -> None:
        _, store, _ = api_client

        def boom(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("disk full"))

        monkeypatch.setattr(store, "create_remember_token", boom)
        resp = _login(client, remember=True)
        assert resp.status_code == 200
        assert resp.json()["remember"] is False
        assert _cookie_header(resp, REMEMBER_COOKIE) is None
        assert client.get("/api/v1/auth/me").status_code == 200

    def test_resume_restores_session(self, client: TestClient) -> None:
        _login(client, remember=True)
        token = client.cookies.get(REMEMBER_COOKIE)
        # Fresh browser session: only the remember cookie survives.
        client.cookies.clear()
        _plant_cookie(client, REMEMBER_COOKIE, token)
        assert client.get("/api/v1/auth/me").status_code == 401

        resp = client.post("/api/v1/auth/resume")
        assert resp.status_code == 200
        assert resp.json()["user"]["email"] == "a@x.com"
        assert resp.json()["redirect"] == "/dashboard"
        assert client.get("/api/v1/auth/me").status_code == 200

    def test_resume_with_invalid_token_clears_cookie(self, client: TestClient) -> None:
        _plant_cookie(client, REMEMBER_COOKIE, "0" * 64)
        resp = client.post("/api/v1/auth/resume")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_token"
        assert "max-age=0" in _cookie_header(resp, REMEMBER_COOKIE).lower()

    def test_resume_without_cookie(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/resume")
        assert resp.status_code == 401
        assert _cookie_header(resp, REMEMBER_COOKIE) is None

    def test_resume_with_active_session_is_noop(self, client: TestClient) -> None:
        _login(client, email="s@x.com", user_type="staff")
        resp = client.post("/api/v1/auth/resume")
        assert resp.status_code == 200
        assert resp.json()["user"]["role"] == "staff"


class TestLogout:
    def test_logout_revokes_and_clears(self, client: TestClient) -> None:
        _login(client, remember=True)
        token = client.cookies.get(REMEMBER_COOKIE)

        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert resp.json() == {"message": "You have been successfully logged out."}
        assert "max-age=0" in _cookie_header(resp, SESSION_COOKIE).lower()
        assert "max-age=0" in _cookie_header(resp, REMEMBER_COOKIE).lower()
        assert client.get("/api/v1/auth/me").status_code == 401

        # The revoked token must not resurrect the session.
        _plant_cookie(client, REMEMBER_COOKIE, token)
        assert client.post("/api/v1/auth/resume").status_code == 401

    def test_logout_without_session_is_safe(self, client: TestClient) -> None:
        assert client.post("/api/v1/auth/logout").status_code == 200
        assert client.post("/api/v1/auth/logout").status_code == 200

    def test_old_session_id_is_dead_after_logout(self, client: TestClient) -> None:
        _login(client)
        old_sid = client.cookies.get(SESSION_COOKIE)
        client.post("/api/v1/auth/logout")
        _plant_cookie(client, SESSION_COOKIE, old_sid)
        assert client.get("/api/v1/auth/me").status_code == 401
