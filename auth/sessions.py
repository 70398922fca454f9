"""
auth/sessions.py -- Session Manager and server-side session stores.

The session is an explicit value (RequestSession) owned by one request, not
ambient global state. SessionManager is a stateless service: every operation
takes the RequestSession it acts on, and persistence goes through a
SessionStore that can be swapped for a test double.

State machine per session:  NoSession -> Active -> NoSession

  initialize_if_absent()  Lazy; runs at most once per request. Strict mode:
                          the client-supplied id is adopted only if the store
                          already holds a live record for it. Anything else
                          gets a fresh server-generated id.
  fixation guard          An adopted payload without the "initiated" marker
                          has its id regenerated once, then the marker is
                          recorded so it never happens again for that session.
                          A fresh id starts out marked.
  read-only accessors     is_authenticated() and friends adopt a live incoming
                          session but never start a new one.
  establish()             Overwrites the payload with the identity snapshot.
  destroy()               Clears the payload, deletes the server record, and
                          makes commit() expire the client cookie.
  commit()                HTTP boundary: persist and write Set-Cookie.

Layer rule: no imports from api/. Starlette responses are duck-typed
(set_cookie / delete_cookie) so this module stays framework-agnostic.
"""

from __future__ import annotations

import json
import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from auth.models import Role, UserView

INITIATED_KEY = "initiated"
USER_KEY = "user"

# Longest client-supplied id we will even look up. Ours are 43 chars.
_MAX_SID_LENGTH = 64


def _new_sid() -> str:
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------------
# Session stores
# ---------------------------------------------------------------------------


class SessionStore:
    """Interface for server-side session records keyed by session id.

    Payloads must be JSON-serializable. load() returns None for unknown or
    expired ids. delete() of an absent id is a no-op.
    """

    def load(self, sid: str) -> dict | None:
        raise NotImplementedError

    def save(self, sid: str, data: dict) -> None:
        raise NotImplementedError

    def delete(self, sid: str) -> None:
        raise NotImplementedError

    def purge_expired(self) -> int:
        raise NotImplementedError


class MemorySessionStore(SessionStore):
    """Process-local session store. Suitable for a single worker and tests.

    Payloads are kept JSON-encoded so callers never share mutable state with
    the store, matching the SQL-backed store's semantics.
    """

    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._records: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def load(self, sid: str) -> dict | None:
        with self._lock:
            record = self._records.get(sid)
            if record is None:
                return None
            payload, touched = record
            if self.clock() - touched > self.ttl_seconds:
                del self._records[sid]
                return None
        return json.loads(payload)

    def save(self, sid: str, data: dict) -> None:
        payload = json.dumps(data)
        with self._lock:
            self._records[sid] = (payload, self.clock())

    def delete(self, sid: str) -> None:
        with self._lock:
            self._records.pop(sid, None)

    def purge_expired(self) -> int:
        cutoff = self.clock() - self.ttl_seconds
        with self._lock:
            stale = [sid for sid, (_, touched) in self._records.items() if touched < cutoff]
            for sid in stale:
                del self._records[sid]
        return len(stale)

    def __contains__(self, sid: str) -> bool:
        with self._lock:
            return sid in self._records


# ---------------------------------------------------------------------------
# Request-scoped session value
# ---------------------------------------------------------------------------


@dataclass
class CookiePolicy:
    """Attributes of the session cookie. Used verbatim for set and clear."""

    name: str = "fitzone_session"
    path: str = "/"
    domain: str | None = None
    secure: bool = True
    httponly: bool = True
    samesite: str = "strict"


class RequestSession:
    """Session state for one inbound request.

    incoming_sid is whatever the client sent; it is untrusted until the
    SessionManager has looked it up. sid is the id the response will carry.
    """

    def __init__(self, incoming_sid: str | None = None) -> None:
        self.incoming_sid = incoming_sid
        self.sid: str | None = None
        self.data: dict = {}
        self.started = False
        self.destroyed = False
        self.looked_up = False
        self.regenerations = 0


# ---------------------------------------------------------------------------
# Session manager
# ---------------------------------------------------------------------------


class SessionManager:
    """Stateless session lifecycle service.

    Usage (per request):
        session = RequestSession(request.cookies.get(policy.name))
        manager.establish(session, view)
        manager.commit(session, response)
    """

    def __init__(self, store: SessionStore, cookie: CookiePolicy | None = None) -> None:
        self.store = store
        self.cookie = cookie or CookiePolicy()

    def initialize_if_absent(self, session: RequestSession) -> None:
        if session.started:
            return
        self._start(session, self._load_incoming(session))

    def _load_incoming(self, session: RequestSession) -> dict | None:
        """Look up the client-supplied id, at most once per request."""
        incoming = session.incoming_sid
        if session.looked_up or not incoming or len(incoming) > _MAX_SID_LENGTH:
            return None
        session.looked_up = True
        return self.store.load(incoming)

    def _start(self, session: RequestSession, data: dict | None) -> None:
        if data is None:
            # Fresh id: nothing on the server to move.
            session.sid = _new_sid()
            session.data = {INITIATED_KEY: True}
        else:
            session.sid = session.incoming_sid
            session.data = data
            if not data.get(INITIATED_KEY):
                self.regenerate(session)
                session.data[INITIATED_KEY] = True
        session.started = True
        session.destroyed = False

    def _peek(self, session: RequestSession) -> dict:
        """Payload for read-only checks.

        Adopts a live incoming session but never creates one, so anonymous
        requests leave no record and get no cookie.
        """
        if not session.started and not session.destroyed:
            data = self._load_incoming(session)
            if data is None:
                return {}
            self._start(session, data)
        return session.data

    def regenerate(self, session: RequestSession) -> None:
        """Move the session to a fresh id and drop the old server record."""
        old_sid = session.sid
        session.sid = _new_sid()
        session.regenerations += 1
        if old_sid:
            self.store.delete(old_sid)

    def establish(self, session: RequestSession, identity: UserView) -> None:
        self.initialize_if_absent(session)
        session.data = {
            INITIATED_KEY: True,
            USER_KEY: {**identity.as_dict(), "logged_in": True},
        }

    def is_authenticated(self, session: RequestSession) -> bool:
        user = self._peek(session).get(USER_KEY)
        return isinstance(user, dict) and user.get("logged_in") is True

    def current_role(self, session: RequestSession) -> Role | None:
        if not self.is_authenticated(session):
            return None
        try:
            return Role(session.data[USER_KEY].get("role"))
        except ValueError:
            return None

    def current_identity(self, session: RequestSession) -> UserView | None:
        role = self.current_role(session)
        if role is None:
            return None
        user = session.data[USER_KEY]
        return UserView(id=user["id"], name=user["name"], email=user["email"], role=role)

    def destroy(self, session: RequestSession) -> None:
        """End the session. Safe to call when there is no session at all."""
        sid = session.sid or session.incoming_sid
        if sid and len(sid) <= _MAX_SID_LENGTH:
            self.store.delete(sid)
        session.data = {}
        session.sid = None
        session.incoming_sid = None
        session.started = False
        session.destroyed = True

    def commit(self, session: RequestSession, response) -> None:
        """Persist the session and write or clear the session cookie."""
        if not session.started:
            if session.destroyed:
                response.delete_cookie(
                    self.cookie.name,
                    path=self.cookie.path,
                    domain=self.cookie.domain,
                    secure=self.cookie.secure,
                    httponly=self.cookie.httponly,
                    samesite=self.cookie.samesite,
                )
            return
        self.store.save(session.sid, session.data)
        if session.sid != session.incoming_sid:
            response.set_cookie(
                self.cookie.name,
                value=session.sid,
                path=self.cookie.path,
                domain=self.cookie.domain,
                secure=self.cookie.secure,
                httponly=self.cookie.httponly,
                samesite=self.cookie.samesite,
            )
