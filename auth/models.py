"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Dataclasses own
domain shape; stores and services do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from auth.errors import InvalidRole
from auth.results import Err, Ok, Result


class Role(str, Enum):
    """Closed set of authorization tiers. Also selects the post-login page."""

    admin = "admin"
    staff = "staff"
    customer = "customer"


ACTIVE_STATUS = "active"

# Login-form "user type" labels accepted for each role (compared lowercased).
# "member" is what the public login form calls a customer.
_USER_TYPE_ALIASES: dict[str, Role] = {
    "admin": Role.admin,
    "staff": Role.staff,
    "customer": Role.customer,
    "member": Role.customer,
}


def parse_role(user_type: str | None) -> Result[Role, InvalidRole]:
    """Normalize login-form input into the closed Role enumeration.

    A missing value means the public member form, i.e. Role.customer.
    Anything unrecognized is rejected instead of silently downgraded.
    """
    if user_type is None or not user_type.strip():
        return Ok(Role.customer)
    role = _USER_TYPE_ALIASES.get(user_type.strip().lower())
    if role is None:
        return Err(InvalidRole(f"unrecognized user type {user_type!r}"))
    return Ok(role)


@dataclass
class User:
    """A stored account record.

    email is stored lowercased; lookups lowercase their input so matching is
    case-insensitive. status is free-form ("active", "suspended", "pending",
    ...) -- only "active" may authenticate.

    hashed_password must never leave the auth/ package. Convert to UserView
    with to_view() before handing the identity to anything else.
    """

    name: str
    email: str
    role: Role
    hashed_password: str
    status: str = ACTIVE_STATUS
    id: int | None = None
    created_at: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE_STATUS

    def to_view(self) -> UserView:
        return UserView(id=self.id, name=self.name, email=self.email, role=self.role)


@dataclass(frozen=True)
class UserView:
    """User identity with the password hash stripped.

    Safe to hold in session state or return to callers.
    """

    id: int
    name: str
    email: str
    role: Role

    def as_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role.value}


@dataclass
class RememberToken:
    """A persistent login credential row.

    token_hash is HMAC-SHA256(SECRET_KEY, raw_token). The raw token lives only
    in the client's remember_token cookie; it is returned ONCE by issue().
    expires_at is an absolute ISO 8601 UTC timestamp fixed at issuance.
    """

    user_id: int
    token_hash: str
    expires_at: str
    id: int | None = None
    created_at: str | None = None
