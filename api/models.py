"""
API request and response models for FitZone auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Role, UserView

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    user_type is the raw login-form selector ("Admin", "Staff", "Member", ...).
    It is normalized by auth.models.parse_role() in the route, not here, so an
    unknown value surfaces as invalid_role rather than a generic 422.
    Nothing is whitespace-stripped here: passwords are compared verbatim and
    the store normalizes emails itself.
    """

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)
    user_type: Optional[str] = Field(default=None, max_length=30)
    remember: bool = False


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class IdentityResponse(BaseModel):
    """The authenticated identity. Never includes credentials."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    role: Role

    @classmethod
    def from_view(cls, view: UserView) -> "IdentityResponse":
        return cls(id=view.id, name=view.name, email=view.email, role=view.role)


class LoginResponse(BaseModel):
    """Response for a successful login or session resume.

    redirect is the role's landing page. remember reports whether a
    remember-me cookie was actually issued on this response.
    """

    model_config = ConfigDict(frozen=True)

    user: IdentityResponse
    redirect: str
    remember: bool = False


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
