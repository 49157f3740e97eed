"""
API request and response models for gatekey REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import AuthenticatedIdentity, IssuedToken
from auth.passwords import MAX_PASSWORD_BYTES, password_too_long


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class _Credentials(BaseModel):
    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        # The limit is in UTF-8 bytes: 72 "é" characters are 144 bytes.
        if password_too_long(v):
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
        return v


class RegisterRequest(_Credentials):
    """Request body for POST /api/v1/users/register."""


class LoginRequest(_Credentials):
    """Request body for POST /api/v1/users/login."""


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str


class LoginResponse(BaseModel):
    """Response for a successful login.

    access_token goes in subsequent requests as "Authorization: Bearer <token>".
    expires_at is a UNIX timestamp; expires_in is the lifetime in seconds.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    expires_at: int

    @classmethod
    def from_issued(cls, minted: IssuedToken) -> "LoginResponse":
        return cls(
            access_token=minted.token,
            expires_in=minted.lifetime_seconds,
            expires_at=minted.expires_at,
        )


class IdentityResponse(BaseModel):
    """Response for GET /api/v1/users/me."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    issued_at: int
    expires_at: int

    @classmethod
    def from_identity(cls, identity: AuthenticatedIdentity) -> "IdentityResponse":
        return cls(user_id=identity.subject, issued_at=identity.issued_at, expires_at=identity.expires_at)


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

    status: str = "ok"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
