"""
auth/errors.py -- Exception taxonomy for gatekey authentication.

Every error carries a machine-readable code and the HTTP status the API layer
should answer with. api/main.py registers one handler for AuthError and renders
the standard {"error": {"code", "message"}} envelope from these attributes,
so route handlers and dependencies raise these directly instead of building
HTTPException payloads.

Rejections (CredentialMismatch, TokenInvalid, TokenExpired) share one
status so a client cannot learn which check failed from the status alone.
The code still tells TokenExpired apart so a client can prompt re-login.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all gatekey authentication failures."""

    code: str = "auth_error"
    status_code: int = 500
    message: str = "An unknown authentication error occurred."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class CredentialMismatch(AuthError):
    """Username unknown or password wrong. Deliberately indistinguishable."""

    code = "bad_credentials"
    status_code = 403
    message = "Invalid username or password."


class TokenInvalid(AuthError):
    """Token is missing, malformed, unsigned, signed with another key or from another issuer."""

    code = "token_invalid"
    status_code = 403
    message = "Access denied."


class TokenExpired(AuthError):
    """Signature checks out but the token is past its expiry."""

    code = "token_expired"
    status_code = 403
    message = "Token has expired. Log in again."


class UsernameTaken(AuthError):
    code = "username_taken"
    status_code = 409
    message = "A user with that name already exists."


class SigningFailure(AuthError):
    """The issuer could not produce a token (missing key, library error)."""

    code = "signing_failure"
    status_code = 500
    message = "Could not issue a token."


class StoreError(AuthError):
    """The user database failed. Wraps the driver exception as __cause__."""

    code = "store_error"
    status_code = 500
    message = "User database operation failed."
