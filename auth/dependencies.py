"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

require_identity() is the guard a route installs to demand a valid bearer
token:

    @router.get("/protected")
    async def route(identity: AuthenticatedIdentity = Depends(require_identity)): ...

It reads the Authorization header, delegates to the Auth instance the
application stored on app.state.auth during startup, and returns the
AuthenticatedIdentity. Rejections propagate as TokenInvalid / TokenExpired;
the AuthError handler in api/main.py turns them into 403 responses, so this
module builds no HTTP responses itself.

Layer rule: no imports from api/. This module may import from fastapi
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import AuthenticatedIdentity
from auth.service import Auth


def get_auth(request: Request) -> Auth:
    return request.app.state.auth


def require_identity(request: Request) -> AuthenticatedIdentity:
    """Require a valid bearer token. Raises TokenInvalid or TokenExpired otherwise."""
    return get_auth(request).authenticate_header(request.headers.get("Authorization"))