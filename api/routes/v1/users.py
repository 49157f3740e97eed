"""
api/routes/v1/users.py -- Registration, login and identity endpoints.

Routes:
  POST /api/v1/users/register  -- create a local user; 409 if the name is taken
  POST /api/v1/users/login     -- password login; returns a bearer JWT
  GET  /api/v1/users/me        -- identity behind the presented bearer token

Security:
  [H2] POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  [C1] Auth.login() provides timing equalization -- use it, never inline
       get_by_username() + verify_password().
  [M5] Cache-Control: no-store on login responses.

Errors are not built here: Auth raises AuthError subclasses and the handler
in api/main.py renders them.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import IdentityResponse, LoginRequest, LoginResponse, RegisterRequest, RegisterResponse
from auth.dependencies import get_auth, require_identity
from auth.models import AuthenticatedIdentity
from auth.service import Auth

# Auth policy:
# - POST /api/v1/users/register: public
# - POST /api/v1/users/login:    public, rate limited
# - GET  /api/v1/users/me:       requires a bearer token (require_identity)
router = APIRouter()


@router.post("/users/register", response_model=RegisterResponse)
def register(body: RegisterRequest, auth: Auth = Depends(get_auth)) -> RegisterResponse:
    """Create a user. The generated user id is returned; the password never is."""
    user_id = auth.register(body.username, body.password)
    return RegisterResponse(user_id=user_id)


@router.post("/users/login", response_model=LoginResponse)
@limiter.limit(login_rate_limit)  # [H2] must be BELOW @router so FastAPI registers the limited wrapper
def login(request: Request, body: LoginRequest, auth: Auth = Depends(get_auth)) -> JSONResponse:
    """Authenticate with username and password; return a signed bearer token.

    Wrong username and wrong password produce the same "bad_credentials"
    error so the response does not leak which usernames exist.
    """
    minted = auth.login(body.username, body.password)
    resp = JSONResponse(status_code=200, content=LoginResponse.from_issued(minted).model_dump())
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.get("/users/me", response_model=IdentityResponse)
async def me(identity: AuthenticatedIdentity = Depends(require_identity)) -> IdentityResponse:
    """Return the identity carried by the caller's bearer token."""
    return IdentityResponse.from_identity(identity)
