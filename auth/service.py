"""
auth/service.py -- Auth facade: registration, login and request authentication.

Auth wires the three building blocks together for an embedding application:
  - passwords.verify_password  (credential check)
  - tokens.TokenIssuer         (token mint)
  - tokens.TokenAuthenticator  (token check)

Everything process-wide (signing key, issuer, lifetimes) arrives through
AuthConfig at construction. Auth holds no other state, so a single instance
is safe to share across request threads.

Layer rule: may import core/ (the kernel) but not api/.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import timedelta

from auth.errors import CredentialMismatch, UsernameTaken
from auth.models import AuthenticatedIdentity, IssuedToken
from auth.passwords import DUMMY_HASH, hash_password, verify_password
from auth.store import UserDatabase
from auth.tokens import Clock, TokenAuthenticator, TokenIssuer, bearer_token
from core.config import Settings

logger = logging.getLogger("gatekey.auth")


@dataclass(frozen=True)
class AuthConfig:
    """Process-wide auth configuration, loaded once at startup.

    secret_key: HS256 signing key. Changing it invalidates every outstanding token.
    issuer: written to and required in the iss claim.
    token_lifetime: how long a login stays valid before the client must log in again.
    leeway: clock-skew tolerance on the expiry check.
    """

    secret_key: str
    issuer: str
    token_lifetime: timedelta = timedelta(hours=1)
    leeway: timedelta = timedelta(0)

    @classmethod
    def from_settings(cls, settings: Settings) -> AuthConfig:
        return cls(
            secret_key=settings.secret_key,
            issuer=settings.token_issuer,
            token_lifetime=timedelta(seconds=settings.token_expire_seconds),
            leeway=timedelta(seconds=settings.token_leeway_seconds),
        )


class Auth:
    """Registration, login and bearer authentication over a UserDatabase.

    Usage:
        auth = Auth(AuthConfig(secret_key=key, issuer="my-app"), database=UserStore(url))
        user_id = auth.register("sam", "secret")
        minted = auth.login("sam", "secret")
        identity = auth.authenticate_header(f"Bearer {minted.token}")
    """

    def __init__(self, config: AuthConfig, database: UserDatabase, clock: Clock = time.time) -> None:
        self.config = config
        self.database = database
        self.issuer = TokenIssuer(
            secret_key=config.secret_key,
            issuer=config.issuer,
            default_ttl=config.token_lifetime,
            clock=clock,
        )
        self.authenticator = TokenAuthenticator(
            secret_key=config.secret_key,
            issuer=config.issuer,
            leeway=config.leeway,
            clock=clock,
        )

    def register(self, username: str, password: str) -> str:
        """Create a user and return the newly allocated id.

        Raises UsernameTaken if the database already holds that username --
        detected by the database handing back an id other than the new one.
        """
        new_user_id = str(uuid.uuid4())
        user_id = self.database.create_user_if_not_exists(new_user_id, username, hash_password(password))
        if user_id != new_user_id:
            logger.info("Registration rejected: username already taken")
            raise UsernameTaken()
        logger.info("Registered user %s", user_id)
        return user_id

    def login(self, username: str, password: str) -> IssuedToken:
        """Check credentials with timing equalization and mint a token [C1].

        Always runs bcrypt whether or not the user exists:
        - Unknown username: bcrypt runs against DUMMY_HASH (same cost as a real check)
        - Wrong password: bcrypt runs against the real hash

        Raises CredentialMismatch for both, with the same message.
        """
        user = self.database.get_by_username(username)
        if user is None:
            verify_password(password, DUMMY_HASH)
            logger.info("Login failed: unknown username")
            raise CredentialMismatch()
        if not verify_password(password, user.hashed_password):
            logger.info("Login failed for user %s: bad password", user.id)
            raise CredentialMismatch()

        minted = self.issuer.issue(user.id)
        logger.info("Login succeeded for user %s (expires_at=%d)", user.id, minted.expires_at)
        return minted

    def authenticate(self, raw_token: str) -> AuthenticatedIdentity:
        return self.authenticator.authenticate(raw_token)

    def authenticate_header(self, header_value: str | None) -> AuthenticatedIdentity:
        """Validate a raw Authorization header value ("Bearer <jwt>")."""
        return self.authenticator.authenticate(bearer_token(header_value))
