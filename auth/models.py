"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services
do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A stored credential owned by the embedding application.

    id is an opaque string (a UUID4 when allocated by Auth.register()).
    hashed_password is a bcrypt modular-crypt string; the salt is embedded
    in it, so no separate salt column exists.
    """

    id: str
    username: str
    hashed_password: str
    created_at: str | None = None


@dataclass(frozen=True)
class IssuedToken:
    """A signed JWT plus the claims it was minted with.

    Immutable once issued. issued_at / expires_at are integer UNIX seconds and
    the token is valid on [issued_at, expires_at).
    """

    token: str
    subject: str
    issued_at: int
    expires_at: int

    @property
    def lifetime_seconds(self) -> int:
        return self.expires_at - self.issued_at


@dataclass(frozen=True)
class AuthenticatedIdentity:
    """Identity extracted from a validated token, handed to route handlers."""

    subject: str
    issued_at: int
    expires_at: int
