"""
auth/tokens.py -- JWT issuance and bearer-token authentication.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub, iss, iat and exp. The signing
       key is an explicit constructor argument on TokenIssuer and
       TokenAuthenticator -- nothing here reads module-level settings, so tests
       can run issuers with distinct keys side by side.

  Validity window: [iat, iat + ttl) in whole seconds. Expiry is checked
       against the injected clock rather than python-jose's wall clock
       (verify_exp/verify_iat are off and neither claim is passed as
       require_*, which would switch verification back on), so "valid at
       1800s, expired at 3601s" is testable without sleeping and the
       configured leeway is the only tolerance applied.

  Canonical encoding: each compact segment must be canonical base64url.
       base64 decoders ignore the spare low bits of the final character, so
       without this check two different strings would carry the same
       signature and a one-character edit could go unnoticed.

  Rejections raise TokenInvalid or TokenExpired (auth/errors.py). Signing
       problems raise SigningFailure with the library error chained.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import time
from collections.abc import Callable
from datetime import timedelta

from jose import jwt
from jose.exceptions import JOSEError

from auth.errors import SigningFailure, TokenExpired, TokenInvalid
from auth.models import AuthenticatedIdentity, IssuedToken

logger = logging.getLogger("gatekey.auth.tokens")

ALGORITHM = "HS256"

_BEARER_PREFIX = "bearer "
_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_-]+$")

Clock = Callable[[], float]


def _to_seconds(value: timedelta | int | float) -> int:
    if isinstance(value, timedelta):
        return int(value.total_seconds())
    return int(value)


# ---------------------------------------------------------------------------
# Issuer
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Mints signed, time-bounded tokens for verified identities.

    Usage:
        issuer = TokenIssuer(secret_key=key, issuer="gatekey", default_ttl=timedelta(hours=1))
        minted = issuer.issue("user-42")
        minted.token  # compact JWS string for the Authorization header
    """

    def __init__(
        self,
        secret_key: str,
        issuer: str,
        default_ttl: timedelta | int = 3600,
        clock: Clock = time.time,
    ) -> None:
        self._secret_key = secret_key
        self._issuer = issuer
        self._default_ttl = _to_seconds(default_ttl)
        self._clock = clock

    def issue(self, subject: str, ttl: timedelta | int | None = None) -> IssuedToken:
        """Sign a token for subject, valid on [now, now + ttl).

        iat and exp are whole UNIX seconds and now is truncated, so the
        window actually starts at floor(now): a token issued at t=0.9 with
        ttl=100 expires at t=100, not t=100.9.

        Raises:
            ValueError: subject is empty or ttl is not positive.
            SigningFailure: no key is configured or python-jose failed to sign.
        """
        if not subject:
            raise ValueError("subject must be a non-empty string")
        lifetime = self._default_ttl if ttl is None else _to_seconds(ttl)
        if lifetime <= 0:
            raise ValueError(f"ttl must be positive, got {lifetime}s")
        if not self._secret_key:
            raise SigningFailure("No signing key configured.")

        issued_at = int(self._clock())
        expires_at = issued_at + lifetime
        claims = {
            "sub": subject,
            "iss": self._issuer,
            "iat": issued_at,
            "exp": expires_at,
        }
        try:
            token = jwt.encode(claims, self._secret_key, algorithm=ALGORITHM)
        except JOSEError as exc:
            logger.error("Token signing failed for subject %s: %s", subject, exc)
            raise SigningFailure() from exc
        return IssuedToken(token=token, subject=subject, issued_at=issued_at, expires_at=expires_at)


# ---------------------------------------------------------------------------
# Authenticator
# ---------------------------------------------------------------------------


class TokenAuthenticator:
    """Validates inbound bearer tokens and yields the embedded identity.

    Per-request flow: Received -> Parsed -> SignatureChecked -> ExpiryChecked
    -> Authenticated | Rejected. Every rejection is terminal; the caller has
    to come back with a fresh token.

    Holds no mutable state after construction, so one instance is shared by
    every request-handling thread.
    """

    def __init__(
        self,
        secret_key: str,
        issuer: str,
        leeway: timedelta | int = 0,
        clock: Clock = time.time,
    ) -> None:
        self._secret_key = secret_key
        self._issuer = issuer
        self._leeway = _to_seconds(leeway)
        self._clock = clock

    def authenticate(self, raw_token: str) -> AuthenticatedIdentity:
        """Return the identity in raw_token, or raise TokenInvalid / TokenExpired."""
        _check_compact_form(raw_token)
        if not self._secret_key:
            # An empty HMAC key would verify tokens anyone can forge.
            raise TokenInvalid()

        # python-jose re-enables verify_<claim> for every require_<claim>, so
        # iat/exp are not "required" here; their presence and type are checked
        # below and expiry is judged against self._clock only.
        try:
            claims = jwt.decode(
                raw_token,
                self._secret_key,
                algorithms=[ALGORITHM],
                issuer=self._issuer,
                options={
                    "verify_iat": False,
                    "verify_nbf": False,
                    "verify_exp": False,
                    "require_sub": True,
                    "require_iss": True,
                },
            )
        except JOSEError as exc:
            logger.debug("Token rejected at signature check: %s", exc)
            raise TokenInvalid() from exc
        except (TypeError, ValueError) as exc:
            # Signed but with claim values python-jose cannot coerce.
            logger.debug("Token rejected at claim check: %s", exc)
            raise TokenInvalid() from exc

        subject = claims.get("sub")
        issued_at = claims.get("iat")
        expires_at = claims.get("exp")
        if not isinstance(subject, str) or not subject:
            raise TokenInvalid()
        if not _is_int(issued_at) or not _is_int(expires_at):
            raise TokenInvalid()

        if self._clock() >= expires_at + self._leeway:
            logger.debug("Token for subject %s expired at %d", subject, expires_at)
            raise TokenExpired()

        return AuthenticatedIdentity(subject=subject, issued_at=issued_at, expires_at=expires_at)


def bearer_token(header_value: str | None) -> str:
    """Strip a case-insensitive "Bearer " prefix from an Authorization header value.

    Raises TokenInvalid when the header is absent or uses another scheme.
    """
    if not header_value or len(header_value) < len(_BEARER_PREFIX):
        raise TokenInvalid()
    if header_value[: len(_BEARER_PREFIX)].lower() != _BEARER_PREFIX:
        raise TokenInvalid()
    token = header_value[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise TokenInvalid()
    return token


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _is_int(value) -> bool:
    # bool is an int subclass; a claim of `true` is not a timestamp.
    return isinstance(value, int) and not isinstance(value, bool)


def _check_compact_form(raw_token: str) -> None:
    """Reject anything that is not three canonical base64url segments."""
    if not isinstance(raw_token, str) or not raw_token:
        raise TokenInvalid()
    segments = raw_token.split(".")
    if len(segments) != 3:
        raise TokenInvalid()
    for segment in segments:
        if not _SEGMENT_RE.match(segment):
            raise TokenInvalid()
        padded = segment + "=" * (-len(segment) % 4)
        try:
            decoded = base64.urlsafe_b64decode(padded)
        except (binascii.Error, ValueError) as exc:
            raise TokenInvalid() from exc
        if base64.urlsafe_b64encode(decoded).rstrip(b"=").decode("ascii") != segment:
            raise TokenInvalid()
