"""
auth/passwords.py -- Salted password hashing and verification.

Passwords: bcrypt used directly (no passlib wrapper). bcrypt generates and
embeds a random salt in every hash, so the stored string is self-describing
and verify_password() needs nothing but the plaintext and that string.
bcrypt.checkpw compares digests in constant time.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import bcrypt

# bcrypt's input limit, in UTF-8 bytes (not characters).
MAX_PASSWORD_BYTES = 72


def password_too_long(plain: str) -> bool:
    return len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Raises ValueError for passwords over MAX_PASSWORD_BYTES. Older bcrypt
    releases truncate such input silently (so two passwords could share a
    hash) while newer ones raise; rejecting here behaves the same on both.
    """
    if password_too_long(plain):
        raise ValueError(f"password is longer than {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed or empty stored hash is a deterministic "no match", never an
    exception -- bcrypt raises ValueError for hashes it cannot parse, and
    TypeError/UnicodeError cover non-string garbage from a misbehaving store.
    """
    if not hashed or password_too_long(plain):
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError, UnicodeError):
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Auth.login() verifies against this when the
# username does not exist, so response time does not reveal account existence.
DUMMY_HASH: str = hash_password("gatekey_timing_dummy")
