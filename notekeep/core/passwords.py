"""Password hashing and validation helpers.

Pipeline:
- hash_password / verify_password: bcrypt, run in a worker thread
- validate_password_strength: Format rules (sync, no network)
- DUMMY_HASH: Timing-safe constant for user enumeration defense
"""

import asyncio
import re

import bcrypt

from notekeep.core.errors import ValidationError

# bcrypt cost factor for password hashing
BCRYPT_ROUNDS = 10

# bcrypt hash for timing-safe comparison on user-not-found.
# Must use the same cost factor as stored hashes.
# Security: prevents user enumeration via response time differences.
DUMMY_HASH = bcrypt.hashpw(
    b"notekeep-dummy-password", bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
)

_MIN_LENGTH = 6
# bcrypt only accepts the first 72 bytes
_MAX_BYTES = 72


def _hash(password: str, rounds: int) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def _check(password: str, password_hash: bytes) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash)
    except ValueError:
        # Malformed stored hash
        return False


async def hash_password(password: str, *, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash a password with a fresh salt.

    Args:
        password: Plain-text password.
        rounds: bcrypt cost factor.

    Returns:
        bcrypt hash string.
    """
    return await asyncio.to_thread(_hash, password, rounds)


async def verify_password(password: str, password_hash: str | None) -> bool:
    """Compare a password against a stored hash.

    When no hash is stored the comparison still runs against DUMMY_HASH so
    the response time does not reveal whether the account exists.

    Args:
        password: Plain-text password.
        password_hash: Stored bcrypt hash, or None.

    Returns:
        True if the password matches the stored hash.
    """
    if password_hash is None:
        await asyncio.to_thread(_check, password, DUMMY_HASH)
        return False
    return await asyncio.to_thread(_check, password, password_hash.encode())


def validate_password_strength(password: str) -> None:
    """Validate password meets length requirements.

    Args:
        password: Plain-text password to validate.

    Raises:
        ValidationError: If password doesn't meet requirements.
    """
    if len(password) < _MIN_LENGTH:
        raise ValidationError(f"Password must be at least {_MIN_LENGTH} characters")
    if len(password.encode()) > _MAX_BYTES:
        raise ValidationError(f"Password must be at most {_MAX_BYTES} bytes")
    if not re.search(r"\S", password):
        raise ValidationError("Password must not be blank")
