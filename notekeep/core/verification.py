"""One-time code issuance and verification.

Codes are time-based HOTP values (RFC 4226 dynamic truncation over the
time-step counter) rendered in an arbitrary alphabet. Only the secret and the
generation parameters are stored; the code itself never is. Every failure
mode of verify_code() raises the same InvalidCodeError.
"""

import base64
import hashlib
import hmac
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from urllib.parse import urlencode

from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.core.config import settings
from notekeep.core.errors import InvalidCodeError
from notekeep.core.redirects import frontend_url
from notekeep.repositories.verification_repository import VerificationRepository

logger = logging.getLogger(__name__)

DEFAULT_DIGITS = 6
DEFAULT_ALGORITHM = "SHA256"
# Upper-case letters and digits, minus the easily confused 0/O and 1/I
DEFAULT_CHAR_SET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

_SECRET_BYTES = 20
_ALGORITHMS = {
    "SHA1": hashlib.sha1,
    "SHA256": hashlib.sha256,
    "SHA512": hashlib.sha512,
}


class VerificationType(str, Enum):
    """Flow a one-time code belongs to."""

    ONBOARDING = "onboarding"
    RESET_PASSWORD = "reset-password"
    CHANGE_EMAIL = "change-email"
    TWO_FACTOR = "2fa"


@dataclass(frozen=True)
class IssuedCode:
    """A freshly issued code.

    Attributes:
        code: Code to deliver to the user.
        expires_at: Moment after which the code is rejected.
        period: Validity window in seconds.
    """

    code: str
    expires_at: datetime
    period: int


def generate_secret() -> str:
    """Random base32 secret without padding."""
    return base64.b32encode(secrets.token_bytes(_SECRET_BYTES)).decode("ascii").rstrip("=")


def generate_code(
    secret: str,
    *,
    period: int,
    digits: int = DEFAULT_DIGITS,
    algorithm: str = DEFAULT_ALGORITHM,
    char_set: str = DEFAULT_CHAR_SET,
    at: float | None = None,
) -> str:
    """Compute the code for the time step containing ``at``.

    With ``char_set="0123456789"`` the output matches standard numeric
    TOTP.

    Args:
        secret: Base32 secret (padding optional).
        period: Time-step length in seconds.
        digits: Code length.
        algorithm: HMAC digest name (SHA1, SHA256 or SHA512).
        char_set: Alphabet codes are drawn from.
        at: Unix timestamp. Defaults to now.

    Raises:
        ValueError: On an unknown algorithm, an undecodable secret or an
            alphabet shorter than two characters.
    """
    digest_fn = _ALGORITHMS.get(algorithm.upper())
    if digest_fn is None:
        msg = f"Unsupported verification algorithm: {algorithm}"
        raise ValueError(msg)
    if len(char_set) < 2:
        msg = "char_set must contain at least two characters"
        raise ValueError(msg)

    padded = secret + "=" * ((8 - len(secret) % 8) % 8)
    try:
        key = base64.b32decode(padded, casefold=True)
    except ValueError as exc:
        msg = "Verification secret is not valid base32"
        raise ValueError(msg) from exc

    timestamp = time.time() if at is None else at
    counter = int(timestamp // period).to_bytes(8, "big")
    digest = hmac.new(key, counter, digest_fn).digest()
    offset = digest[-1] & 0x0F
    value = int.from_bytes(digest[offset : offset + 4], "big") & 0x7FFFFFFF

    base = len(char_set)
    chars = []
    for _ in range(digits):
        value, index = divmod(value, base)
        chars.append(char_set[index])
    return "".join(reversed(chars))


def _normalize_input(code: str, char_set: str) -> str:
    code = code.strip()
    if char_set == char_set.upper():
        code = code.upper()
    return code


async def issue_code(
    db: AsyncSession,
    *,
    type: VerificationType,
    target: str,
    period: int | None = None,
    digits: int = DEFAULT_DIGITS,
    algorithm: str = DEFAULT_ALGORITHM,
    char_set: str = DEFAULT_CHAR_SET,
) -> IssuedCode:
    """Create (or replace) the code for ``(type, target)``.

    Args:
        db: Async database session.
        type: Verification flow.
        target: Email, username or user id.
        period: Validity in seconds. Defaults to settings.

    Returns:
        IssuedCode with the code to send and its expiry.
    """
    period = period or settings.verification_period_seconds
    secret = generate_secret()
    now = datetime.now(UTC)
    expires_at = now + timedelta(seconds=period)
    code = generate_code(
        secret,
        period=period,
        digits=digits,
        algorithm=algorithm,
        char_set=char_set,
        at=now.timestamp(),
    )
    await VerificationRepository.upsert(
        db,
        type=type.value,
        target=target,
        secret=secret,
        algorithm=algorithm,
        digits=digits,
        period=period,
        char_set=char_set,
        expires_at=expires_at,
    )
    logger.info("Issued verification code", extra={"verification_type": type.value})
    return IssuedCode(code=code, expires_at=expires_at, period=period)


async def verify_code(
    db: AsyncSession,
    *,
    type: VerificationType,
    target: str,
    code: str,
    consume: bool = True,
    skew_steps: int = 1,
) -> None:
    """Check a submitted code and, by default, consume it.

    Accepts the code for the current time step and up to ``skew_steps``
    steps before or after it.

    Raises:
        InvalidCodeError: No record, expired record, or mismatched code.
    """
    record = await VerificationRepository.get(db, type=type.value, target=target)
    if record is None:
        logger.info(
            "Verification failed: no pending code",
            extra={"verification_type": type.value},
        )
        raise InvalidCodeError()

    now = datetime.now(UTC)
    if record.expires_at is not None and record.expires_at <= now:
        logger.info(
            "Verification failed: code expired",
            extra={"verification_type": type.value},
        )
        raise InvalidCodeError()

    submitted = _normalize_input(code, record.char_set)
    matched = False
    for step in range(-skew_steps, skew_steps + 1):
        expected = generate_code(
            record.secret,
            period=record.period,
            digits=record.digits,
            algorithm=record.algorithm,
            char_set=record.char_set,
            at=now.timestamp() + step * record.period,
        )
        # Every candidate is compared so timing does not reveal the step
        matched |= hmac.compare_digest(expected.encode(), submitted.encode())

    if not matched:
        logger.info(
            "Verification failed: code mismatch",
            extra={"verification_type": type.value},
        )
        raise InvalidCodeError()

    if consume:
        deleted = await VerificationRepository.delete(
            db, type=type.value, target=target
        )
        if not deleted:
            # Consumed by a concurrent request
            raise InvalidCodeError()


def verify_path(
    *,
    type: VerificationType,
    target: str,
    code: str | None = None,
    redirect_to: str | None = None,
) -> str:
    """Path of the verify page for ``(type, target)``."""
    params = {"type": type.value, "target": target}
    if code is not None:
        params["code"] = code
    if redirect_to:
        params["redirectTo"] = redirect_to
    return f"/verify?{urlencode(params)}"


def verify_url(*, type: VerificationType, target: str, code: str | None = None) -> str:
    """Absolute link to the verify page, for inclusion in emails."""
    return frontend_url(verify_path(type=type, target=target, code=code))
