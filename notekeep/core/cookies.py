"""Signed cookie transport.

Three single-purpose cookies, each a HS256-signed JWT whose audience names
its purpose so one cookie can never be replayed as another:
- session: carries the server-side session id
- redirect-to: pending post-login destination (one-shot)
- verification: in-flight onboarding / reset / change-email data

Each cookie supports create (set_*), read (read_*) and destroy (clear_*).
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import jwt
from starlette.requests import Request
from starlette.responses import Response

from notekeep.core.config import settings

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"
_SESSION_AUDIENCE = "session"
_REDIRECT_AUDIENCE = "redirect-to"
_VERIFICATION_AUDIENCE = "verification"

# Pending redirect cookie TTL (seconds)
_REDIRECT_TTL = 10 * 60


def encode_signed_value(
    payload: dict[str, Any],
    *,
    audience: str,
    ttl_seconds: int,
    secret: str | None = None,
) -> str:
    """Sign a payload for storage in a cookie.

    Args:
        payload: Claims to sign.
        audience: Cookie purpose, checked on decode.
        ttl_seconds: Seconds until the signed value expires.
        secret: HMAC secret. Defaults to settings.auth_secret.

    Returns:
        Encoded JWT string.
    """
    claims = {
        **payload,
        "aud": audience,
        "iss": settings.auth_issuer,
        "exp": int(time.time()) + ttl_seconds,
    }
    return jwt.encode(
        claims,
        secret or settings.auth_secret.get_secret_value(),
        algorithm=_ALGORITHM,
    )


def decode_signed_value(
    value: str,
    *,
    audience: str,
    secret: str | None = None,
) -> dict[str, Any] | None:
    """Verify and decode a signed cookie value.

    Returns:
        Claims dict if the signature, audience, issuer and expiry are all
        valid, None otherwise.
    """
    try:
        payload: dict[str, Any] = jwt.decode(
            value,
            secret or settings.auth_secret.get_secret_value(),
            algorithms=[_ALGORITHM],
            audience=audience,
            issuer=settings.auth_issuer,
        )
    except jwt.InvalidTokenError:
        return None
    return payload


def _set_cookie(response: Response, key: str, value: str, max_age: int) -> None:
    response.set_cookie(
        key=key,
        value=value,
        max_age=max_age,
        path="/",
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        domain=settings.auth_cookie_domain or None,
    )


def _clear_cookie(response: Response, key: str) -> None:
    # Attributes must match _set_cookie() for the browser to delete it
    response.delete_cookie(
        key=key,
        path="/",
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        domain=settings.auth_cookie_domain or None,
    )


# ===================================================================
# Session cookie
# ===================================================================


@dataclass(frozen=True)
class SessionCookie:
    """Result of reading the session cookie.

    Attributes:
        present: Whether the request carried a session cookie at all.
        session_id: Session id if the cookie was present and correctly
            signed, None otherwise.
    """

    present: bool
    session_id: str | None = None


def set_session_cookie(
    response: Response, session_id: str, expires_at: datetime
) -> None:
    """Attach a signed session cookie that lives as long as the session."""
    max_age = max(int(expires_at.timestamp() - time.time()), 0)
    value = encode_signed_value(
        {"sid": session_id},
        audience=_SESSION_AUDIENCE,
        ttl_seconds=max_age,
    )
    _set_cookie(response, settings.session_cookie_name, value, max_age)


def read_session_cookie(request: Request) -> SessionCookie:
    """Read the session id from the signed session cookie."""
    raw = request.cookies.get(settings.session_cookie_name)
    if not raw:
        return SessionCookie(present=False)
    payload = decode_signed_value(raw, audience=_SESSION_AUDIENCE)
    if payload is None or not isinstance(payload.get("sid"), str):
        return SessionCookie(present=True)
    return SessionCookie(present=True, session_id=payload["sid"])


def clear_session_cookie(response: Response) -> None:
    """Destroy the session cookie."""
    _clear_cookie(response, settings.session_cookie_name)


# ===================================================================
# Pending redirect cookie
# ===================================================================


def set_redirect_cookie(response: Response, redirect_to: str) -> None:
    """Remember where to send the user once authentication completes."""
    value = encode_signed_value(
        {"to": redirect_to},
        audience=_REDIRECT_AUDIENCE,
        ttl_seconds=_REDIRECT_TTL,
    )
    _set_cookie(response, settings.redirect_cookie_name, value, _REDIRECT_TTL)


def read_redirect_cookie(request: Request) -> str | None:
    """Return the pending redirect target, if any."""
    raw = request.cookies.get(settings.redirect_cookie_name)
    if not raw:
        return None
    payload = decode_signed_value(raw, audience=_REDIRECT_AUDIENCE)
    if payload is None:
        return None
    target = payload.get("to")
    return target if isinstance(target, str) else None


def clear_redirect_cookie(response: Response) -> None:
    """Destroy the pending redirect cookie."""
    _clear_cookie(response, settings.redirect_cookie_name)


# ===================================================================
# Verification cookie
# ===================================================================


def set_verification_cookie(response: Response, data: dict[str, Any]) -> None:
    """Store in-flight verification data in a short-lived signed cookie."""
    ttl = settings.verification_cookie_ttl_seconds
    value = encode_signed_value(
        {"data": data},
        audience=_VERIFICATION_AUDIENCE,
        ttl_seconds=ttl,
    )
    _set_cookie(response, settings.verification_cookie_name, value, ttl)


def read_verification_cookie(request: Request) -> dict[str, Any]:
    """Return the verification data, or an empty dict when absent/invalid."""
    raw = request.cookies.get(settings.verification_cookie_name)
    if not raw:
        return {}
    payload = decode_signed_value(raw, audience=_VERIFICATION_AUDIENCE)
    if payload is None:
        logger.info("Discarding invalid verification cookie")
        return {}
    data = payload.get("data")
    return data if isinstance(data, dict) else {}


def clear_verification_cookie(response: Response) -> None:
    """Destroy the verification cookie."""
    _clear_cookie(response, settings.verification_cookie_name)
