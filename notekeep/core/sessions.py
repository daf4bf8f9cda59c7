"""Session lifecycle: creation, resolution, login, signup and logout.

Sessions live in the database; the browser only holds a signed cookie with
the session id. Expiry is enforced lazily at read time. Every request builds
one AuthContext that is passed explicitly to the functions that need the
current user, the pending redirect, or in-flight verification data.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.core.config import settings
from notekeep.core.cookies import SessionCookie
from notekeep.core.errors import (
    AlreadyAuthenticatedError,
    AlreadyLinkedError,
    ConflictError,
    UnauthenticatedError,
)
from notekeep.core.passwords import hash_password, verify_password
from notekeep.core.redirects import login_url
from notekeep.models.session import Session
from notekeep.repositories.connection_repository import ConnectionRepository
from notekeep.repositories.password_repository import PasswordRepository
from notekeep.repositories.role_repository import RoleRepository
from notekeep.repositories.session_repository import SessionRepository
from notekeep.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "user"

# Sentinel: "use the current request path as the return destination"
CURRENT_PATH: Any = object()


def session_expiration() -> timedelta:
    """Lifetime of a newly created session."""
    return timedelta(days=settings.session_expiration_days)


def get_session_expiration_date(now: datetime | None = None) -> datetime:
    """Expiration moment for a session created at ``now``."""
    return (now or datetime.now(UTC)) + session_expiration()


class SessionState(str, Enum):
    """How the request's session cookie resolved."""

    ABSENT = "absent"
    VALID = "valid"
    INVALID = "invalid"


@dataclass(frozen=True)
class SessionResolution:
    """Outcome of resolving a session cookie against the database.

    Attributes:
        state: ABSENT (no cookie), VALID, or INVALID (cookie present but
            unsigned, unknown, or expired).
        user_id: Owning user when VALID.
        session_id: Session id when VALID.
    """

    state: SessionState
    user_id: uuid.UUID | None = None
    session_id: uuid.UUID | None = None


@dataclass
class AuthContext:
    """Per-request authentication state, built once and passed explicitly.

    Attributes:
        session: Result of resolving the session cookie.
        path: Path (with query string) of the current request.
        pending_redirect: Target from the redirect-to cookie, if any.
        verification: Data from the verification cookie (may be empty).
    """

    session: SessionResolution
    path: str = "/"
    pending_redirect: str | None = None
    verification: dict[str, Any] = field(default_factory=dict)

    @property
    def user_id(self) -> uuid.UUID | None:
        return self.session.user_id

    @property
    def session_id(self) -> uuid.UUID | None:
        return self.session.session_id

    @property
    def session_invalid(self) -> bool:
        return self.session.state is SessionState.INVALID


async def create_session(db: AsyncSession, user_id: uuid.UUID) -> Session:
    """Insert a session for ``user_id`` expiring after the session lifetime.

    Does not touch cookies; callers attach the cookie to their response.
    """
    return await SessionRepository.create(
        db,
        user_id=user_id,
        expires_at=get_session_expiration_date(),
    )


async def resolve_current_user_id(
    db: AsyncSession, cookie: SessionCookie
) -> SessionResolution:
    """Map a session cookie to the owning user.

    Fails closed: a cookie that is present but tampered with, refers to a
    missing session, or refers to an expired session yields INVALID with no
    user. The caller is responsible for deleting the cookie in that case.

    Args:
        db: Async database session.
        cookie: Parsed session cookie.

    Returns:
        SessionResolution describing the outcome.
    """
    if not cookie.present:
        return SessionResolution(state=SessionState.ABSENT)

    if cookie.session_id is None:
        logger.warning("Session cookie failed signature validation")
        return SessionResolution(state=SessionState.INVALID)

    try:
        session_id = uuid.UUID(cookie.session_id)
    except ValueError:
        logger.warning("Session cookie carried a malformed session id")
        return SessionResolution(state=SessionState.INVALID)

    session = await SessionRepository.get_active(db, session_id)
    if session is None:
        logger.info(
            "Session cookie refers to a missing or expired session",
            extra={"session_id": str(session_id)},
        )
        return SessionResolution(state=SessionState.INVALID)

    return SessionResolution(
        state=SessionState.VALID,
        user_id=session.user_id,
        session_id=session.id,
    )


def require_user_id(
    context: AuthContext,
    *,
    redirect_to: str | None = CURRENT_PATH,
) -> uuid.UUID:
    """Return the current user id or raise UnauthenticatedError.

    Args:
        context: Request auth context.
        redirect_to: Return destination for after login. Defaults to the
            current request path; pass None to suppress it.

    Raises:
        UnauthenticatedError: When there is no valid session. Carries the
            login URL and whether the session cookie must be cleared.
    """
    if context.user_id is not None:
        return context.user_id
    if redirect_to is CURRENT_PATH:
        redirect_to = context.path
    raise UnauthenticatedError(
        login_url(redirect_to),
        clear_session=context.session_invalid,
    )


def require_anonymous(context: AuthContext) -> None:
    """Raise AlreadyAuthenticatedError when a valid session exists."""
    if context.user_id is not None:
        raise AlreadyAuthenticatedError()


async def destroy_session(db: AsyncSession, session_id: uuid.UUID | None) -> None:
    """Delete a session row; never raises.

    Idempotent when the row is already gone. Storage errors are logged and
    swallowed so logout can always clear the client cookie.
    """
    if session_id is None:
        return
    try:
        async with db.begin_nested():
            deleted = await SessionRepository.delete(db, session_id)
    except SQLAlchemyError:
        logger.warning(
            "Failed to delete session during logout",
            extra={"session_id": str(session_id)},
            exc_info=True,
        )
        return
    if not deleted:
        logger.info(
            "Session already removed at logout",
            extra={"session_id": str(session_id)},
        )


async def login(db: AsyncSession, *, username: str, password: str) -> Session | None:
    """Verify credentials and open a session.

    Args:
        db: Async database session.
        username: Username (case-insensitive).
        password: Plain-text password.

    Returns:
        The new Session, or None when the username is unknown, the user has
        no password, or the password is wrong. Nothing is written on failure.
    """
    user = await UserRepository.get_by_username(db, username)
    password_hash = (
        await PasswordRepository.get_hash(db, user.id) if user is not None else None
    )
    if not await verify_password(password, password_hash) or user is None:
        return None
    return await create_session(db, user.id)


async def _assign_default_role(db: AsyncSession, user_id: uuid.UUID) -> None:
    role = await RoleRepository.get_by_name(db, DEFAULT_ROLE)
    if role is None:
        msg = f"Role '{DEFAULT_ROLE}' not found; run the database migrations"
        raise RuntimeError(msg)
    await RoleRepository.assign_role(db, user_id=user_id, role_id=role.id)


async def _create_user(
    db: AsyncSession, *, email: str, username: str, name: str | None
) -> uuid.UUID:
    try:
        async with db.begin_nested():
            user = await UserRepository.create(
                db, email=email, username=username, name=name
            )
    except IntegrityError as exc:
        raise ConflictError(
            code="USER_ALREADY_EXISTS",
            message="A user with this email or username already exists",
        ) from exc
    await _assign_default_role(db, user.id)
    return user.id


async def signup(
    db: AsyncSession,
    *,
    email: str,
    username: str,
    password: str,
    name: str | None = None,
) -> Session:
    """Create a password user with the default role and open a session.

    Raises:
        ConflictError: If the email or username is already registered.
    """
    user_id = await _create_user(db, email=email, username=username, name=name)
    await PasswordRepository.set_hash(db, user_id, await hash_password(password))
    logger.info("Created password user", extra={"user_id": str(user_id)})
    return await create_session(db, user_id)


async def signup_with_connection(
    db: AsyncSession,
    *,
    email: str,
    username: str,
    name: str | None,
    provider_name: str,
    provider_id: str,
    provider_label: str | None = None,
) -> Session:
    """Create a provider-only user, link the connection, open a session.

    Raises:
        ConflictError: If the email or username is taken.
        AlreadyLinkedError: If the provider identity was linked to another
            user in the meantime.
    """
    user_id = await _create_user(db, email=email, username=username, name=name)
    try:
        async with db.begin_nested():
            await ConnectionRepository.create(
                db,
                user_id=user_id,
                provider_name=provider_name,
                provider_id=provider_id,
            )
    except IntegrityError as exc:
        raise AlreadyLinkedError(
            provider_label or provider_name, other_account=True
        ) from exc
    logger.info(
        "Created user from provider connection",
        extra={"user_id": str(user_id), "provider": provider_name},
    )
    return await create_session(db, user_id)


async def reset_user_password(
    db: AsyncSession, *, username: str, password: str
) -> bool:
    """Replace a user's password and sign out all of their sessions.

    Returns:
        False if no user has that username.
    """
    user = await UserRepository.get_by_username(db, username)
    if user is None:
        return False
    await PasswordRepository.set_hash(db, user.id, await hash_password(password))
    await SessionRepository.delete_other_sessions(db, user.id)
    return True
