"""Account linking for provider callbacks.

Decides, from the provider profile and the current session, whether a
callback links a connection, opens a session, both, or starts onboarding.

Decision order (first match wins):
1. Connection exists, user signed in, same owner  -> ALREADY_CONNECTED_SELF
2. Connection exists, user signed in, other owner -> ALREADY_CONNECTED_OTHER
3. User signed in, no connection                  -> LINK_TO_CURRENT_USER
4. Not signed in, connection exists               -> SESSION_FROM_EXISTING_LINK
5. Not signed in, a user has the profile's email  -> LINK_AND_SESSION_FOR_MATCHED_EMAIL
6. Otherwise                                      -> BEGIN_ONBOARDING

The unique constraint on (provider_name, provider_id) settles concurrent
callbacks. A losing insert is rolled back to its savepoint and the outcome
is recomputed against the winning row, so a provider identity never ends up
attached to two users.
"""

import logging
import re
import uuid
from dataclasses import dataclass, replace
from enum import Enum

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.core.oauth import ProviderProfile
from notekeep.core.sessions import create_session
from notekeep.models.connection import Connection
from notekeep.models.session import Session
from notekeep.repositories.connection_repository import ConnectionRepository
from notekeep.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

_USERNAME_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9_]")


class LinkOutcome(str, Enum):
    """What a provider callback did."""

    ALREADY_CONNECTED_SELF = "already_connected_self"
    ALREADY_CONNECTED_OTHER = "already_connected_other"
    LINK_TO_CURRENT_USER = "link_to_current_user"
    SESSION_FROM_EXISTING_LINK = "session_from_existing_link"
    LINK_AND_SESSION_FOR_MATCHED_EMAIL = "link_and_session_for_matched_email"
    BEGIN_ONBOARDING = "begin_onboarding"


@dataclass(frozen=True)
class LinkResult:
    """Result of link_provider_account().

    Attributes:
        outcome: Which branch was taken.
        user_id: User the connection belongs to (None for onboarding).
        session: Newly created session, for the two sign-in outcomes.
        profile: Normalized provider profile.
    """

    outcome: LinkOutcome
    profile: ProviderProfile
    user_id: uuid.UUID | None = None
    session: Session | None = None

    @property
    def signed_in(self) -> bool:
        return self.session is not None


def normalize_username(username: str | None) -> str | None:
    """Map a provider username onto the local ``[a-z0-9_]`` alphabet."""
    if username is None:
        return None
    return _USERNAME_INVALID_CHARS.sub("_", username).lower()


def normalize_profile(profile: ProviderProfile) -> ProviderProfile:
    """Lower-case the email and sanitize the username of a profile."""
    return replace(
        profile,
        email=profile.email.strip().lower(),
        username=normalize_username(profile.username),
    )


async def _insert_connection(
    db: AsyncSession,
    *,
    provider_name: str,
    provider_id: str,
    user_id: uuid.UUID,
) -> Connection | None:
    """Insert a connection, or return None if another request won the race."""
    try:
        async with db.begin_nested():
            return await ConnectionRepository.create(
                db,
                user_id=user_id,
                provider_name=provider_name,
                provider_id=provider_id,
            )
    except IntegrityError:
        logger.info(
            "Concurrent connection insert lost the race",
            extra={"provider": provider_name, "user_id": str(user_id)},
        )
        return None


async def _resolve_existing(
    db: AsyncSession,
    *,
    existing: Connection,
    profile: ProviderProfile,
    current_user_id: uuid.UUID | None,
) -> LinkResult:
    if current_user_id is not None:
        if existing.user_id == current_user_id:
            outcome = LinkOutcome.ALREADY_CONNECTED_SELF
        else:
            logger.warning(
                "Provider account already connected to another user",
                extra={
                    "provider": existing.provider_name,
                    "user_id": str(current_user_id),
                },
            )
            outcome = LinkOutcome.ALREADY_CONNECTED_OTHER
        return LinkResult(outcome=outcome, profile=profile, user_id=existing.user_id)

    session = await create_session(db, existing.user_id)
    return LinkResult(
        outcome=LinkOutcome.SESSION_FROM_EXISTING_LINK,
        profile=profile,
        user_id=existing.user_id,
        session=session,
    )


async def _reread_winner(
    db: AsyncSession, provider_name: str, provider_id: str
) -> Connection:
    winner = await ConnectionRepository.get_by_provider(db, provider_name, provider_id)
    if winner is None:
        # IntegrityError came from something other than the provider constraint
        msg = f"Connection insert for {provider_name} failed without a conflicting row"
        raise RuntimeError(msg)
    return winner


async def link_provider_account(
    db: AsyncSession,
    *,
    provider_name: str,
    profile: ProviderProfile,
    current_user_id: uuid.UUID | None,
) -> LinkResult:
    """Run the account-linking decision for a successful provider callback.

    Args:
        db: Async database session. The caller commits.
        provider_name: Registry key of the provider ("github", "google").
        profile: Profile returned by the provider.
        current_user_id: User of the request's valid session, if any.

    Returns:
        LinkResult describing the outcome. Only LINK_TO_CURRENT_USER and
        the two sign-in outcomes write to the database.
    """
    profile = normalize_profile(profile)
    existing = await ConnectionRepository.get_by_provider(
        db, provider_name, profile.id
    )
    if existing is not None:
        return await _resolve_existing(
            db, existing=existing, profile=profile, current_user_id=current_user_id
        )

    if current_user_id is not None:
        connection = await _insert_connection(
            db,
            provider_name=provider_name,
            provider_id=profile.id,
            user_id=current_user_id,
        )
        if connection is None:
            winner = await _reread_winner(db, provider_name, profile.id)
            return await _resolve_existing(
                db, existing=winner, profile=profile, current_user_id=current_user_id
            )
        logger.info(
            "Connected provider account to current user",
            extra={"provider": provider_name, "user_id": str(current_user_id)},
        )
        return LinkResult(
            outcome=LinkOutcome.LINK_TO_CURRENT_USER,
            profile=profile,
            user_id=current_user_id,
        )

    user = await UserRepository.get_by_email(db, profile.email)
    if user is not None:
        connection = await _insert_connection(
            db,
            provider_name=provider_name,
            provider_id=profile.id,
            user_id=user.id,
        )
        if connection is None:
            winner = await _reread_winner(db, provider_name, profile.id)
            return await _resolve_existing(
                db, existing=winner, profile=profile, current_user_id=None
            )
        session = await create_session(db, user.id)
        logger.info(
            "Linked provider account by matching email",
            extra={"provider": provider_name, "user_id": str(user.id)},
        )
        return LinkResult(
            outcome=LinkOutcome.LINK_AND_SESSION_FOR_MATCHED_EMAIL,
            profile=profile,
            user_id=user.id,
            session=session,
        )

    return LinkResult(outcome=LinkOutcome.BEGIN_ONBOARDING, profile=profile)
