"""Repository for Session operations.

Expiry is enforced at read time: get_active() never returns a session whose
expires_at is in the past.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.models.session import Session


class SessionRepository:
    """Stateless repository for the sessions table.

    All methods are static — no instance state.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        expires_at: datetime,
    ) -> Session:
        """Insert a new session.

        Args:
            db: Async database session.
            user_id: Owning user.
            expires_at: Expiration moment.

        Returns:
            Created Session with its generated id.
        """
        session = Session(user_id=user_id, expires_at=expires_at)
        db.add(session)
        await db.flush()
        await db.refresh(session)
        return session

    @staticmethod
    async def get_active(
        db: AsyncSession,
        session_id: uuid.UUID,
        *,
        now: datetime | None = None,
    ) -> Session | None:
        """Fetch a session that has not yet expired.

        Args:
            db: Async database session.
            session_id: Session primary key.
            now: Reference time. Defaults to the current UTC time.

        Returns:
            Session if found and still valid, None otherwise.
        """
        stmt = select(Session).where(
            Session.id == session_id,
            Session.expires_at > (now or datetime.now(UTC)),
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_user(db: AsyncSession, user_id: uuid.UUID) -> list[Session]:
        """List every session row (expired included) owned by a user."""
        stmt = select(Session).where(Session.user_id == user_id)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def delete(db: AsyncSession, session_id: uuid.UUID) -> int:
        """Delete a session by id.

        Returns:
            Number of deleted rows (0 when already gone).
        """
        result = await db.execute(delete(Session).where(Session.id == session_id))
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def delete_other_sessions(
        db: AsyncSession,
        user_id: uuid.UUID,
        *,
        keep_session_id: uuid.UUID | None = None,
    ) -> int:
        """Delete all of a user's sessions except ``keep_session_id``."""
        stmt = delete(Session).where(Session.user_id == user_id)
        if keep_session_id is not None:
            stmt = stmt.where(Session.id != keep_session_id)
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def delete_expired(db: AsyncSession) -> int:
        """Delete all expired sessions (explicit maintenance call).

        Returns:
            Number of deleted rows.
        """
        stmt = delete(Session).where(Session.expires_at <= datetime.now(UTC))
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
