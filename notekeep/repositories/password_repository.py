"""Repository for Password operations (zero or one hash per user)."""

import uuid

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.models.password import Password


class PasswordRepository:
    """Stateless repository for the passwords table."""

    @staticmethod
    async def get_hash(db: AsyncSession, user_id: uuid.UUID) -> str | None:
        """Return the stored hash for a user, or None for provider-only users."""
        stmt = select(Password.hash).where(Password.user_id == user_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def set_hash(db: AsyncSession, user_id: uuid.UUID, password_hash: str) -> None:
        """Insert or replace the user's password hash."""
        stmt = (
            insert(Password)
            .values(user_id=user_id, hash=password_hash)
            .on_conflict_do_update(
                index_elements=[Password.user_id],
                set_={"hash": password_hash},
            )
        )
        await db.execute(stmt)
