"""Repository for Connection CRUD operations.

Provides database access for the connections table. The unique constraint on
(provider_name, provider_id) is the final arbiter for concurrent linking.
"""

import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.models.connection import Connection


class ConnectionRepository:
    """Stateless repository for Connection table operations.

    All methods are static — no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        provider_name: str,
        provider_id: str,
    ) -> Connection:
        """Create a connection linking a provider identity to a user.

        Args:
            db: Async database session.
            user_id: FK to users table.
            provider_name: Provider key ("github", "google", etc.).
            provider_id: Provider's unique user identifier.

        Returns:
            Created Connection with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If provider+provider_id already exists.
        """
        connection = Connection(
            user_id=user_id,
            provider_name=provider_name,
            provider_id=provider_id,
        )
        db.add(connection)
        await db.flush()
        await db.refresh(connection)
        return connection

    @staticmethod
    async def get_by_provider(
        db: AsyncSession,
        provider_name: str,
        provider_id: str,
    ) -> Connection | None:
        """Find a connection by provider name and the provider's user ID.

        Args:
            db: Async database session.
            provider_name: Provider key (e.g., "github").
            provider_id: Provider's unique user identifier.

        Returns:
            Connection if found, None otherwise.
        """
        stmt = select(Connection).where(
            Connection.provider_name == provider_name,
            Connection.provider_id == provider_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> list[Connection]:
        """List all connections linked to a user.

        Args:
            db: Async database session.
            user_id: UUID of the user.

        Returns:
            List of Connection records (may be empty).
        """
        stmt = (
            select(Connection)
            .where(Connection.user_id == user_id)
            .order_by(Connection.created_at)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def delete_for_user(
        db: AsyncSession,
        *,
        connection_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> bool:
        """Delete a connection only if it belongs to ``user_id``.

        Returns:
            True if a row was deleted.
        """
        stmt = delete(Connection).where(
            Connection.id == connection_id,
            Connection.user_id == user_id,
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count > 0
