"""Repository for User CRUD operations.

Provides database access for the users table. Email and username are
normalized to lowercase on every read and write.
"""

import uuid

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.models.user import User

# Fields that may be updated via UserRepository.update().
# Security: Never add 'id', 'created_at', or 'updated_at'.
# Email changes go through the verified change-email flow only.
_UPDATABLE_FIELDS: frozenset[str] = frozenset({"name", "username", "email"})


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static — no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email == email.strip().lower())
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_username(db: AsyncSession, username: str) -> User | None:
        """Fetch a user by username (case-insensitive).

        Args:
            db: Async database session.
            username: Username to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.username == username.strip().lower())
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email_or_username(db: AsyncSession, target: str) -> User | None:
        """Fetch a user whose email or username equals ``target``."""
        normalized = target.strip().lower()
        stmt = select(User).where(
            or_(User.email == normalized, User.username == normalized)
        )
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        username: str,
        name: str | None = None,
    ) -> User:
        """Create a new user.

        Args:
            db: Async database session.
            email: User email address.
            username: Unique handle.
            name: Display name.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If email or username already exists.
        """
        user = User(
            email=email.strip().lower(),
            username=username.strip().lower(),
            name=name,
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def update(
        db: AsyncSession,
        user_id: uuid.UUID,
        **kwargs: str | None,
    ) -> User | None:
        """Update user fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Args:
            db: Async database session.
            user_id: UUID of the user to update.
            **kwargs: Field names and values to update.

        Returns:
            Updated User if found, None if user does not exist.

        Raises:
            ValueError: If an unknown field name is passed.
            sqlalchemy.exc.IntegrityError: If the new email/username is taken.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        user = await db.get(User, user_id)
        if user is None:
            return None

        for field, value in kwargs.items():
            if field in ("email", "username") and value is not None:
                value = value.strip().lower()
            setattr(user, field, value)

        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def list_all(
        db: AsyncSession, *, limit: int = 100, offset: int = 0
    ) -> list[User]:
        """List users ordered by username."""
        stmt = select(User).order_by(User.username).limit(limit).offset(offset)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count(db: AsyncSession) -> int:
        """Total number of users."""
        result = await db.execute(select(func.count()).select_from(User))
        return int(result.scalar_one())
