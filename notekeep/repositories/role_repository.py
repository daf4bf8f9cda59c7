"""Repository for the authorization graph.

Permission checks are positive EXISTS queries through
users -> user_roles -> role_permissions -> permissions. A user is authorized
only when a row matching the exact tuple is reachable.
"""

import uuid
from collections.abc import Sequence

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.models.role import Permission, Role, RolePermission, UserRole


class RoleRepository:
    """Stateless repository for roles, permissions and their associations."""

    @staticmethod
    async def get_by_name(db: AsyncSession, name: str) -> Role | None:
        """Fetch a role by its unique name."""
        stmt = select(Role).where(Role.name == name)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create_role(
        db: AsyncSession, *, name: str, description: str = ""
    ) -> Role:
        """Create a role."""
        role = Role(name=name, description=description)
        db.add(role)
        await db.flush()
        await db.refresh(role)
        return role

    @staticmethod
    async def create_permission(
        db: AsyncSession,
        *,
        action: str,
        entity: str,
        access: str,
        description: str = "",
    ) -> Permission:
        """Create a permission tuple."""
        permission = Permission(
            action=action, entity=entity, access=access, description=description
        )
        db.add(permission)
        await db.flush()
        await db.refresh(permission)
        return permission

    @staticmethod
    async def grant_permission(
        db: AsyncSession, *, role_id: uuid.UUID, permission_id: uuid.UUID
    ) -> None:
        """Attach a permission to a role."""
        db.add(RolePermission(role_id=role_id, permission_id=permission_id))
        await db.flush()

    @staticmethod
    async def assign_role(
        db: AsyncSession, *, user_id: uuid.UUID, role_id: uuid.UUID
    ) -> None:
        """Grant a role to a user."""
        db.add(UserRole(user_id=user_id, role_id=role_id))
        await db.flush()

    @staticmethod
    async def list_role_names(db: AsyncSession, user_id: uuid.UUID) -> list[str]:
        """Names of every role held by a user, sorted."""
        stmt = (
            select(Role.name)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id)
            .order_by(Role.name)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def user_has_role(db: AsyncSession, user_id: uuid.UUID, name: str) -> bool:
        """Whether a User -> Role edge exists for the named role."""
        stmt = select(
            exists()
            .where(UserRole.user_id == user_id)
            .where(UserRole.role_id == Role.id)
            .where(Role.name == name)
        )
        result = await db.execute(stmt)
        return bool(result.scalar())

    @staticmethod
    async def user_has_permission(
        db: AsyncSession,
        user_id: uuid.UUID,
        *,
        action: str,
        entity: str,
        access: Sequence[str] | None = None,
    ) -> bool:
        """Whether the user's role graph contains a matching permission.

        Args:
            db: Async database session.
            user_id: User being authorized.
            action: Required action.
            entity: Required entity.
            access: Acceptable access scopes; None accepts any scope.

        Returns:
            True only if a matching permission row is reachable.
        """
        condition = (
            exists()
            .where(UserRole.user_id == user_id)
            .where(RolePermission.role_id == UserRole.role_id)
            .where(Permission.id == RolePermission.permission_id)
            .where(Permission.action == action)
            .where(Permission.entity == entity)
        )
        if access:
            condition = condition.where(Permission.access.in_(list(access)))
        result = await db.execute(select(condition))
        return bool(result.scalar())
