"""Authorization graph - roles, permissions and their association tables.

A Permission is (action, entity, access). Roles aggregate permissions and
users aggregate roles; permissions are never attached to users directly.
"""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notekeep.models.base import DEFAULT_UUID, Base, TimestampMixin

if TYPE_CHECKING:
    from notekeep.models.user import User

ACCESS_OWN = "own"
ACCESS_ANY = "any"


class UserRole(Base):
    """Association row granting a role to a user."""

    __tablename__ = "user_roles"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    role_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
    )


class RolePermission(Base):
    """Association row granting a permission to a role."""

    __tablename__ = "role_permissions"

    role_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    permission_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("permissions.id", ondelete="CASCADE"),
        primary_key=True,
    )


class Role(Base, TimestampMixin):
    """Named bundle of permissions.

    Attributes:
        id: UUID primary key.
        name: Unique role name (e.g., "user", "admin").
        description: Free-form description.
    """

    __tablename__ = "roles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=DEFAULT_UUID,
    )
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(
        String(255), nullable=False, server_default="", default=""
    )

    permissions: Mapped[list["Permission"]] = relationship(
        "Permission",
        secondary="role_permissions",
        viewonly=True,
    )
    users: Mapped[list["User"]] = relationship(
        "User",
        secondary="user_roles",
        viewonly=True,
    )


class Permission(Base, TimestampMixin):
    """Single (action, entity, access) grant.

    Attributes:
        id: UUID primary key.
        action: Verb (e.g., "create", "read", "update", "delete").
        entity: Resource type (e.g., "note", "user").
        access: ``own`` or ``any``.
        description: Free-form description.
    """

    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint(
            "action", "entity", "access", name="uq_permissions_action_entity_access"
        ),
        CheckConstraint(
            f"access IN ('{ACCESS_OWN}', '{ACCESS_ANY}')",
            name="ck_permissions_access",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=DEFAULT_UUID,
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity: Mapped[str] = mapped_column(String(50), nullable=False)
    access: Mapped[str] = mapped_column(String(10), nullable=False)
    description: Mapped[str] = mapped_column(
        String(255), nullable=False, server_default="", default=""
    )

    roles: Mapped[list["Role"]] = relationship(
        "Role",
        secondary="role_permissions",
        viewonly=True,
    )
