"""User model - identity anchor.

Email and username are globally unique and stored lower-case.
"""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notekeep.models.base import (
    CASCADE_ALL_DELETE_ORPHAN,
    DEFAULT_UUID,
    Base,
    TimestampMixin,
)

if TYPE_CHECKING:
    from notekeep.models.connection import Connection
    from notekeep.models.note import Note
    from notekeep.models.password import Password
    from notekeep.models.role import Role
    from notekeep.models.session import Session


class User(Base, TimestampMixin):
    """Local user account.

    Attributes:
        id: UUID primary key.
        email: Unique email address (lower-case).
        username: Unique handle, ``[a-z0-9_]`` only.
        name: Optional display name.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=DEFAULT_UUID,
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    username: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Relationships
    password: Mapped["Password | None"] = relationship(
        "Password",
        back_populates="user",
        cascade=CASCADE_ALL_DELETE_ORPHAN,
        uselist=False,
    )
    sessions: Mapped[list["Session"]] = relationship(
        "Session",
        back_populates="user",
        cascade=CASCADE_ALL_DELETE_ORPHAN,
    )
    connections: Mapped[list["Connection"]] = relationship(
        "Connection",
        back_populates="user",
        cascade=CASCADE_ALL_DELETE_ORPHAN,
    )
    notes: Mapped[list["Note"]] = relationship(
        "Note",
        back_populates="owner",
        cascade=CASCADE_ALL_DELETE_ORPHAN,
    )
    roles: Mapped[list["Role"]] = relationship(
        "Role",
        secondary="user_roles",
        viewonly=True,
    )
