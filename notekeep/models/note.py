"""Note model - the user-owned resource guarded by own/any permissions."""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notekeep.models.base import DEFAULT_UUID, Base, TimestampMixin

if TYPE_CHECKING:
    from notekeep.models.user import User


class Note(Base, TimestampMixin):
    """A note owned by a single user.

    Attributes:
        id: UUID primary key.
        title: Note title.
        content: Note body.
        owner_id: FK to users table.
    """

    __tablename__ = "notes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=DEFAULT_UUID,
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    content: Mapped[str] = mapped_column(Text(), nullable=False)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    owner: Mapped["User"] = relationship("User", back_populates="notes")
