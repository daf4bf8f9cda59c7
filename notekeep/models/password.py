"""Password model - zero or one bcrypt hash per user."""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notekeep.models.base import Base

if TYPE_CHECKING:
    from notekeep.models.user import User


class Password(Base):
    """Salted password hash owned by a user.

    Attributes:
        user_id: FK to users table, also the primary key.
        hash: bcrypt hash string.
    """

    __tablename__ = "passwords"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    hash: Mapped[str] = mapped_column(String(255), nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="password")
