"""Session model - one authenticated browser or device.

Rows whose expires_at has passed never authenticate, even before they are
reaped.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notekeep.models.base import DEFAULT_UUID, Base, TimestampMixin

if TYPE_CHECKING:
    from notekeep.models.user import User


class Session(Base, TimestampMixin):
    """Server-side session record referenced by the signed session cookie.

    Attributes:
        id: UUID primary key, carried in the session cookie.
        user_id: FK to users table.
        expires_at: Moment after which the session is inert.
    """

    __tablename__ = "sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=DEFAULT_UUID,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    user: Mapped["User"] = relationship("User", back_populates="sessions")
