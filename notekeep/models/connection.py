"""Connection model - link between a user and an external identity.

(provider_name, provider_id) is unique: one external identity can never be
attached to two local users.
"""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notekeep.models.base import DEFAULT_UUID, Base, TimestampMixin

if TYPE_CHECKING:
    from notekeep.models.user import User

CONNECTION_UNIQUE_CONSTRAINT = "uq_connections_provider"


class Connection(Base, TimestampMixin):
    """Identity provider connection for a user.

    Attributes:
        id: UUID primary key.
        provider_name: Provider key ("github", "google").
        provider_id: Provider's unique user identifier.
        user_id: FK to users table.
    """

    __tablename__ = "connections"
    __table_args__ = (
        UniqueConstraint(
            "provider_name", "provider_id", name=CONNECTION_UNIQUE_CONSTRAINT
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=DEFAULT_UUID,
    )
    provider_name: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_id: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user: Mapped["User"] = relationship("User", back_populates="connections")
