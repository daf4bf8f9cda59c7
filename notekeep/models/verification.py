"""Verification model - one-time code records.

At most one live record per (type, target): issuing a new code overwrites
the previous one. The code itself is never stored, only the secret and the
parameters needed to regenerate it.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from notekeep.models.base import DEFAULT_UUID, Base

VERIFICATION_UNIQUE_CONSTRAINT = "uq_verifications_type_target"


class Verification(Base):
    """Pending one-time code.

    Attributes:
        id: UUID primary key.
        type: Flow the code belongs to (e.g., "onboarding", "reset-password").
        target: Email address, username or user id being verified.
        secret: Base32 secret the code is derived from.
        algorithm: HMAC digest name (e.g., "SHA256").
        digits: Code length.
        period: Time-step length in seconds.
        char_set: Characters codes are drawn from.
        expires_at: Expiry moment, NULL for no expiry.
        created_at: Issue timestamp.
    """

    __tablename__ = "verifications"
    __table_args__ = (
        UniqueConstraint("type", "target", name=VERIFICATION_UNIQUE_CONSTRAINT),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=DEFAULT_UUID,
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    target: Mapped[str] = mapped_column(String(255), nullable=False)
    secret: Mapped[str] = mapped_column(String(255), nullable=False)
    algorithm: Mapped[str] = mapped_column(String(20), nullable=False)
    digits: Mapped[int] = mapped_column(Integer(), nullable=False)
    period: Mapped[int] = mapped_column(Integer(), nullable=False)
    char_set: Mapped[str] = mapped_column(String(100), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
