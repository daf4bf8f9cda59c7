"""Repository for Verification (one-time code) records.

Records are keyed by (type, target). upsert() overwrites any prior record
so there is at most one live code per key.
"""

from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.models.verification import Verification


class VerificationRepository:
    """Stateless repository for Verification table operations.

    All methods are static — no instance state.
    """

    @staticmethod
    async def upsert(
        db: AsyncSession,
        *,
        type: str,
        target: str,
        secret: str,
        algorithm: str,
        digits: int,
        period: int,
        char_set: str,
        expires_at: datetime | None,
    ) -> None:
        """Store a verification record, replacing any existing one.

        Args:
            db: Async database session.
            type: Verification flow.
            target: Email, username or user id.
            secret: Base32 secret.
            algorithm: HMAC digest name.
            digits: Code length.
            period: Time-step length in seconds.
            char_set: Code alphabet.
            expires_at: Expiry moment.
        """
        values = {
            "secret": secret,
            "algorithm": algorithm,
            "digits": digits,
            "period": period,
            "char_set": char_set,
            "expires_at": expires_at,
        }
        stmt = (
            insert(Verification)
            .values(type=type, target=target, **values)
            .on_conflict_do_update(
                constraint="uq_verifications_type_target",
                set_=values,
            )
        )
        await db.execute(stmt)

    @staticmethod
    async def get(
        db: AsyncSession,
        *,
        type: str,
        target: str,
    ) -> Verification | None:
        """Look up a record by (type, target).

        Args:
            db: Async database session.
            type: Verification flow.
            target: Email, username or user id.

        Returns:
            Verification if found, None otherwise.
        """
        stmt = select(Verification).where(
            Verification.type == type,
            Verification.target == target,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def delete(
        db: AsyncSession,
        *,
        type: str,
        target: str,
    ) -> int:
        """Delete a record (single-use consumption).

        Returns:
            Number of deleted rows.
        """
        stmt = delete(Verification).where(
            Verification.type == type,
            Verification.target == target,
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def delete_expired(db: AsyncSession) -> int:
        """Delete all expired records (periodic cleanup).

        Returns:
            Number of deleted rows.
        """
        stmt = delete(Verification).where(
            Verification.expires_at < datetime.now(UTC),
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
