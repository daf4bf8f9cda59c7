"""Repository for Note CRUD operations."""

import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.models.note import Note

_UPDATABLE_FIELDS: frozenset[str] = frozenset({"title", "content"})


class NoteRepository:
    """Stateless repository for the notes table."""

    @staticmethod
    async def get_for_owner(
        db: AsyncSession, note_id: uuid.UUID, owner_id: uuid.UUID
    ) -> Note | None:
        """Fetch a note only if ``owner_id`` owns it."""
        stmt = select(Note).where(Note.id == note_id, Note.owner_id == owner_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_owner(db: AsyncSession, owner_id: uuid.UUID) -> list[Note]:
        """List notes owned by a user, newest first."""
        stmt = (
            select(Note)
            .where(Note.owner_id == owner_id)
            .order_by(Note.updated_at.desc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def create(
        db: AsyncSession, *, owner_id: uuid.UUID, title: str, content: str
    ) -> Note:
        """Create a note."""
        note = Note(owner_id=owner_id, title=title, content=content)
        db.add(note)
        await db.flush()
        await db.refresh(note)
        return note

    @staticmethod
    async def update(db: AsyncSession, note: Note, **kwargs: str) -> Note:
        """Update note fields.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        for field, value in kwargs.items():
            setattr(note, field, value)
        await db.flush()
        await db.refresh(note)
        return note

    @staticmethod
    async def delete(db: AsyncSession, note_id: uuid.UUID) -> bool:
        """Delete a note by id.

        Returns:
            True if a row was deleted.
        """
        result = await db.execute(delete(Note).where(Note.id == note_id))
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count > 0
