"""Notes owned by a user, addressed as /users/{username}/notes.

Reading is public. Writing requires the ``own`` scope for one's own notes
and the ``any`` scope for anyone else's.
"""

import logging
import uuid

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.api.deps import CurrentAuth, DbSession
from notekeep.core.errors import NotFoundError
from notekeep.core.permissions import require_user_with_permission
from notekeep.core.responses import DataResponse
from notekeep.core.sessions import AuthContext, require_user_id
from notekeep.models import Note, User
from notekeep.models.role import ACCESS_ANY, ACCESS_OWN
from notekeep.repositories.note_repository import NoteRepository
from notekeep.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

router = APIRouter()


class NoteRequest(BaseModel):
    """Request body for creating or updating a note."""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1, max_length=100)
    content: str = Field(min_length=1, max_length=10000)


def _serialize(note: Note) -> dict:
    return {
        "id": str(note.id),
        "title": note.title,
        "content": note.content,
        "owner_id": str(note.owner_id),
        "created_at": note.created_at.isoformat(),
        "updated_at": note.updated_at.isoformat(),
    }


async def _get_owner(db: AsyncSession, username: str) -> User:
    owner = await UserRepository.get_by_username(db, username)
    if owner is None:
        raise NotFoundError("User", username)
    return owner


async def _get_note(db: AsyncSession, owner: User, note_id: uuid.UUID) -> Note:
    note = await NoteRepository.get_for_owner(db, note_id, owner.id)
    if note is None:
        raise NotFoundError("Note", str(note_id))
    return note


async def _require_note_permission(
    db: AsyncSession, context: AuthContext, action: str, owner: User
) -> uuid.UUID:
    user_id = require_user_id(context)
    # The any scope also covers one's own notes
    access = f"{ACCESS_OWN},{ACCESS_ANY}" if owner.id == user_id else ACCESS_ANY
    return await require_user_with_permission(db, context, f"{action}:note:{access}")


@router.get("")
async def list_notes(username: str, db: DbSession) -> DataResponse[list[dict]]:
    """List a user's notes."""
    owner = await _get_owner(db, username)
    notes = await NoteRepository.list_for_owner(db, owner.id)
    return DataResponse(data=[_serialize(n) for n in notes])


@router.post("", status_code=201)
async def create_note(
    username: str,
    body: NoteRequest,
    context: CurrentAuth,
    db: DbSession,
) -> DataResponse[dict]:
    """Create a note for ``username``."""
    owner = await _get_owner(db, username)
    await _require_note_permission(db, context, "create", owner)
    note = await NoteRepository.create(
        db, owner_id=owner.id, title=body.title, content=body.content
    )
    return DataResponse(data=_serialize(note))


@router.get("/{note_id}")
async def get_note(
    username: str, note_id: uuid.UUID, db: DbSession
) -> DataResponse[dict]:
    """Fetch one note."""
    owner = await _get_owner(db, username)
    note = await _get_note(db, owner, note_id)
    return DataResponse(data=_serialize(note))


@router.put("/{note_id}")
async def update_note(
    username: str,
    note_id: uuid.UUID,
    body: NoteRequest,
    context: CurrentAuth,
    db: DbSession,
) -> DataResponse[dict]:
    """Replace a note's title and content."""
    owner = await _get_owner(db, username)
    note = await _get_note(db, owner, note_id)
    await _require_note_permission(db, context, "update", owner)
    note = await NoteRepository.update(db, note, title=body.title, content=body.content)
    return DataResponse(data=_serialize(note))


@router.delete("/{note_id}")
async def delete_note(
    username: str,
    note_id: uuid.UUID,
    context: CurrentAuth,
    db: DbSession,
) -> DataResponse[dict]:
    """Delete a note."""
    owner = await _get_owner(db, username)
    note = await _get_note(db, owner, note_id)
    user_id = await _require_note_permission(db, context, "delete", owner)
    await NoteRepository.delete(db, note.id)
    logger.info(
        "Note deleted",
        extra={"note_id": str(note.id), "user_id": str(user_id)},
    )
    return DataResponse(data={"id": str(note.id), "deleted": True})
