"""Current-user shortcuts: profile redirect and personal data export."""

from fastapi import APIRouter
from fastapi.responses import RedirectResponse

from notekeep.api.deps import CurrentUser, DbSession
from notekeep.core.redirects import frontend_url
from notekeep.repositories.connection_repository import ConnectionRepository
from notekeep.repositories.note_repository import NoteRepository
from notekeep.repositories.role_repository import RoleRepository
from notekeep.repositories.session_repository import SessionRepository

router = APIRouter()


@router.get("")
async def me(user: CurrentUser) -> RedirectResponse:
    """Redirect to the current user's profile page."""
    return RedirectResponse(url=frontend_url(f"/users/{user.username}"), status_code=303)


@router.get("/download")
async def download_user_data(user: CurrentUser, db: DbSession) -> dict:
    """Everything stored about the current user, as one JSON document."""
    notes = await NoteRepository.list_for_owner(db, user.id)
    sessions = await SessionRepository.list_for_user(db, user.id)
    connections = await ConnectionRepository.list_for_user(db, user.id)
    roles = await RoleRepository.list_role_names(db, user.id)
    return {
        "user": {
            "id": str(user.id),
            "email": user.email,
            "username": user.username,
            "name": user.name,
            "created_at": user.created_at.isoformat(),
            "updated_at": user.updated_at.isoformat(),
            "notes": [
                {
                    "id": str(n.id),
                    "title": n.title,
                    "content": n.content,
                    "created_at": n.created_at.isoformat(),
                    "updated_at": n.updated_at.isoformat(),
                }
                for n in notes
            ],
            "sessions": [
                {
                    "id": str(s.id),
                    "expires_at": s.expires_at.isoformat(),
                    "created_at": s.created_at.isoformat(),
                }
                for s in sessions
            ],
            "connections": [
                {
                    "id": str(c.id),
                    "provider_name": c.provider_name,
                    "created_at": c.created_at.isoformat(),
                }
                for c in connections
            ],
            "roles": roles,
        }
    }
