"""Admin endpoints, gated on the ``admin`` role."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from notekeep.api.deps import DbSession, RequireRole
from notekeep.core.responses import ListResponse, PaginationMeta
from notekeep.repositories.user_repository import UserRepository

router = APIRouter()

AdminUserId = Annotated[uuid.UUID, Depends(RequireRole("admin"))]


@router.get("/users")
async def list_users(
    _admin_id: AdminUserId,
    db: DbSession,
    page: Annotated[int, Query(ge=1)] = 1,
    per_page: Annotated[int, Query(ge=1, le=100)] = 20,
) -> ListResponse[dict]:
    """List all users, ordered by username."""
    users = await UserRepository.list_all(
        db, limit=per_page, offset=(page - 1) * per_page
    )
    total = await UserRepository.count(db)
    return ListResponse(
        data=[
            {
                "id": str(u.id),
                "email": u.email,
                "username": u.username,
                "name": u.name,
                "created_at": u.created_at.isoformat(),
            }
            for u in users
        ],
        meta=PaginationMeta(total=total, page=page, per_page=per_page),
    )
