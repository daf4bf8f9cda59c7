"""Account settings endpoints: change email and manage connections."""

import logging
import uuid

from fastapi import APIRouter, BackgroundTasks, Response
from pydantic import BaseModel, ConfigDict, EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.api.deps import CurrentUserId, DbSession
from notekeep.core.cookies import set_verification_cookie
from notekeep.core.email import send_verification_code_email
from notekeep.core.errors import ConflictError, NotFoundError, ValidationError
from notekeep.core.responses import DataResponse
from notekeep.core.verification import (
    VerificationType,
    issue_code,
    verify_path,
    verify_url,
)
from notekeep.repositories.connection_repository import ConnectionRepository
from notekeep.repositories.password_repository import PasswordRepository
from notekeep.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

router = APIRouter()

# Verification cookie key holding the requested address
NEW_EMAIL_KEY = "new_email"


class ChangeEmailRequest(BaseModel):
    """Request body for POST /settings/change-email."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr


@router.post("/change-email")
async def request_email_change(
    body: ChangeEmailRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    user_id: CurrentUserId,
    db: DbSession,
) -> DataResponse[dict]:
    """Send a code to the new address; the change applies on verification."""
    new_email = body.email.strip().lower()
    if await UserRepository.get_by_email(db, new_email) is not None:
        raise ConflictError(
            code="EMAIL_ALREADY_EXISTS",
            message="This email is already in use",
        )

    target = str(user_id)
    issued = await issue_code(db, type=VerificationType.CHANGE_EMAIL, target=target)
    set_verification_cookie(response, {NEW_EMAIL_KEY: new_email})
    background_tasks.add_task(
        send_verification_code_email,
        to=new_email,
        subject="Notekeep email change verification",
        code=issued.code,
        verify_url=verify_url(
            type=VerificationType.CHANGE_EMAIL, target=target, code=issued.code
        ),
        expires_in=issued.period,
    )
    return DataResponse(
        data={
            "target": target,
            "redirect_to": verify_path(
                type=VerificationType.CHANGE_EMAIL, target=target
            ),
        }
    )


# ===================================================================
# Connections
# ===================================================================


async def _can_remove_connection(
    db: AsyncSession, user_id: uuid.UUID, count: int
) -> bool:
    # A user must keep at least one way to sign in
    if count > 1:
        return True
    return await PasswordRepository.get_hash(db, user_id) is not None


@router.get("/connections")
async def list_connections(
    user_id: CurrentUserId,
    db: DbSession,
) -> DataResponse[list[dict]]:
    """List the current user's provider connections."""
    connections = await ConnectionRepository.list_for_user(db, user_id)
    can_delete = await _can_remove_connection(db, user_id, len(connections))
    return DataResponse(
        data=[
            {
                "id": str(c.id),
                "provider_name": c.provider_name,
                "provider_id": c.provider_id,
                "created_at": c.created_at.isoformat(),
                "can_delete": can_delete,
            }
            for c in connections
        ]
    )


@router.delete("/connections/{connection_id}")
async def delete_connection(
    connection_id: uuid.UUID,
    user_id: CurrentUserId,
    db: DbSession,
) -> DataResponse[dict]:
    """Remove one of the current user's connections.

    Refused when it is the only way left to sign in.
    """
    connections = await ConnectionRepository.list_for_user(db, user_id)
    if not any(c.id == connection_id for c in connections):
        raise NotFoundError("Connection", str(connection_id))
    if not await _can_remove_connection(db, user_id, len(connections)):
        raise ValidationError(
            "You cannot delete your last connection unless you have a password."
        )

    await ConnectionRepository.delete_for_user(
        db, connection_id=connection_id, user_id=user_id
    )
    logger.info(
        "Connection removed",
        extra={"user_id": str(user_id), "connection_id": str(connection_id)},
    )
    return DataResponse(data={"id": str(connection_id), "deleted": True})
