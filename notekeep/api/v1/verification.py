"""POST /auth/verify: one-time code submission.

A correct code hands off to the flow it was issued for:
- onboarding: remember the verified email, continue to /onboarding
- reset-password: remember the username, continue to /reset-password
- change-email: apply the new email, notify the old address
"""

import logging
import uuid
from typing import Literal

from fastapi import APIRouter, BackgroundTasks, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.api.deps import CurrentAuth, DbSession
from notekeep.api.v1.auth import ONBOARDING_EMAIL_KEY, RESET_PASSWORD_USERNAME_KEY
from notekeep.api.v1.settings import NEW_EMAIL_KEY
from notekeep.core.cookies import clear_verification_cookie, set_verification_cookie
from notekeep.core.email import send_email_changed_notice
from notekeep.core.errors import ConflictError, InvalidCodeError, ValidationError
from notekeep.core.redirects import safe_redirect, with_redirect_param
from notekeep.core.responses import DataResponse
from notekeep.core.sessions import AuthContext, require_user_id
from notekeep.core.verification import VerificationType, verify_code
from notekeep.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

router = APIRouter()


class VerifyRequest(BaseModel):
    """Request body for POST /auth/verify."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["onboarding", "reset-password", "change-email"]
    target: str = Field(min_length=1, max_length=255)
    code: str = Field(min_length=1, max_length=20)
    redirect_to: str | None = None


async def _handle_onboarding(body: VerifyRequest, response: Response) -> dict:
    email = body.target.strip().lower()
    set_verification_cookie(response, {ONBOARDING_EMAIL_KEY: email})
    redirect_to = safe_redirect(body.redirect_to, default="") or None
    return {"redirect_to": with_redirect_param("/onboarding", redirect_to)}


async def _handle_reset_password(
    db: AsyncSession, body: VerifyRequest, response: Response
) -> dict:
    user = await UserRepository.get_by_email_or_username(db, body.target)
    if user is None:
        # Same error as a wrong code so the endpoint cannot probe accounts
        raise InvalidCodeError()
    set_verification_cookie(response, {RESET_PASSWORD_USERNAME_KEY: user.username})
    return {"redirect_to": "/reset-password"}


async def _handle_change_email(
    db: AsyncSession,
    context: AuthContext,
    user_id: uuid.UUID,
    response: Response,
    background_tasks: BackgroundTasks,
) -> dict:
    new_email = context.verification.get(NEW_EMAIL_KEY)
    if not new_email:
        raise ValidationError(
            "You must submit the code on the same device that requested "
            "the email change."
        )

    user = await UserRepository.get_by_id(db, user_id)
    if user is None:
        msg = f"User {user_id} not found"
        raise RuntimeError(msg)
    old_email = user.email

    try:
        async with db.begin_nested():
            user = await UserRepository.update(db, user_id, email=new_email)
    except IntegrityError as exc:
        raise ConflictError(
            code="EMAIL_ALREADY_EXISTS",
            message="A user already exists with this email",
        ) from exc

    background_tasks.add_task(
        send_email_changed_notice, to=old_email, new_email=new_email
    )
    clear_verification_cookie(response)
    logger.info("Email changed", extra={"user_id": str(user_id)})
    return {
        "redirect_to": "/settings/profile",
        "email": new_email,
    }


@router.post("/verify")
async def verify(
    body: VerifyRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    context: CurrentAuth,
    db: DbSession,
) -> DataResponse[dict]:
    """Check a one-time code and continue the flow it belongs to.

    Wrong, expired, replayed and unknown codes all produce the same
    INVALID_CODE error.
    """
    verification_type = VerificationType(body.type)
    target = body.target.strip()

    if verification_type is VerificationType.CHANGE_EMAIL:
        # Change-email codes are keyed by user id and only valid for that user
        user_id = require_user_id(context)
        if target != str(user_id):
            raise InvalidCodeError()
        await verify_code(db, type=verification_type, target=target, code=body.code)
        data = await _handle_change_email(
            db, context, user_id, response, background_tasks
        )
        return DataResponse(data=data)

    target = target.lower()
    await verify_code(db, type=verification_type, target=target, code=body.code)
    if verification_type is VerificationType.ONBOARDING:
        data = await _handle_onboarding(body, response)
    else:
        data = await _handle_reset_password(db, body, response)
    return DataResponse(data=data)
