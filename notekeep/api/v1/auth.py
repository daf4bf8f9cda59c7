"""Password authentication endpoints.

Login, two-step signup (email code, then profile + password), logout, the
current-user lookup, and password reset. Responses that should move the
browser along carry a ``redirect_to`` path for the frontend.

Security considerations:
- login: constant-time comparison via DUMMY_HASH prevents user enumeration
- signup: the account is only created after the email code is verified
- reset request: identical response whether or not the account exists
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Response
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from notekeep.api.deps import CurrentAuth, CurrentUser, DbSession
from notekeep.core.cookies import (
    clear_redirect_cookie,
    clear_session_cookie,
    clear_verification_cookie,
    set_session_cookie,
)
from notekeep.core.email import send_verification_code_email
from notekeep.core.errors import ConflictError, ValidationError
from notekeep.core.passwords import validate_password_strength
from notekeep.core.redirects import safe_redirect
from notekeep.core.responses import DataResponse
from notekeep.core.sessions import (
    destroy_session,
    login,
    require_anonymous,
    reset_user_password,
    signup,
)
from notekeep.core.verification import (
    VerificationType,
    issue_code,
    verify_path,
    verify_url,
)
from notekeep.repositories.role_repository import RoleRepository
from notekeep.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

router = APIRouter()

USERNAME_PATTERN = r"^[a-zA-Z0-9_]+$"

# Verification cookie keys
ONBOARDING_EMAIL_KEY = "onboarding_email"
RESET_PASSWORD_USERNAME_KEY = "reset_password_username"


# ===================================================================
# Request models
# ===================================================================


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(extra="forbid")

    username: str = Field(min_length=3, max_length=20, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=1, max_length=100)
    redirect_to: str | None = None


class SignupRequest(BaseModel):
    """Request body for POST /auth/signup."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    redirect_to: str | None = None


class OnboardingRequest(BaseModel):
    """Request body for POST /auth/onboarding."""

    model_config = ConfigDict(extra="forbid")

    username: str = Field(min_length=3, max_length=20, pattern=USERNAME_PATTERN)
    name: str = Field(min_length=1, max_length=40)
    password: str = Field(min_length=1, max_length=100)
    confirm_password: str = Field(min_length=1, max_length=100)
    agree_to_terms: bool
    redirect_to: str | None = None


class ResetPasswordRequestRequest(BaseModel):
    """Request body for POST /auth/reset-password/request."""

    model_config = ConfigDict(extra="forbid")

    username_or_email: str = Field(min_length=3, max_length=255)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/reset-password."""

    model_config = ConfigDict(extra="forbid")

    password: str = Field(min_length=1, max_length=100)
    confirm_password: str = Field(min_length=1, max_length=100)


def _check_new_password(password: str, confirm_password: str) -> None:
    if password != confirm_password:
        raise ValidationError(
            "Passwords must match",
            details=[{"field": "confirm_password", "error": "MISMATCH"}],
        )
    validate_password_strength(password)


# ===================================================================
# POST /auth/login
# ===================================================================


@router.post("/login")
async def login_with_password(
    body: LoginRequest,
    response: Response,
    context: CurrentAuth,
    db: DbSession,
) -> DataResponse[dict]:
    """Verify username + password and open a 30-day session."""
    require_anonymous(context)

    session = await login(db, username=body.username, password=body.password)
    if session is None:
        raise ValidationError("Invalid username or password")

    set_session_cookie(response, str(session.id), session.expires_at)
    clear_redirect_cookie(response)
    logger.info("Password login", extra={"user_id": str(session.user_id)})
    return DataResponse(
        data={
            "user_id": str(session.user_id),
            "redirect_to": safe_redirect(body.redirect_to or context.pending_redirect),
        }
    )


# ===================================================================
# POST /auth/signup, POST /auth/onboarding
# ===================================================================


@router.post("/signup")
async def request_signup(
    body: SignupRequest,
    background_tasks: BackgroundTasks,
    context: CurrentAuth,
    db: DbSession,
) -> DataResponse[dict]:
    """Email an onboarding code to a not-yet-registered address."""
    require_anonymous(context)

    email = body.email.strip().lower()
    if await UserRepository.get_by_email(db, email) is not None:
        raise ConflictError(
            code="EMAIL_ALREADY_EXISTS",
            message="A user already exists with this email",
        )

    issued = await issue_code(db, type=VerificationType.ONBOARDING, target=email)
    background_tasks.add_task(
        send_verification_code_email,
        to=email,
        subject="Welcome to Notekeep!",
        code=issued.code,
        verify_url=verify_url(
            type=VerificationType.ONBOARDING, target=email, code=issued.code
        ),
        expires_in=issued.period,
    )

    redirect_to = safe_redirect(body.redirect_to, default="") or None
    return DataResponse(
        data={
            "target": email,
            "redirect_to": verify_path(
                type=VerificationType.ONBOARDING,
                target=email,
                redirect_to=redirect_to,
            ),
        }
    )


@router.post("/onboarding", status_code=201)
async def complete_onboarding(
    body: OnboardingRequest,
    response: Response,
    context: CurrentAuth,
    db: DbSession,
) -> DataResponse[dict]:
    """Create the account for the verified onboarding email."""
    require_anonymous(context)

    email = context.verification.get(ONBOARDING_EMAIL_KEY)
    if not email:
        raise ValidationError("Onboarding session expired. Please sign up again.")
    if not body.agree_to_terms:
        raise ValidationError(
            "You must agree to the terms of service and privacy policy",
            details=[{"field": "agree_to_terms", "error": "REQUIRED"}],
        )
    _check_new_password(body.password, body.confirm_password)
    if await UserRepository.get_by_username(db, body.username) is not None:
        raise ConflictError(
            code="USERNAME_TAKEN",
            message="A user already exists with this username",
        )

    session = await signup(
        db,
        email=email,
        username=body.username,
        password=body.password,
        name=body.name,
    )

    set_session_cookie(response, str(session.id), session.expires_at)
    clear_verification_cookie(response)
    clear_redirect_cookie(response)
    return DataResponse(
        data={
            "user_id": str(session.user_id),
            "redirect_to": safe_redirect(body.redirect_to or context.pending_redirect),
        }
    )


# ===================================================================
# POST /auth/logout, GET /auth/me
# ===================================================================


@router.post("/logout")
async def logout(
    response: Response,
    context: CurrentAuth,
    db: DbSession,
) -> DataResponse[dict]:
    """Delete the session (if any) and clear the session cookie.

    Always succeeds, even without a session or when the delete fails.
    """
    await destroy_session(db, context.session_id)
    clear_session_cookie(response)
    return DataResponse(data={"redirect_to": "/"})


@router.get("/me")
async def get_me(user: CurrentUser, db: DbSession) -> DataResponse[dict]:
    """Current user's profile and role names."""
    roles = await RoleRepository.list_role_names(db, user.id)
    return DataResponse(
        data={
            "id": str(user.id),
            "email": user.email,
            "username": user.username,
            "name": user.name,
            "roles": roles,
        }
    )


# ===================================================================
# Password reset
# ===================================================================


@router.post("/reset-password/request")
async def request_password_reset(
    body: ResetPasswordRequestRequest,
    background_tasks: BackgroundTasks,
    db: DbSession,
) -> DataResponse[dict]:
    """Email a reset code if the username or email is registered.

    Security: the response is identical whether or not the account exists.
    """
    target = body.username_or_email.strip().lower()
    user = await UserRepository.get_by_email_or_username(db, target)
    if user is not None:
        issued = await issue_code(
            db, type=VerificationType.RESET_PASSWORD, target=target
        )
        background_tasks.add_task(
            send_verification_code_email,
            to=user.email,
            subject="Notekeep password reset",
            code=issued.code,
            verify_url=verify_url(
                type=VerificationType.RESET_PASSWORD, target=target, code=issued.code
            ),
            expires_in=issued.period,
        )
    else:
        logger.info("Password reset requested for unknown account")

    return DataResponse(
        data={
            "target": target,
            "redirect_to": verify_path(
                type=VerificationType.RESET_PASSWORD, target=target
            ),
        }
    )


@router.post("/reset-password")
async def reset_password(
    body: ResetPasswordRequest,
    response: Response,
    context: CurrentAuth,
    db: DbSession,
) -> DataResponse[dict]:
    """Set a new password for the username verified by a reset code."""
    username = context.verification.get(RESET_PASSWORD_USERNAME_KEY)
    if not username:
        raise ValidationError("Password reset session expired. Please start over.")
    _check_new_password(body.password, body.confirm_password)

    if not await reset_user_password(db, username=username, password=body.password):
        raise ValidationError("Password reset session expired. Please start over.")

    clear_verification_cookie(response)
    logger.info("Password reset completed")
    return DataResponse(data={"redirect_to": "/login"})
