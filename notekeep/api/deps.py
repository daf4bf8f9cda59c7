"""Shared dependencies for API endpoints.

The auth context is resolved once per request from the session, redirect
and verification cookies, then handed to handlers and to the component
functions they call. A request carrying an invalid session cookie is
flagged on ``request.state`` so the response deletes the cookie.
"""

import uuid
from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.core.cookies import (
    read_redirect_cookie,
    read_session_cookie,
    read_verification_cookie,
)
from notekeep.core.database import get_db
from notekeep.core.oauth import OAuthProvider
from notekeep.core.permissions import (
    parse_permission_string,
    require_user_with_permission,
    require_user_with_role,
)
from notekeep.core.sessions import (
    AuthContext,
    require_user_id,
    resolve_current_user_id,
)
from notekeep.models import User
from notekeep.repositories.user_repository import UserRepository

DbSession = Annotated[AsyncSession, Depends(get_db)]


def _request_path(request: Request) -> str:
    path = request.url.path
    if request.url.query:
        path = f"{path}?{request.url.query}"
    return path


async def get_auth_context(request: Request, db: DbSession) -> AuthContext:
    """Build the request's AuthContext.

    Args:
        request: HTTP request (injected by FastAPI).
        db: Database session (injected).

    Returns:
        AuthContext with the resolved session, current path, pending
        redirect and verification data.
    """
    resolution = await resolve_current_user_id(db, read_session_cookie(request))
    context = AuthContext(
        session=resolution,
        path=_request_path(request),
        pending_redirect=read_redirect_cookie(request),
        verification=read_verification_cookie(request),
    )
    if context.session_invalid:
        request.state.clear_session_cookie = True
    return context


CurrentAuth = Annotated[AuthContext, Depends(get_auth_context)]


def get_current_user_id(context: CurrentAuth) -> uuid.UUID:
    """Current user id, or UnauthenticatedError (redirect to login)."""
    return require_user_id(context)


CurrentUserId = Annotated[uuid.UUID, Depends(get_current_user_id)]


async def get_current_user(user_id: CurrentUserId, db: DbSession) -> User:
    """Get the full User object for the current user.

    Raises:
        HTTPException: 401 if the session outlived its user.
    """
    user = await UserRepository.get_by_id(db, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "UNAUTHENTICATED", "message": "Authentication required"},
        )
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def get_providers(request: Request) -> dict[str, OAuthProvider]:
    """Provider registry built at application startup."""
    providers: dict[str, OAuthProvider] = request.app.state.providers
    return providers


Providers = Annotated[dict[str, OAuthProvider], Depends(get_providers)]


def RequirePermission(  # noqa: N802
    permission: str,
) -> Callable[..., Awaitable[uuid.UUID]]:
    """Dependency factory gating an endpoint on a permission string.

    Usage:
        @router.delete("/{note_id}")
        async def delete_note(
            user_id: Annotated[uuid.UUID, Depends(RequirePermission("delete:note:any"))],
        ): ...
    """
    spec = parse_permission_string(permission)

    async def dependency(context: CurrentAuth, db: DbSession) -> uuid.UUID:
        return await require_user_with_permission(db, context, spec)

    return dependency


def RequireRole(name: str) -> Callable[..., Awaitable[uuid.UUID]]:  # noqa: N802
    """Dependency factory gating an endpoint on a role name."""

    async def dependency(context: CurrentAuth, db: DbSession) -> uuid.UUID:
        return await require_user_with_role(db, context, name)

    return dependency
