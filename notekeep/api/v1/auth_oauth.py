"""Identity provider endpoints.

GET /auth/providers/{provider} starts the authorization-code flow (PKCE),
GET /auth/callback/{provider} finishes it and runs account linking, and
/auth/onboarding/{provider} completes signup for a new provider identity.
"""

import logging
from dataclasses import asdict
from urllib.parse import urlencode

from fastapi import APIRouter, Request, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field

from notekeep.api.deps import CurrentAuth, DbSession, Providers
from notekeep.api.v1.auth import ONBOARDING_EMAIL_KEY, USERNAME_PATTERN
from notekeep.core.account_linking import LinkOutcome, LinkResult, link_provider_account
from notekeep.core.config import settings
from notekeep.core.cookies import (
    clear_redirect_cookie,
    clear_verification_cookie,
    set_redirect_cookie,
    set_session_cookie,
    set_verification_cookie,
)
from notekeep.core.errors import ConflictError, NotFoundError, ValidationError
from notekeep.core.oauth import (
    STATE_COOKIE_NAME,
    STATE_COOKIE_TTL,
    OAuthProvider,
)
from notekeep.core.redirects import (
    frontend_url,
    safe_redirect,
    with_redirect_param,
)
from notekeep.core.responses import DataResponse
from notekeep.core.sessions import (
    AuthContext,
    require_anonymous,
    signup_with_connection,
)
from notekeep.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

router = APIRouter()

_STATE_COOKIE_PATH = "/api/v1/auth/callback"
_CONNECTIONS_PAGE = "/settings/profile/connections"

# Verification cookie keys for provider onboarding
PROVIDER_ID_KEY = "provider_id"
PROVIDER_NAME_KEY = "provider_name"
PREFILLED_PROFILE_KEY = "prefilled_profile"

_NOTICES = {
    LinkOutcome.ALREADY_CONNECTED_SELF: "already-connected",
    LinkOutcome.ALREADY_CONNECTED_OTHER: "already-connected-other",
    LinkOutcome.LINK_TO_CURRENT_USER: "connected",
    LinkOutcome.LINK_AND_SESSION_FOR_MATCHED_EMAIL: "connected",
}


def _get_provider(providers: dict[str, OAuthProvider], name: str) -> OAuthProvider:
    provider = providers.get(name)
    if provider is None:
        raise NotFoundError("Provider", name)
    return provider


def _get_api_callback_url(request: Request, provider: str) -> str:
    """Build the OAuth callback URL from the request's base URL."""
    base = str(request.base_url).rstrip("/")
    return f"{base}/api/v1/auth/callback/{provider}"


def _with_notice(path: str, outcome: LinkOutcome) -> str:
    notice = _NOTICES.get(outcome)
    if notice is None:
        return path
    separator = "&" if "?" in path else "?"
    return f"{path}{separator}{urlencode({'notice': notice})}"


# ===================================================================
# GET /auth/providers/{provider}
# ===================================================================


@router.get("/providers/{provider}")
async def begin_provider_auth(
    provider: str,
    request: Request,
    providers: Providers,
    redirect_to: str | None = None,
) -> Response:
    """Redirect to the provider's authorization URL.

    Stores the state + PKCE verifier in a signed cookie scoped to the
    callback path, and the optional return destination in the
    redirect-to cookie.
    """
    oauth_provider = _get_provider(providers, provider)
    auth_request = oauth_provider.begin_auth(_get_api_callback_url(request, provider))

    redirect = RedirectResponse(url=auth_request.url, status_code=303)
    redirect.set_cookie(
        key=STATE_COOKIE_NAME,
        value=auth_request.state_cookie,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite="lax",
        max_age=STATE_COOKIE_TTL,
        path=_STATE_COOKIE_PATH,
    )
    target = safe_redirect(redirect_to, default="")
    if target:
        set_redirect_cookie(redirect, target)
    else:
        clear_redirect_cookie(redirect)
    return redirect


# ===================================================================
# GET /auth/callback/{provider}
# ===================================================================


def _linking_response(
    provider: OAuthProvider,
    result: LinkResult,
    pending_redirect: str | None,
) -> RedirectResponse:
    outcome = result.outcome
    logger.info(
        "Provider callback resolved",
        extra={"provider": provider.name, "outcome": outcome.value},
    )

    if outcome is LinkOutcome.BEGIN_ONBOARDING:
        redirect = RedirectResponse(
            url=frontend_url(
                with_redirect_param(f"/onboarding/{provider.name}", pending_redirect)
            ),
            status_code=303,
        )
        set_verification_cookie(
            redirect,
            {
                ONBOARDING_EMAIL_KEY: result.profile.email,
                PROVIDER_NAME_KEY: provider.name,
                PROVIDER_ID_KEY: result.profile.id,
                PREFILLED_PROFILE_KEY: asdict(result.profile),
            },
        )
        return redirect

    if result.session is None:
        return RedirectResponse(
            url=frontend_url(_with_notice(_CONNECTIONS_PAGE, outcome)),
            status_code=303,
        )

    redirect = RedirectResponse(
        url=frontend_url(_with_notice(safe_redirect(pending_redirect), outcome)),
        status_code=303,
    )
    set_session_cookie(redirect, str(result.session.id), result.session.expires_at)
    return redirect


@router.get("/callback/{provider}")
async def provider_callback(
    provider: str,
    request: Request,
    context: CurrentAuth,
    providers: Providers,
    db: DbSession,
    code: str | None = None,
    state: str | None = None,
) -> Response:
    """Finish the provider handshake and link, sign in, or onboard.

    Provider failures raise AuthProviderError, which the exception handler
    turns into a redirect to /login with a generic notice.
    """
    oauth_provider = _get_provider(providers, provider)
    profile = await oauth_provider.complete_auth(
        code=code,
        state=state,
        state_cookie=request.cookies.get(STATE_COOKIE_NAME),
        callback_url=_get_api_callback_url(request, provider),
    )

    result = await link_provider_account(
        db,
        provider_name=oauth_provider.name,
        profile=profile,
        current_user_id=context.user_id,
    )

    redirect = _linking_response(oauth_provider, result, context.pending_redirect)
    clear_redirect_cookie(redirect)
    redirect.delete_cookie(key=STATE_COOKIE_NAME, path=_STATE_COOKIE_PATH)
    return redirect


# ===================================================================
# /auth/onboarding/{provider}
# ===================================================================


class ProviderOnboardingRequest(BaseModel):
    """Request body for POST /auth/onboarding/{provider}."""

    model_config = ConfigDict(extra="forbid")

    username: str = Field(min_length=3, max_length=20, pattern=USERNAME_PATTERN)
    name: str = Field(min_length=1, max_length=40)
    agree_to_terms: bool
    redirect_to: str | None = None


def _pending_provider_signup(context: AuthContext, provider: str) -> dict:
    data = context.verification
    if (
        data.get(PROVIDER_NAME_KEY) != provider
        or not data.get(PROVIDER_ID_KEY)
        or not data.get(ONBOARDING_EMAIL_KEY)
    ):
        raise ValidationError("Onboarding session expired. Please sign in again.")
    return data


@router.get("/onboarding/{provider}")
async def get_provider_onboarding(
    provider: str,
    context: CurrentAuth,
) -> DataResponse[dict]:
    """Prefilled profile for the provider onboarding form."""
    require_anonymous(context)
    data = _pending_provider_signup(context, provider)
    profile = data.get(PREFILLED_PROFILE_KEY) or {}
    return DataResponse(
        data={
            "email": data[ONBOARDING_EMAIL_KEY],
            "username": profile.get("username"),
            "name": profile.get("name"),
            "image_url": profile.get("image_url"),
        }
    )


@router.post("/onboarding/{provider}", status_code=201)
async def complete_provider_onboarding(
    provider: str,
    body: ProviderOnboardingRequest,
    response: Response,
    context: CurrentAuth,
    providers: Providers,
    db: DbSession,
) -> DataResponse[dict]:
    """Create the account for a new provider identity and sign it in."""
    require_anonymous(context)
    oauth_provider = _get_provider(providers, provider)
    data = _pending_provider_signup(context, provider)
    if not body.agree_to_terms:
        raise ValidationError(
            "You must agree to the terms of service and privacy policy",
            details=[{"field": "agree_to_terms", "error": "REQUIRED"}],
        )
    if await UserRepository.get_by_username(db, body.username) is not None:
        raise ConflictError(
            code="USERNAME_TAKEN",
            message="A user already exists with this username",
        )

    session = await signup_with_connection(
        db,
        email=data[ONBOARDING_EMAIL_KEY],
        username=body.username,
        name=body.name,
        provider_name=oauth_provider.name,
        provider_id=str(data[PROVIDER_ID_KEY]),
        provider_label=oauth_provider.label,
    )

    set_session_cookie(response, str(session.id), session.expires_at)
    clear_verification_cookie(response)
    clear_redirect_cookie(response)
    return DataResponse(
        data={
            "user_id": str(session.user_id),
            "redirect_to": safe_redirect(body.redirect_to),
        }
    )
