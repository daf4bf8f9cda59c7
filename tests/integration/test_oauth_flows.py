"""Integration tests for identity provider sign-in and account linking.

The provider handshake itself (OAuthProvider.complete_auth) is patched to
return a fixed profile; everything after it runs against the database.
"""

from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlparse

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.core.config import settings
from notekeep.core.errors import AuthProviderError
from notekeep.core.oauth import STATE_COOKIE_NAME, OAuthProvider, ProviderProfile
from notekeep.models import User
from notekeep.repositories.connection_repository import ConnectionRepository
from notekeep.repositories.user_repository import UserRepository

_API = "/api/v1/auth"
_CALLBACK = f"{_API}/callback/github?code=test-code&state=test-state"


def _profile(email: str = "octo@example.com", provider_id: str = "gh-100"):
    return ProviderProfile(
        id=provider_id,
        email=email,
        username="Octo-Cat",
        name="Octo Cat",
        image_url="https://avatars.example/octo.png",
    )


def _complete_auth(profile: ProviderProfile):
    return patch.object(
        OAuthProvider, "complete_auth", AsyncMock(return_value=profile)
    )


def _cookie_names(response) -> set[str]:
    return {
        h.split("=", 1)[0] for h in response.headers.get_list("set-cookie")
    }


def _clears(response, name: str) -> bool:
    return any(
        h.startswith(f"{name}=") and "Max-Age=0" in h
        for h in response.headers.get_list("set-cookie")
    )


class TestBeginProviderAuth:
    """GET /auth/providers/{provider}."""

    async def test_redirects_to_provider(self, client: AsyncClient):
        response = await client.get(
            f"{_API}/providers/github", params={"redirect_to": "/notes"}
        )
        assert response.status_code == 303
        location = urlparse(response.headers["location"])
        assert location.netloc == "github.com"
        query = parse_qs(location.query)
        assert query["redirect_uri"] == [
            "https://test/api/v1/auth/callback/github"
        ]
        names = _cookie_names(response)
        assert STATE_COOKIE_NAME in names
        assert settings.redirect_cookie_name in names
        state_header = next(
            h
            for h in response.headers.get_list("set-cookie")
            if h.startswith(f"{STATE_COOKIE_NAME}=")
        )
        assert "Path=/api/v1/auth/callback" in state_header

    async def test_unsafe_redirect_not_stored(self, client: AsyncClient):
        response = await client.get(
            f"{_API}/providers/github",
            params={"redirect_to": "https://evil.example"},
        )
        assert _clears(response, settings.redirect_cookie_name)

    async def test_stale_redirect_cleared_without_new_target(
        self, client: AsyncClient
    ):
        """A target left by an abandoned sign-in does not outlive a new one."""
        first = await client.get(
            f"{_API}/providers/github", params={"redirect_to": "/notes"}
        )
        assert settings.redirect_cookie_name in _cookie_names(first)

        second = await client.get(f"{_API}/providers/github")
        assert second.status_code == 303
        assert _clears(second, settings.redirect_cookie_name)

    async def test_unknown_provider(self, client: AsyncClient):
        response = await client.get(f"{_API}/providers/gitlab")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


class TestCallbackOutcomes:
    """GET /auth/callback/{provider}."""

    async def test_provider_failure_redirects_to_login(self, client: AsyncClient):
        with patch.object(
            OAuthProvider,
            "complete_auth",
            AsyncMock(side_effect=AuthProviderError("GitHub")),
        ):
            response = await client.get(_CALLBACK)
        assert response.status_code == 303
        location = urlparse(response.headers["location"])
        assert location.path == "/login"
        assert parse_qs(location.query)["error"] == [
            "There was an error authenticating with GitHub."
        ]

    async def test_unknown_identity_begins_onboarding(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        with _complete_auth(_profile()):
            response = await client.get(_CALLBACK)
        assert response.status_code == 303
        assert response.headers["location"] == (
            f"{settings.frontend_url}/onboarding/github"
        )
        names = _cookie_names(response)
        assert settings.verification_cookie_name in names
        assert settings.session_cookie_name not in names
        assert await UserRepository.get_by_email(db_session, "octo@example.com") is None

    async def test_matched_email_links_and_signs_in(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        with _complete_auth(_profile(email="kody@example.com")):
            response = await client.get(_CALLBACK)
        assert response.status_code == 303
        assert response.headers["location"] == (
            f"{settings.frontend_url}/?notice=connected"
        )
        assert settings.session_cookie_name in _cookie_names(response)
        connection = await ConnectionRepository.get_by_provider(
            db_session, "github", "gh-100"
        )
        assert connection is not None
        assert connection.user_id == test_user.id

    async def test_existing_link_signs_in_to_pending_redirect(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        await ConnectionRepository.create(
            db_session,
            user_id=test_user.id,
            provider_name="github",
            provider_id="gh-100",
        )
        await db_session.commit()

        await client.get(f"{_API}/providers/github", params={"redirect_to": "/notes"})
        with _complete_auth(_profile()):
            response = await client.get(_CALLBACK)
        assert response.headers["location"] == f"{settings.frontend_url}/notes"
        assert (await client.get(f"{_API}/me")).json()["data"]["username"] == "kody"

    async def test_signed_in_user_links_account(
        self, user_client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        with _complete_auth(_profile()):
            response = await user_client.get(_CALLBACK)
        assert response.headers["location"] == (
            f"{settings.frontend_url}/settings/profile/connections?notice=connected"
        )
        assert settings.session_cookie_name not in _cookie_names(response)
        connections = await ConnectionRepository.list_for_user(
            db_session, test_user.id
        )
        assert [c.provider_id for c in connections] == ["gh-100"]

    async def test_signed_in_user_identity_owned_by_other(
        self,
        user_client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
    ):
        await ConnectionRepository.create(
            db_session,
            user_id=other_user.id,
            provider_name="github",
            provider_id="gh-100",
        )
        await db_session.commit()
        with _complete_auth(_profile()):
            response = await user_client.get(_CALLBACK)
        assert response.headers["location"].endswith("?notice=already-connected-other")
        assert await ConnectionRepository.list_for_user(db_session, test_user.id) == []


class TestProviderOnboarding:
    """GET/POST /auth/onboarding/{provider} after BEGIN_ONBOARDING."""

    async def test_prefill_and_complete(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        with _complete_auth(_profile()):
            await client.get(_CALLBACK)

        response = await client.get(f"{_API}/onboarding/github")
        assert response.status_code == 200
        assert response.json()["data"] == {
            "email": "octo@example.com",
            "username": "octo_cat",
            "name": "Octo Cat",
            "image_url": "https://avatars.example/octo.png",
        }

        response = await client.post(
            f"{_API}/onboarding/github",
            json={"username": "octo_cat", "name": "Octo Cat", "agree_to_terms": True},
        )
        assert response.status_code == 201

        user = await UserRepository.get_by_username(db_session, "octo_cat")
        assert user is not None
        connections = await ConnectionRepository.list_for_user(db_session, user.id)
        assert [c.provider_id for c in connections] == ["gh-100"]
        assert (await client.get(f"{_API}/me")).json()["data"]["roles"] == ["user"]

    async def test_without_pending_signup(self, client: AsyncClient):
        response = await client.get(f"{_API}/onboarding/github")
        assert response.status_code == 400

    async def test_username_taken(self, client: AsyncClient, test_user: User):
        with _complete_auth(_profile()):
            await client.get(_CALLBACK)
        response = await client.post(
            f"{_API}/onboarding/github",
            json={"username": "kody", "name": "Octo", "agree_to_terms": True},
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "USERNAME_TAKEN"

    async def test_identity_linked_meanwhile(
        self, client: AsyncClient, db_session: AsyncSession, other_user: User
    ):
        """A concurrent link of the same identity fails the signup cleanly."""
        with _complete_auth(_profile()):
            await client.get(_CALLBACK)
        await ConnectionRepository.create(
            db_session,
            user_id=other_user.id,
            provider_name="github",
            provider_id="gh-100",
        )
        await db_session.commit()

        response = await client.post(
            f"{_API}/onboarding/github",
            json={"username": "octo_cat", "name": "Octo", "agree_to_terms": True},
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ALREADY_CONNECTED"
        assert await UserRepository.get_by_username(db_session, "octo_cat") is None
