"""Integration tests for password authentication flows.

Login, two-step signup, logout, session expiry and password reset through
the HTTP API against a real PostgreSQL database. Outbound email is patched
and the emailed code is read from the mock.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.core.config import settings
from notekeep.models import User
from notekeep.repositories.session_repository import SessionRepository
from tests.conftest import TEST_PASSWORD, create_db_session, create_session_cookie

_API = "/api/v1/auth"
_SEND_CODE = "notekeep.api.v1.auth.send_verification_code_email"


def _set_cookies(response) -> list[str]:
    return response.headers.get_list("set-cookie")


def _clears(response, name: str) -> bool:
    return any(
        h.startswith(f"{name}=") and "Max-Age=0" in h for h in _set_cookies(response)
    )


class TestLogin:
    """POST /auth/login."""

    async def test_success_sets_session_cookie(
        self, client: AsyncClient, test_user: User
    ):
        response = await client.post(
            f"{_API}/login",
            json={"username": "kody", "password": TEST_PASSWORD, "redirect_to": "/notes"},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user_id"] == str(test_user.id)
        assert data["redirect_to"] == "/notes"
        assert settings.session_cookie_name in client.cookies

        me = await client.get(f"{_API}/me")
        assert me.status_code == 200
        assert me.json()["data"]["username"] == "kody"
        assert me.json()["data"]["roles"] == ["user"]

    async def test_unsafe_redirect_falls_back_to_root(
        self, client: AsyncClient, test_user: User
    ):
        response = await client.post(
            f"{_API}/login",
            json={
                "username": "kody",
                "password": TEST_PASSWORD,
                "redirect_to": "//evil.example",
            },
        )
        assert response.json()["data"]["redirect_to"] == "/"

    async def test_wrong_password(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        """Failure is generic and creates no session."""
        response = await client.post(
            f"{_API}/login", json={"username": "kody", "password": "nope-nope"}
        )
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid username or password"
        assert await SessionRepository.list_for_user(db_session, test_user.id) == []

    async def test_unknown_user_same_error(self, client: AsyncClient):
        response = await client.post(
            f"{_API}/login", json={"username": "ghost", "password": "whatever"}
        )
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid username or password"

    async def test_malformed_body(self, client: AsyncClient):
        response = await client.post(f"{_API}/login", json={"username": "x"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_signed_in_user_is_sent_home(self, user_client: AsyncClient):
        response = await user_client.post(
            f"{_API}/login", json={"username": "kody", "password": TEST_PASSWORD}
        )
        assert response.status_code == 303
        assert response.headers["location"] == f"{settings.frontend_url}/"


class TestSessionValidity:
    """Expired and tampered session cookies."""

    async def test_expired_session_redirects_and_clears_cookie(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        session_id = await create_db_session(
            db_session, test_user.id, expires_in=timedelta(seconds=-1)
        )
        client.cookies.set(
            settings.session_cookie_name, create_session_cookie(session_id)
        )
        response = await client.get(f"{_API}/me")
        assert response.status_code == 303
        assert response.headers["location"] == (
            f"{settings.frontend_url}/login?redirectTo=%2Fapi%2Fv1%2Fauth%2Fme"
        )
        assert _clears(response, settings.session_cookie_name)

    async def test_tampered_cookie_cleared_on_public_endpoint(
        self, client: AsyncClient
    ):
        """An anonymous-allowed endpoint still deletes a bad cookie."""
        client.cookies.set(
            settings.session_cookie_name,
            create_session_cookie("abc", secret="x" * 40),
        )
        with patch(_SEND_CODE, AsyncMock(return_value=True)):
            response = await client.post(
                f"{_API}/signup", json={"email": "someone@example.com"}
            )
        assert response.status_code == 200
        assert _clears(response, settings.session_cookie_name)

    async def test_anonymous_me_redirects_to_login(self, client: AsyncClient):
        response = await client.get(f"{_API}/me")
        assert response.status_code == 303
        assert not _clears(response, settings.session_cookie_name)


class TestLogout:
    """POST /auth/logout."""

    async def test_deletes_session(
        self, user_client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        response = await user_client.post(f"{_API}/logout")
        assert response.status_code == 200
        assert _clears(response, settings.session_cookie_name)
        assert await SessionRepository.list_for_user(db_session, test_user.id) == []
        assert (await user_client.get(f"{_API}/me")).status_code == 303

    async def test_without_session_succeeds(self, client: AsyncClient):
        response = await client.post(f"{_API}/logout")
        assert response.status_code == 200
        assert response.json()["data"]["redirect_to"] == "/"

    async def test_twice_is_idempotent(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        session_id = await create_db_session(db_session, test_user.id)
        cookie = create_session_cookie(session_id)
        for _ in range(2):
            client.cookies.set(settings.session_cookie_name, cookie)
            response = await client.post(f"{_API}/logout")
            assert response.status_code == 200


class TestSignupFlow:
    """POST /auth/signup -> /auth/verify -> /auth/onboarding."""

    async def test_full_flow(self, client: AsyncClient):
        with patch(_SEND_CODE, AsyncMock(return_value=True)) as mock_send:
            response = await client.post(
                f"{_API}/signup",
                json={"email": "New@Example.com", "redirect_to": "/notes"},
            )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["target"] == "new@example.com"
        assert data["redirect_to"] == (
            "/verify?type=onboarding&target=new%40example.com&redirectTo=%2Fnotes"
        )
        mock_send.assert_called_once()
        code = mock_send.call_args.kwargs["code"]
        assert mock_send.call_args.kwargs["to"] == "new@example.com"
        assert (
            mock_send.call_args.kwargs["expires_in"]
            == settings.verification_period_seconds
        )

        response = await client.post(
            f"{_API}/verify",
            json={
                "type": "onboarding",
                "target": "new@example.com",
                "code": code,
                "redirect_to": "/notes",
            },
        )
        assert response.status_code == 200
        assert response.json()["data"]["redirect_to"] == (
            "/onboarding?redirectTo=%2Fnotes"
        )

        response = await client.post(
            f"{_API}/onboarding",
            json={
                "username": "newbie",
                "name": "New Person",
                "password": "a-good-password",
                "confirm_password": "a-good-password",
                "agree_to_terms": True,
                "redirect_to": "/notes",
            },
        )
        assert response.status_code == 201
        assert response.json()["data"]["redirect_to"] == "/notes"

        me = await client.get(f"{_API}/me")
        assert me.json()["data"]["email"] == "new@example.com"
        assert me.json()["data"]["roles"] == ["user"]

    async def test_existing_email_conflicts(
        self, client: AsyncClient, test_user: User
    ):
        with patch(_SEND_CODE, AsyncMock(return_value=True)) as mock_send:
            response = await client.post(
                f"{_API}/signup", json={"email": "KODY@example.com"}
            )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "EMAIL_ALREADY_EXISTS"
        mock_send.assert_not_called()

    async def test_wrong_code_rejected(self, client: AsyncClient):
        with patch(_SEND_CODE, AsyncMock(return_value=True)):
            await client.post(f"{_API}/signup", json={"email": "n@example.com"})
        response = await client.post(
            f"{_API}/verify",
            json={"type": "onboarding", "target": "n@example.com", "code": "000000"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == {
            "code": "INVALID_CODE",
            "message": "Invalid code",
            "details": None,
        }

    async def test_code_is_single_use(self, client: AsyncClient):
        with patch(_SEND_CODE, AsyncMock(return_value=True)) as mock_send:
            await client.post(f"{_API}/signup", json={"email": "n@example.com"})
        body = {
            "type": "onboarding",
            "target": "n@example.com",
            "code": mock_send.call_args.kwargs["code"],
        }
        assert (await client.post(f"{_API}/verify", json=body)).status_code == 200
        assert (await client.post(f"{_API}/verify", json=body)).status_code == 400

    async def test_onboarding_without_verification(self, client: AsyncClient):
        response = await client.post(
            f"{_API}/onboarding",
            json={
                "username": "newbie",
                "name": "New Person",
                "password": "a-good-password",
                "confirm_password": "a-good-password",
                "agree_to_terms": True,
            },
        )
        assert response.status_code == 400

    async def test_onboarding_password_mismatch(self, client: AsyncClient):
        with patch(_SEND_CODE, AsyncMock(return_value=True)) as mock_send:
            await client.post(f"{_API}/signup", json={"email": "n@example.com"})
        await client.post(
            f"{_API}/verify",
            json={
                "type": "onboarding",
                "target": "n@example.com",
                "code": mock_send.call_args.kwargs["code"],
            },
        )
        response = await client.post(
            f"{_API}/onboarding",
            json={
                "username": "newbie",
                "name": "New Person",
                "password": "a-good-password",
                "confirm_password": "another-password",
                "agree_to_terms": True,
            },
        )
        assert response.status_code == 400
        assert response.json()["error"]["details"] == [
            {"field": "confirm_password", "error": "MISMATCH"}
        ]


class TestPasswordReset:
    """Reset request, verify and new password."""

    async def test_full_flow_signs_out_everywhere(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        old_session = await create_db_session(db_session, test_user.id)
        with patch(_SEND_CODE, AsyncMock(return_value=True)) as mock_send:
            response = await client.post(
                f"{_API}/reset-password/request",
                json={"username_or_email": "Kody@Example.com"},
            )
        assert response.status_code == 200
        assert mock_send.call_args.kwargs["to"] == "kody@example.com"

        response = await client.post(
            f"{_API}/verify",
            json={
                "type": "reset-password",
                "target": "kody@example.com",
                "code": mock_send.call_args.kwargs["code"],
            },
        )
        assert response.json()["data"]["redirect_to"] == "/reset-password"

        response = await client.post(
            f"{_API}/reset-password",
            json={"password": "fresh-password", "confirm_password": "fresh-password"},
        )
        assert response.status_code == 200
        assert await SessionRepository.get_active(db_session, old_session) is None

        response = await client.post(
            f"{_API}/login", json={"username": "kody", "password": "fresh-password"}
        )
        assert response.status_code == 200

    async def test_unknown_account_same_response(self, client: AsyncClient):
        with patch(_SEND_CODE, AsyncMock(return_value=True)) as mock_send:
            response = await client.post(
                f"{_API}/reset-password/request",
                json={"username_or_email": "nobody"},
            )
        assert response.status_code == 200
        assert response.json()["data"] == {
            "target": "nobody",
            "redirect_to": "/verify?type=reset-password&target=nobody",
        }
        mock_send.assert_not_called()

    async def test_reset_without_verification(self, client: AsyncClient):
        response = await client.post(
            f"{_API}/reset-password",
            json={"password": "fresh-password", "confirm_password": "fresh-password"},
        )
        assert response.status_code == 400
