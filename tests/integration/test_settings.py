"""Integration tests for account settings: email change and connections."""

import uuid
from unittest.mock import AsyncMock, patch

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.core.config import settings
from notekeep.models import User
from notekeep.repositories.connection_repository import ConnectionRepository
from tests.conftest import create_db_session, create_session_cookie, create_user

_API = "/api/v1"
_SEND_CODE = "notekeep.api.v1.settings.send_verification_code_email"
_SEND_NOTICE = "notekeep.api.v1.verification.send_email_changed_notice"


class TestChangeEmail:
    """POST /settings/change-email then POST /auth/verify."""

    async def test_full_flow_notifies_old_address(
        self, user_client: AsyncClient, test_user: User
    ):
        with patch(_SEND_CODE, AsyncMock(return_value=True)) as mock_send:
            response = await user_client.post(
                f"{_API}/settings/change-email", json={"email": "Kody.New@example.com"}
            )
        assert response.status_code == 200
        target = response.json()["data"]["target"]
        assert target == str(test_user.id)
        assert mock_send.call_args.kwargs["to"] == "kody.new@example.com"

        with patch(_SEND_NOTICE, AsyncMock(return_value=True)) as mock_notice:
            response = await user_client.post(
                f"{_API}/auth/verify",
                json={
                    "type": "change-email",
                    "target": target,
                    "code": mock_send.call_args.kwargs["code"],
                },
            )
        assert response.status_code == 200
        assert response.json()["data"]["email"] == "kody.new@example.com"
        mock_notice.assert_called_once_with(
            to="kody@example.com", new_email="kody.new@example.com"
        )

        me = await user_client.get(f"{_API}/auth/me")
        assert me.json()["data"]["email"] == "kody.new@example.com"

    async def test_email_in_use(
        self, user_client: AsyncClient, other_user: User
    ):
        with patch(_SEND_CODE, AsyncMock(return_value=True)) as mock_send:
            response = await user_client.post(
                f"{_API}/settings/change-email", json={"email": "hannah@example.com"}
            )
        assert response.status_code == 409
        mock_send.assert_not_called()

    async def test_code_for_another_user_rejected(
        self, user_client: AsyncClient, other_user: User
    ):
        response = await user_client.post(
            f"{_API}/auth/verify",
            json={"type": "change-email", "target": str(other_user.id), "code": "ABC"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_CODE"

    async def test_anonymous_verify_redirects(self, client: AsyncClient):
        response = await client.post(
            f"{_API}/auth/verify",
            json={"type": "change-email", "target": str(uuid.uuid4()), "code": "ABC"},
        )
        assert response.status_code == 303


class TestConnections:
    """GET/DELETE /settings/connections."""

    async def test_list_with_password_user(
        self, user_client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        await ConnectionRepository.create(
            db_session, user_id=test_user.id, provider_name="github", provider_id="gh-1"
        )
        await db_session.commit()
        response = await user_client.get(f"{_API}/settings/connections")
        assert response.status_code == 200
        [connection] = response.json()["data"]
        assert connection["provider_name"] == "github"
        assert connection["can_delete"] is True

    async def test_delete_connection(
        self, user_client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        connection = await ConnectionRepository.create(
            db_session, user_id=test_user.id, provider_name="github", provider_id="gh-1"
        )
        await db_session.commit()
        response = await user_client.delete(
            f"{_API}/settings/connections/{connection.id}"
        )
        assert response.status_code == 200
        assert await ConnectionRepository.list_for_user(db_session, test_user.id) == []

    async def test_last_sign_in_method_kept(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        """A provider-only user cannot remove their only connection."""
        user = await create_user(db_session, username="octo", password=None)
        connection = await ConnectionRepository.create(
            db_session, user_id=user.id, provider_name="github", provider_id="gh-2"
        )
        await db_session.commit()
        session_id = await create_db_session(db_session, user.id)
        client.cookies.set(settings.session_cookie_name, create_session_cookie(session_id))

        listing = await client.get(f"{_API}/settings/connections")
        assert listing.json()["data"][0]["can_delete"] is False

        response = await client.delete(f"{_API}/settings/connections/{connection.id}")
        assert response.status_code == 400
        assert len(await ConnectionRepository.list_for_user(db_session, user.id)) == 1

    async def test_other_users_connection_not_found(
        self, user_client: AsyncClient, db_session: AsyncSession, other_user: User
    ):
        connection = await ConnectionRepository.create(
            db_session, user_id=other_user.id, provider_name="github", provider_id="gh-3"
        )
        await db_session.commit()
        response = await user_client.delete(
            f"{_API}/settings/connections/{connection.id}"
        )
        assert response.status_code == 404
