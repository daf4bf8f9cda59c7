import socket
import uuid
from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from notekeep.core.config import settings
from notekeep.core.cookies import encode_signed_value
from notekeep.core.oauth import OAuthProvider, OAuthProviderConfig
from notekeep.core.passwords import hash_password
from notekeep.models import Base, User
from notekeep.models.role import ACCESS_ANY, ACCESS_OWN
from notekeep.repositories.password_repository import PasswordRepository
from notekeep.repositories.role_repository import RoleRepository
from notekeep.repositories.session_repository import SessionRepository
from notekeep.repositories.user_repository import UserRepository

# Use separate test database
TEST_DATABASE_URL = settings.database_url.replace(
    settings.database_name, f"{settings.database_name}_test"
)

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

TEST_PASSWORD = "correct-horse-battery"  # nosec B105

# Low bcrypt cost keeps fixture setup fast
_TEST_BCRYPT_ROUNDS = 4

_ENTITIES = ("user", "note")
_ACTIONS = ("create", "read", "update", "delete")


def create_session_cookie(
    session_id: uuid.UUID | str,
    *,
    secret: str = TEST_AUTH_SECRET,
    ttl_seconds: int = 3600,
) -> str:
    """Signed session cookie value for ``session_id``."""
    return encode_signed_value(
        {"sid": str(session_id)},
        audience="session",
        ttl_seconds=ttl_seconds,
        secret=secret,
    )


def make_github_provider() -> OAuthProvider:
    """GitHub provider with test credentials."""
    return OAuthProvider(
        OAuthProviderConfig(  # nosec B106
            name="github",
            label="GitHub",
            client_id="test-client-id",
            client_secret="test-client-secret",
            authorization_url="https://github.com/login/oauth/authorize",
            token_url="https://github.com/login/oauth/access_token",
            userinfo_url="https://api.github.com/user",
            emails_url="https://api.github.com/user/emails",
            scopes=("read:user", "user:email"),
        )
    )


def _is_postgres_available() -> bool:
    """Check if PostgreSQL is accepting connections.

    Returns:
        True if PostgreSQL is reachable on port 5432, False otherwise.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex(("127.0.0.1", 5432))
        sock.close()
        return result == 0
    except OSError:
        return False


# Check once at module load time
_POSTGRES_AVAILABLE = _is_postgres_available()


def skip_if_no_postgres() -> None:
    """Skip test if PostgreSQL is not available."""
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            "PostgreSQL not available on port 5432. "
            "Start database with: docker compose up -d"
        )


async def seed_roles(session: AsyncSession) -> None:
    """Create the "user" and "admin" roles with their permissions."""
    roles = {
        ACCESS_OWN: await RoleRepository.create_role(session, name="user"),
        ACCESS_ANY: await RoleRepository.create_role(session, name="admin"),
    }
    for entity in _ENTITIES:
        for action in _ACTIONS:
            for access, role in roles.items():
                permission = await RoleRepository.create_permission(
                    session, action=action, entity=entity, access=access
                )
                await RoleRepository.grant_permission(
                    session, role_id=role.id, permission_id=permission.id
                )


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture(autouse=True)
def test_settings() -> Iterator[None]:
    """Deterministic auth settings for every test."""
    original_secret = settings.auth_secret
    original_secure = settings.auth_cookie_secure
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    settings.auth_cookie_secure = True
    yield
    settings.auth_secret = original_secret
    settings.auth_cookie_secure = original_secure


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine with schema and seeded roles.

    Skips test if PostgreSQL is not available (e.g., Docker not running).
    """
    skip_if_no_postgres()

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    seed_factory = async_sessionmaker(engine, class_=AsyncSession)
    async with seed_factory() as session:
        await seed_roles(session)
        await session.commit()

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


async def create_user(
    session: AsyncSession,
    *,
    username: str,
    email: str | None = None,
    password: str | None = TEST_PASSWORD,
    role: str | None = "user",
) -> User:
    """Insert a user, optionally with a password and a role."""
    user = await UserRepository.create(
        session,
        email=email or f"{username}@example.com",
        username=username,
        name=username.title(),
    )
    if password is not None:
        await PasswordRepository.set_hash(
            session,
            user.id,
            await hash_password(password, rounds=_TEST_BCRYPT_ROUNDS),
        )
    if role is not None:
        found = await RoleRepository.get_by_name(session, role)
        assert found is not None
        await RoleRepository.assign_role(session, user_id=user.id, role_id=found.id)
    await session.commit()
    return user


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Password user with the "user" role."""
    return await create_user(db_session, username="kody", email="kody@example.com")


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    """Second password user with the "user" role."""
    return await create_user(db_session, username="hannah")


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    """User holding only the "admin" role."""
    return await create_user(db_session, username="admin", role="admin")


async def create_db_session(
    session: AsyncSession,
    user_id: uuid.UUID,
    *,
    expires_in: timedelta = timedelta(days=30),
) -> uuid.UUID:
    """Insert a session row and return its id."""
    row = await SessionRepository.create(
        session,
        user_id=user_id,
        expires_at=datetime.now(UTC) + expires_in,
    )
    await session.commit()
    return row.id


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest.fixture
def app() -> FastAPI:
    """Fresh application with a test GitHub provider registered."""
    from notekeep.main import create_app

    application = create_app()
    application.state.providers = {"github": make_github_provider()}
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI, db_engine) -> AsyncGenerator[AsyncClient, None]:
    """Anonymous async HTTP client backed by the test database.

    Redirects are not followed so tests can assert on Location headers.
    """
    from notekeep.core.database import get_db

    test_session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with test_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="https://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def user_client(
    client: AsyncClient, db_session: AsyncSession, test_user: User
) -> AsyncClient:
    """Client signed in as ``test_user``."""
    session_id = await create_db_session(db_session, test_user.id)
    client.cookies.set(settings.session_cookie_name, create_session_cookie(session_id))
    return client
