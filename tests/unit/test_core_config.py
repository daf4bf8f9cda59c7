"""Tests for application configuration.

Settings for database, cookies and providers. Tests cover defaults and the
security validation performed at load time.
"""

import pytest
from pydantic import ValidationError

from notekeep.core.config import (
    _INSECURE_DEFAULT_PASSWORD,
    _INSECURE_DEFAULT_SECRET,
    Settings,
)

_SECURE_DB_PASSWORD = "my-secure-production-password-123!"
_TEST_AUTH_SECRET = "a" * 64
_PRODUCTION = "production"


class TestDefaults:
    """Tests for default values."""

    def test_session_lifetime_is_thirty_days(self):
        assert Settings().session_expiration_days == 30

    def test_verification_period_is_ten_minutes(self):
        assert Settings().verification_period_seconds == 600

    def test_database_url_uses_asyncpg(self):
        s = Settings(database_host="db", database_port=5433, database_name="nk")
        assert s.database_url.startswith("postgresql+asyncpg://")
        assert "@db:5433/nk" in s.database_url
        assert s.database_url_sync.startswith("postgresql://")

    def test_log_level_defaults_to_info(self):
        assert Settings().log_level == "INFO"

    def test_log_level_is_case_insensitive(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(log_level="verbose")


class TestProductionSecurityValidation:
    """Tests for production security requirements."""

    def test_allows_default_password_in_development(self):
        """Default password is allowed in development environment."""
        s = Settings(
            environment="development",
            database_password=_INSECURE_DEFAULT_PASSWORD,
        )
        assert s.database_password == _INSECURE_DEFAULT_PASSWORD

    def test_rejects_default_password_in_production(self):
        """Default password is rejected in production environment."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(
                environment=_PRODUCTION,
                database_password=_INSECURE_DEFAULT_PASSWORD,
                auth_secret=_TEST_AUTH_SECRET,
            )
        assert "Cannot use default database password in production" in str(
            exc_info.value
        )

    def test_rejects_default_secret_in_production(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(
                environment=_PRODUCTION,
                database_password=_SECURE_DB_PASSWORD,
                auth_secret=_INSECURE_DEFAULT_SECRET,
            )
        assert "development AUTH_SECRET" in str(exc_info.value)

    def test_allows_custom_values_in_production(self):
        s = Settings(
            environment=_PRODUCTION,
            database_password=_SECURE_DB_PASSWORD,
            auth_secret=_TEST_AUTH_SECRET,
        )
        assert s.environment == _PRODUCTION

    def test_rejects_short_auth_secret(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(auth_secret="too-short")
        assert "at least 32" in str(exc_info.value)

    def test_rejects_samesite_none_without_secure(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(auth_cookie_samesite="none", auth_cookie_secure=False)
        assert "AUTH_COOKIE_SECURE" in str(exc_info.value)

    def test_rejects_wildcard_origin(self):
        with pytest.raises(ValidationError):
            Settings(allowed_origins=["*"])

    def test_rejects_non_positive_session_lifetime(self):
        with pytest.raises(ValidationError):
            Settings(session_expiration_days=0)
