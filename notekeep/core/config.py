"""Application configuration loaded from environment variables.

Settings for the database, session cookies, identity providers, and
outbound email. Uses pydantic-settings for validation and .env file support.
"""

from typing import Literal

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure defaults that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "notekeep_dev_password"  # nosec B105
_INSECURE_DEFAULT_SECRET = "notekeep-development-secret-change-me-please"  # nosec B105

# Minimum length for AUTH_SECRET (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "notekeep"
    database_user: str = "notekeep_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD
    database_echo: bool = False

    # API
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Signed cookies
    auth_secret: SecretStr = SecretStr(_INSECURE_DEFAULT_SECRET)
    auth_issuer: str = "notekeep"
    session_cookie_name: str = "notekeep.session"
    redirect_cookie_name: str = "notekeep.redirect-to"
    verification_cookie_name: str = "notekeep.verification"
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    auth_cookie_domain: str = ""

    # Sessions and one-time codes
    session_expiration_days: int = 30
    verification_period_seconds: int = 10 * 60
    verification_cookie_ttl_seconds: int = 10 * 60

    # OAuth providers
    github_client_id: str = ""
    github_client_secret: SecretStr = SecretStr("")
    google_client_id: str = ""
    google_client_secret: SecretStr = SecretStr("")

    # Email
    email_from: str = "hello@notekeep.app"
    resend_api_key: SecretStr = SecretStr("")

    # Public URL used in emailed links and post-auth redirects
    frontend_url: str = "http://localhost:3000"

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> object:
        """Accept log level names in any case (LOG_LEVEL=debug)."""
        return value.upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate security requirements.

        Checks:
        - SameSite=None requires the Secure flag (all environments)
        - AUTH_SECRET must be at least 32 characters (all environments)
        - CORS must not use a wildcard origin (credentials are sent)
        - Production must not use the default database password or secret
        """
        if self.auth_cookie_samesite == "none" and not self.auth_cookie_secure:
            msg = (
                "AUTH_COOKIE_SECURE must be true when AUTH_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        if len(self.auth_secret.get_secret_value()) < _MIN_AUTH_SECRET_LENGTH:
            msg = (
                f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                "characters for adequate security."
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "Session cookies are incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.session_expiration_days <= 0:
            msg = (
                "SESSION_EXPIRATION_DAYS must be positive. "
                f"Got: {self.session_expiration_days}"
            )
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)
            if self.auth_secret.get_secret_value() == _INSECURE_DEFAULT_SECRET:
                msg = (
                    "Cannot use the development AUTH_SECRET in production. "
                    'Generate one with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)

        return self


settings = Settings()
