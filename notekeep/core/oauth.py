"""Provider identity resolution: PKCE, state cookies, and provider registry.

Each configured identity provider is an OAuthProvider exposing two
operations: begin_auth() builds the authorization redirect, and
complete_auth() turns the callback parameters into a ProviderProfile. Any
failure in complete_auth() surfaces as AuthProviderError; the underlying
cause is only logged.
"""

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from notekeep.core.config import Settings
from notekeep.core.cookies import decode_signed_value, encode_signed_value
from notekeep.core.errors import AuthProviderError

logger = logging.getLogger(__name__)

# PKCE code verifier length (RFC 7636 allows 43-128)
_VERIFIER_LENGTH = 128

# Characters allowed in PKCE code verifier (RFC 7636 §4.1)
# unreserved = ALPHA / DIGIT / "-" / "." / "_" / "~"
_UNRESERVED_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"

# Default TTL for OAuth state cookie (10 minutes)
STATE_COOKIE_TTL = 600
STATE_COOKIE_NAME = "oauth_state"
_STATE_AUDIENCE = "oauth-state"


def generate_code_verifier() -> str:
    """Generate a 128-character PKCE code verifier (RFC 7636 §4.1)."""
    return "".join(secrets.choice(_UNRESERVED_CHARS) for _ in range(_VERIFIER_LENGTH))


def generate_code_challenge(verifier: str) -> str:
    """Generate a PKCE code challenge from a verifier.

    RFC 7636 §4.2: BASE64URL(SHA256(code_verifier)), no padding.

    Args:
        verifier: PKCE code verifier string.

    Returns:
        Base64url-encoded SHA256 hash without padding.
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def create_oauth_state_cookie(
    *,
    provider: str,
    state: str,
    code_verifier: str,
    ttl_seconds: int = STATE_COOKIE_TTL,
) -> str:
    """Sign the state parameter and PKCE verifier for the callback leg.

    The provider name is bound into the cookie so a state minted for one
    provider cannot complete another provider's callback.
    """
    return encode_signed_value(
        {"provider": provider, "state": state, "code_verifier": code_verifier},
        audience=_STATE_AUDIENCE,
        ttl_seconds=ttl_seconds,
    )


def validate_oauth_state_cookie(
    *,
    cookie_value: str | None,
    provider: str,
    expected_state: str | None,
) -> str | None:
    """Validate an OAuth state cookie and return the PKCE code verifier.

    Returns:
        Code verifier if the signature, expiry, provider and state all
        match, None otherwise.
    """
    if not cookie_value or not expected_state:
        return None
    payload = decode_signed_value(cookie_value, audience=_STATE_AUDIENCE)
    if payload is None:
        return None
    if payload.get("provider") != provider:
        return None
    if not secrets.compare_digest(str(payload.get("state", "")), expected_state):
        return None
    return payload.get("code_verifier")


# ===================================================================
# Profiles and provider configuration
# ===================================================================


@dataclass(frozen=True)
class ProviderProfile:
    """Identity returned by a provider after a successful callback.

    Attributes:
        id: Provider-side account id (opaque string).
        email: Email address reported by the provider.
        username: Suggested username, if the provider has one.
        name: Display name.
        image_url: Avatar URL.
    """

    id: str
    email: str
    username: str | None = None
    name: str | None = None
    image_url: str | None = None


@dataclass(frozen=True)
class OAuthProviderConfig:
    """Configuration for an OAuth provider.

    Attributes:
        name: Registry key and value stored in connections.provider_name.
        label: Human-readable provider name for user-facing messages.
        client_id: OAuth client id.
        client_secret: OAuth client secret.
        authorization_url: Provider's authorization endpoint.
        token_url: Provider's token exchange endpoint.
        userinfo_url: Provider's userinfo endpoint.
        scopes: OAuth scopes to request.
        emails_url: Endpoint listing the account's emails, for providers
            whose userinfo may omit a private address.
    """

    name: str
    label: str
    client_id: str
    client_secret: str
    authorization_url: str
    token_url: str
    userinfo_url: str
    scopes: tuple[str, ...]
    emails_url: str | None = None


@dataclass(frozen=True)
class AuthRequest:
    """Redirect produced by begin_auth().

    Attributes:
        url: Provider authorization URL to redirect the browser to.
        state_cookie: Signed value for the oauth_state cookie.
    """

    url: str
    state_cookie: str


def parse_github_profile(
    userinfo: dict, emails: list[dict] | None = None
) -> ProviderProfile | None:
    """Build a profile from GitHub's /user (and /user/emails) payloads."""
    account_id = userinfo.get("id")
    email = userinfo.get("email")
    if not email and emails:
        primary = next(
            (e for e in emails if e.get("primary") and e.get("verified")),
            None,
        )
        email = primary.get("email") if primary else None
    if account_id is None or not email:
        return None
    return ProviderProfile(
        id=str(account_id),
        email=email,
        username=userinfo.get("login"),
        name=userinfo.get("name"),
        image_url=userinfo.get("avatar_url"),
    )


def parse_google_profile(userinfo: dict) -> ProviderProfile | None:
    """Build a profile from Google's OpenID Connect userinfo payload."""
    account_id = userinfo.get("sub")
    email = userinfo.get("email")
    if not account_id or not email or userinfo.get("email_verified") is False:
        return None
    return ProviderProfile(
        id=str(account_id),
        email=email,
        username=email.split("@", 1)[0],
        name=userinfo.get("name"),
        image_url=userinfo.get("picture"),
    )


class OAuthProvider:
    """One configured identity provider (authorization-code flow with PKCE)."""

    def __init__(self, config: OAuthProviderConfig) -> None:
        self.config = config

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def label(self) -> str:
        return self.config.label

    def begin_auth(self, callback_url: str) -> AuthRequest:
        """Build the authorization redirect and its signed state cookie."""
        code_verifier = generate_code_verifier()
        state = secrets.token_urlsafe(32)
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": callback_url,
            "response_type": "code",
            "scope": " ".join(self.config.scopes),
            "state": state,
            "code_challenge": generate_code_challenge(code_verifier),
            "code_challenge_method": "S256",
        }
        return AuthRequest(
            url=f"{self.config.authorization_url}?{urlencode(params)}",
            state_cookie=create_oauth_state_cookie(
                provider=self.name,
                state=state,
                code_verifier=code_verifier,
            ),
        )

    async def complete_auth(
        self,
        *,
        code: str | None,
        state: str | None,
        state_cookie: str | None,
        callback_url: str,
    ) -> ProviderProfile:
        """Exchange the callback parameters for the provider profile.

        Raises:
            AuthProviderError: On bad state, HTTP or network failure, a
                malformed provider response, or a profile missing its id
                or email.
        """
        # Deferred: oauth_client imports this module
        from notekeep.core import oauth_client

        code_verifier = validate_oauth_state_cookie(
            cookie_value=state_cookie,
            provider=self.name,
            expected_state=state,
        )
        if not code or not code_verifier:
            logger.warning(
                "OAuth callback with missing code or invalid state",
                extra={"provider": self.name},
            )
            raise AuthProviderError(self.label)

        try:
            tokens = await oauth_client.exchange_code_for_tokens(
                config=self.config,
                code=code,
                code_verifier=code_verifier,
                redirect_uri=callback_url,
            )
            access_token = tokens.get("access_token")
            if not access_token:
                logger.warning(
                    "OAuth provider did not return an access token",
                    extra={"provider": self.name},
                )
                raise AuthProviderError(self.label)
            userinfo = await oauth_client.fetch_userinfo(
                config=self.config, access_token=access_token
            )
            profile = await self._parse_profile(userinfo, access_token)
        except (httpx.HTTPError, ValueError):
            logger.exception("OAuth exchange failed", extra={"provider": self.name})
            raise AuthProviderError(self.label) from None

        if profile is None:
            logger.warning(
                "OAuth provider returned an incomplete profile",
                extra={"provider": self.name},
            )
            raise AuthProviderError(self.label)
        return profile

    async def _parse_profile(
        self, userinfo: dict, access_token: str
    ) -> ProviderProfile | None:
        from notekeep.core import oauth_client

        if self.name == "github":
            emails = None
            if not userinfo.get("email") and self.config.emails_url:
                emails = await oauth_client.fetch_emails(
                    config=self.config, access_token=access_token
                )
            return parse_github_profile(userinfo, emails)
        return parse_google_profile(userinfo)


def build_provider_registry(config: Settings) -> dict[str, OAuthProvider]:
    """Build the provider capability map from settings.

    Providers without a client id are left out, so requests naming them
    are treated as unknown providers.
    """
    candidates = [
        OAuthProviderConfig(  # nosec B106 - token_url is an endpoint, not a password
            name="github",
            label="GitHub",
            client_id=config.github_client_id,
            client_secret=config.github_client_secret.get_secret_value(),
            authorization_url="https://github.com/login/oauth/authorize",
            token_url="https://github.com/login/oauth/access_token",
            userinfo_url="https://api.github.com/user",
            emails_url="https://api.github.com/user/emails",
            scopes=("read:user", "user:email"),
        ),
        OAuthProviderConfig(  # nosec B106 - token_url is an endpoint, not a password
            name="google",
            label="Google",
            client_id=config.google_client_id,
            client_secret=config.google_client_secret.get_secret_value(),
            authorization_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",
            userinfo_url="https://openidconnect.googleapis.com/v1/userinfo",
            scopes=("openid", "email", "profile"),
        ),
    ]
    registry = {c.name: OAuthProvider(c) for c in candidates if c.client_id}
    logger.info("Identity providers enabled", extra={"providers": sorted(registry)})
    return registry
