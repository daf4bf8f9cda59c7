"""OAuth HTTP client: token exchange and userinfo fetching.

Errors propagate as httpx exceptions, or ValueError for a body that is not
the expected JSON shape; OAuthProvider.complete_auth() converts both to
AuthProviderError.
"""

from typing import Any

import httpx

from notekeep.core.oauth import OAuthProviderConfig

# HTTP client timeout for OAuth token exchange and userinfo
_OAUTH_HTTP_TIMEOUT = 10.0


def _json_body(resp: httpx.Response, expected: type) -> Any:
    """Decode a JSON response body, rejecting unexpected top-level types.

    Raises:
        ValueError: If the body is not JSON or not an instance of ``expected``.
    """
    body = resp.json()
    if not isinstance(body, expected):
        raise ValueError(
            f"Expected JSON {expected.__name__} from {resp.request.url}, "
            f"got {type(body).__name__}"
        )
    return body


async def exchange_code_for_tokens(
    *,
    config: OAuthProviderConfig,
    code: str,
    code_verifier: str,
    redirect_uri: str,
) -> dict[str, Any]:
    """Exchange authorization code for OAuth tokens.

    Args:
        config: Provider configuration.
        code: Authorization code from callback.
        code_verifier: PKCE code verifier.
        redirect_uri: Callback URL used in initiation.

    Returns:
        Token response dict (access_token, token_type, scope, ...).

    Raises:
        httpx.HTTPError: If the token exchange fails.
        ValueError: If the response is not a JSON object.
    """
    async with httpx.AsyncClient() as client:
        resp = await client.post(
            config.token_url,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": config.client_id,
                "client_secret": config.client_secret,
                "code_verifier": code_verifier,
            },
            # GitHub answers form-encoded unless JSON is requested
            headers={"Accept": "application/json"},
            timeout=_OAUTH_HTTP_TIMEOUT,
        )
        resp.raise_for_status()
        result: dict[str, Any] = _json_body(resp, dict)
        return result


async def fetch_userinfo(
    *,
    config: OAuthProviderConfig,
    access_token: str,
) -> dict[str, Any]:
    """Fetch the account profile from the provider's userinfo endpoint.

    Raises:
        httpx.HTTPError: If the userinfo request fails.
        ValueError: If the response is not a JSON object.
    """
    async with httpx.AsyncClient() as client:
        resp = await client.get(
            config.userinfo_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
            timeout=_OAUTH_HTTP_TIMEOUT,
        )
        resp.raise_for_status()
        result: dict[str, Any] = _json_body(resp, dict)
        return result


async def fetch_emails(
    *,
    config: OAuthProviderConfig,
    access_token: str,
) -> list[dict[str, Any]]:
    """Fetch the account's email list (GitHub hides private addresses)."""
    if not config.emails_url:
        return []
    async with httpx.AsyncClient() as client:
        resp = await client.get(
            config.emails_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
            timeout=_OAUTH_HTTP_TIMEOUT,
        )
        resp.raise_for_status()
        entries = _json_body(resp, list)
        return [entry for entry in entries if isinstance(entry, dict)]
