"""Redirect target helpers.

Only same-site relative paths are accepted as redirect targets. Anything
else falls back to the default.
"""

import re
from urllib.parse import urlencode

from notekeep.core.config import settings

DEFAULT_REDIRECT = "/"
LOGIN_PATH = "/login"

_MAX_LENGTH = 300
# A single leading slash followed by a non-slash, non-backslash character
_SAFE_PATH = re.compile(r"^/(?![/\\])[^\s]*$")


def safe_redirect(target: str | None, default: str = DEFAULT_REDIRECT) -> str:
    """Return ``target`` if it is a safe local path, else ``default``."""
    if not target or len(target) > _MAX_LENGTH:
        return default
    if not _SAFE_PATH.match(target):
        return default
    return target


def with_redirect_param(path: str, redirect_to: str | None) -> str:
    """Append ``?redirectTo=...`` to ``path`` when a target is given."""
    if not redirect_to:
        return path
    return f"{path}?{urlencode({'redirectTo': redirect_to})}"


def login_url(redirect_to: str | None) -> str:
    """Build the login entry point URL carrying an optional return path."""
    return with_redirect_param(LOGIN_PATH, redirect_to)


def frontend_url(path: str) -> str:
    """Absolute URL of a frontend page, for redirects issued by the API."""
    return f"{settings.frontend_url.rstrip('/')}{path}"
