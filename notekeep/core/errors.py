"""API error classes.

Every member of the error taxonomy is recoverable at the request boundary.
Exception handlers in notekeep.main map them to HTTP responses.
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400)."""

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthenticatedError(APIError):
    """No, invalid, or expired session (401).

    The exception handler answers with a redirect to ``login_url``. When
    ``clear_session`` is set the session cookie is deleted on the way out.

    Attributes:
        login_url: Login entry point, carrying the return path if any.
        clear_session: True when the request carried an invalid session cookie.
    """

    def __init__(
        self,
        login_url: str = "/login",
        *,
        clear_session: bool = False,
        message: str = "Authentication required",
    ) -> None:
        self.login_url = login_url
        self.clear_session = clear_session
        super().__init__(
            code="UNAUTHENTICATED",
            message=message,
            status_code=401,
        )


class ForbiddenError(APIError):
    """Authenticated but not allowed (403).

    Use when auth is valid but the user lacks a permission or role.
    """

    def __init__(
        self,
        message: str = "Access denied",
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=403,
            details=details,
        )


class NotFoundError(APIError):
    """Resource not found (404).

    Use when requested resource doesn't exist OR doesn't belong to the user.
    Revealing "exists but not yours" would leak information.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class AlreadyLinkedError(ConflictError):
    """External identity is already connected to a local account (409)."""

    def __init__(self, provider_label: str, *, other_account: bool) -> None:
        if other_account:
            message = (
                f"This {provider_label} account is already connected "
                "to another account."
            )
        else:
            message = f"This {provider_label} account is already connected."
        super().__init__(code="ALREADY_CONNECTED", message=message)


class InvalidCodeError(APIError):
    """One-time code rejected (400).

    The message is identical for a wrong code, an expired code, a replayed
    code and an unknown target so responses cannot be used for enumeration.
    """

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_CODE",
            message="Invalid code",
            status_code=400,
        )


class AuthProviderError(APIError):
    """Third-party authentication handshake failed (400).

    Only the provider label reaches the client; the cause is logged.

    Attributes:
        provider_label: Human-readable provider name (e.g., "GitHub").
    """

    def __init__(self, provider_label: str) -> None:
        self.provider_label = provider_label
        super().__init__(
            code="AUTH_PROVIDER_ERROR",
            message=f"There was an error authenticating with {provider_label}.",
            status_code=400,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )


class AlreadyAuthenticatedError(APIError):
    """Anonymous-only page requested with a valid session (303 to home).

    Attributes:
        location: Where the exception handler redirects to.
    """

    def __init__(self, location: str = "/") -> None:
        self.location = location
        super().__init__(
            code="ALREADY_AUTHENTICATED",
            message="Already signed in",
            status_code=303,
        )
