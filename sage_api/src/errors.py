"""Exceptions raised by the Sage Accounting client."""


class SageError(Exception):
    """Base class for all Sage client failures."""


class ConfigurationError(SageError):
    """Client id, client secret or redirect URI is missing."""


class AuthorizationError(SageError):
    """OAuth code missing, code exchange or refresh rejected, or no token available."""


class TokenStorageError(SageError):
    """Token file is unreadable, empty or does not hold an access token."""


class ApiRequestError(SageError):
    """The API answered with a non-success status, or the request never completed."""

    def __init__(self, msg: str, status_code: int | None = None) -> None:
        """Initialize with the HTTP status (None for transport failures)."""
        super().__init__(msg)
        self.status_code = status_code


class ApiResponseError(SageError):
    """The response body was not the JSON document we expected."""
