"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing
    # str(exception). This is the base class - DON'T raise it directly! Always use a specific
    # subclass so callers can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class ConfigurationError(DomainException):
    """Application misconfiguration.

    Raised when required configuration is missing or invalid.

    Example:
        raise ConfigurationError("page_size must be positive")
    """

    pass


class ExternalServiceError(DomainException):
    """External service returned an error.

    Carries the numeric HTTP status so callers can branch on it (e.g. the
    403 degradation of optional endpoints).

    Example:
        raise ExternalServiceError("Service Unavailable", status=503)
    """

    def __init__(self, message: str, status: int = 500) -> None:
        super().__init__(message)
        self.status = status


class SpotifyApiError(ExternalServiceError):
    """The Spotify Web API answered with a non-success status or was unreachable.

    Transport-level failures (DNS, connection reset, timeouts) use status 500
    and take their message from the underlying transport error.
    """

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message, status=status)

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status}, message={self.message!r})"

    @property
    def is_permission_denied(self) -> bool:
        """True for 403 responses (scope not granted for this endpoint)."""
        return self.status == 403


class AuthenticationError(SpotifyApiError):
    """User is not authenticated or the token expired.

    Fatal for the current operation and never retried. When the server reports
    401 the stored credentials are cleared before this is raised, so the user
    has to log in again.

    Example:
        raise AuthenticationError("Not authenticated")
        raise AuthenticationError("Session expired, please log in again")
    """

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(401, message)


__all__ = [
    "DomainException",
    "ConfigurationError",
    "ExternalServiceError",
    "SpotifyApiError",
    "AuthenticationError",
]
