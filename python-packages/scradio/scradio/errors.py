"""Custom exception classes for scradio."""


class ScradioError(Exception):
    """Base exception class for scradio errors."""

    pass


class ConfigError(ScradioError):
    """Configuration-related errors."""

    pass


class ValidationError(ScradioError):
    """Input validation errors."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NetworkError(ScradioError):
    """Network/HTTP errors. Transient unless a subclass says otherwise."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SessionNotFoundError(NetworkError):
    """The session id is unknown to the backend (HTTP 404)."""

    pass


class UnauthorizedError(NetworkError):
    """Missing or wrong host secret (HTTP 401)."""

    pass


class InvalidStateError(NetworkError):
    """The backend rejected a malformed request body (HTTP 400)."""

    pass
