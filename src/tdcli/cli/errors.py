"""Error taxonomy shared by the cache, the sync engine and the commands."""


class TdError(Exception):
    """Base exception for tdcli errors."""

    pass


class RemoteUnavailable(TdError):
    """Raised when the remote service cannot be reached (transport, timeout, 5xx)."""

    pass


class RemoteRejected(TdError):
    """Raised when the remote service refuses a request (auth or protocol error)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StoreCorrupt(TdError):
    """Raised when persisted cache data cannot be read back."""

    pass


class ConfigurationError(TdError):
    """Raised when a configuration value is invalid."""

    pass


class AuthenticationMissing(ConfigurationError):
    """Raised when no API token is configured."""

    pass


class CursorInvalid(TdError):
    """Raised when a pagination cursor cannot be honored."""

    pass
