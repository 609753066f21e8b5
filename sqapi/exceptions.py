"""Custom exception hierarchy for sqapi.

All library-specific exceptions inherit from ``SqapiError`` so consumers
can catch ``except SqapiError`` to handle any sqapi failure.
"""


class SqapiError(Exception):
    """Base exception for all sqapi errors."""


class ValidationError(SqapiError, ValueError):
    """Raised when a filter, parameter set or translate object is malformed."""


class ConfigurationError(SqapiError):
    """Raised for an invalid HTTP verb or an endpoint sent to the wrong entry point."""


class TransportError(SqapiError):
    """Raised on a non-success HTTP status or a failed connection."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        """Keep the HTTP status (None for connection failures) and URL."""
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class ServerJobError(SqapiError):
    """Raised when an export job reports an error or returns a malformed descriptor."""

    def __init__(self, message: str) -> None:
        """Preserve the server-provided message."""
        self.message = message
        super().__init__(message)


class UnsupportedFormatError(SqapiError, ValueError):
    """Raised when an explicit file type is not one of csv/json/html/txt."""


class PollCancelledError(SqapiError):
    """Raised when an export poll loop is cancelled by the caller."""


class InteractiveModeRequiredError(SqapiError):
    """Raised when interactive input is needed but disabled."""
