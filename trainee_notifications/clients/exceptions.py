"""Exceptions raised by the reference data and account clients."""


class ClientError(Exception):
    """Base exception for all client errors.

    Callers resolving notification context catch this to skip a single
    notification type without failing the whole evaluation pass.
    """

    pass


class ClientHTTPError(ClientError):
    """HTTP request failed with a 4xx or 5xx status, or never completed."""

    def __init__(self, message: str, status_code: int, url: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class ClientTimeoutError(ClientError):
    """HTTP request timed out."""

    def __init__(self, message: str, url: str) -> None:
        super().__init__(message)
        self.url = url


class ClientResponseError(ClientError):
    """Response could not be parsed or had an unexpected shape."""

    pass


class ClientConfigurationError(ClientError):
    """Client was constructed with invalid settings."""

    pass
