"""Failure kinds raised by the character fetch service.

All of them collapse into the same error state on the screen; the distinction
only matters for logging and metrics.
"""


class FetchError(Exception):
    """Base class for a failed character fetch.

    Attributes:
        message: Human-readable text shown on the error view.
    """

    kind = "fetch_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class DecodeError(FetchError):
    """Response body was not valid JSON or missed a required field."""

    kind = "decode_error"


class UpstreamHTTPError(FetchError):
    """Upstream answered with a status other than 200 or 404."""

    kind = "http_error"

    def __init__(self, status_code: int) -> None:
        super().__init__(f"Failed to load characters (status {status_code})")
        self.status_code = status_code


class TransportFailure(FetchError):
    """Network or connection failure reported by httpx."""

    kind = "transport_error"
