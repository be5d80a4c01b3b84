"""Exception hierarchy for intensity fetches."""

from __future__ import annotations


class FetchError(Exception):
    """Base exception for all intensity fetch errors."""


class FetchTimeoutError(FetchError):
    """The provider did not answer in time."""


class FetchConnectionError(FetchError):
    """Transport failure other than a timeout (DNS, refused, reset)."""


class FetchStatusError(FetchError):
    """The provider answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        detail = f": {message}" if message else ""
        super().__init__(f"provider returned HTTP {status_code}{detail}")


class FetchMalformedError(FetchError):
    """The provider's response body could not be parsed into a reading."""
