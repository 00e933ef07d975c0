"""Errors raised while fetching arrivals from the BART API."""

from typing import Optional


class FetchError(Exception):
    """Base class for a failed arrivals fetch. Scoped to one fetch cycle."""


class NetworkError(FetchError):
    """The request could not be completed (connection, timeout, HTTP status)."""


class ParseError(FetchError):
    """The response body was not a usable ETD document."""


class StationMismatchError(FetchError):
    """The API answered for a different station than the one requested."""

    def __init__(self, requested_code: str, returned_code: str, returned_name: Optional[str] = None):
        self.requested_code = requested_code
        self.returned_code = returned_code
        self.returned_name = returned_name
        super().__init__(
            f"Requested departures for {requested_code} but API returned "
            f"{returned_name or '?'} ({returned_code})"
        )
