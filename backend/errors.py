"""
errors.py

Error taxonomy for backend calls. These are raised inside the client and
converted to ApiResult failures before anything crosses a future.
Part of Roominate - Boarding-House Marketplace Client.
"""

from __future__ import annotations

from typing import Optional


class BackendError(Exception):
    """Base class for every failure talking to the backend."""

    kind = "backend"

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class NetworkError(BackendError):
    """No response was received (connection failure, timeout)."""

    kind = "network"


class BackendRejection(BackendError):
    """The backend answered with a 4xx/5xx status."""

    kind = "rejected"


class ParseError(BackendError):
    """The response body was malformed or had an unexpected shape."""

    kind = "parse"

    def __init__(self, message: str = "Failed to parse response", status: Optional[int] = None) -> None:
        super().__init__(message, status)
