"""Typed errors raised by normalizers, requesters and handlers.

Each error carries the HTTP status the route boundary answers with, so a
handler can simply let it propagate to the exception handler in ``main``.
"""

from typing import Optional


class RootsError(Exception):
    """Base error for anything that maps onto a JSON error response."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidRequestError(RootsError):
    status_code = 400


class NotAuthenticatedError(RootsError):
    status_code = 401

    def __init__(self, message: str = "Not authenticated."):
        super().__init__(message)


class ForbiddenError(RootsError):
    status_code = 403


class NotFoundError(RootsError):
    status_code = 404


class ConflictError(RootsError):
    status_code = 409


class NotConfiguredError(RootsError):
    """Raised when an API key or credential is missing on the server."""


class RequestInFlightError(RootsError):
    """Another call for the same feature is still running in this process."""

    status_code = 429


class UpstreamBusyError(RootsError):
    """The provider answered 429 or 503; the status is passed through."""

    status_code = 503


class UpstreamError(RootsError):
    """Any other non-2xx answer from a provider."""

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message, 500)
        self.upstream_status = upstream_status


class NoContentError(RootsError):
    status_code = 502


class ReplyParseError(RootsError):
    status_code = 502
