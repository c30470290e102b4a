"""Typed failures raised by the ballot services.

Every service failure is a ``BallotError`` subclass carrying a stable ``code``,
a message that is safe to show to the caller, and the HTTP status an outer
HTTP layer should answer with.  Storage exceptions never cross a service
boundary unwrapped: they are rolled back and re-raised as ``InternalError``.
"""

from typing import Any


class BallotError(Exception):
    """Base class for all ballot service failures."""

    code: str = "error"
    http_status: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict[str, Any]:
        """Return the error envelope an HTTP adapter would serialize."""
        return {"error": {"code": self.code, "message": self.message}}


class NotFoundError(BallotError):
    """Unknown election, contest, candidate or receipt."""

    code = "not_found"
    http_status = 404


class ForbiddenError(BallotError):
    """Voter is not on the contest's roll, or results are requested before closure."""

    code = "forbidden"
    http_status = 403

    def __init__(self, message: str = "forbidden") -> None:
        super().__init__(message)


class BadRequestError(BallotError, ValueError):
    """Malformed ballot or invalid input (empty/duplicate/excess/foreign selections, bad window)."""

    code = "bad_request"
    http_status = 400


class ConflictError(BallotError):
    """Second distinct ballot from one voter, or an invalid lifecycle transition."""

    code = "conflict"
    http_status = 409


class InternalError(BallotError):
    """Storage failure; the surrounding transaction has been rolled back."""

    code = "internal"
    http_status = 500

    def __init__(self, message: str = "internal server error") -> None:
        super().__init__(message)
