"""Tagged error types raised by the itinerary and booking core.

Every domain failure carries a stable string ``code`` (for example
``ITINERARY_VERSION_CONFLICT``) and a ``kind`` that the calling layer maps to
a transport status with :func:`error_status`.
"""

from __future__ import annotations

import enum


class ErrorKind(enum.StrEnum):
    """Coarse error category, one per transport status."""

    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    VALIDATION = "validation"


_KIND_STATUS: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION: 400,
}


class VoyagesError(Exception):
    """Base class for expected, caller-recoverable domain failures."""

    kind: ErrorKind = ErrorKind.CONFLICT

    def __init__(self, code: str, message: str | None = None) -> None:
        self.code = code
        super().__init__(message or code)


class NotFoundError(VoyagesError):
    """Entity absent, or outside the caller's visible scope."""

    kind = ErrorKind.NOT_FOUND


class ForbiddenError(VoyagesError):
    """Caller lacks owner, collaborator, or admin standing for the action."""

    kind = ErrorKind.FORBIDDEN


class ConflictError(VoyagesError):
    """Requested action is not allowed in the entity's current state."""

    kind = ErrorKind.CONFLICT


class VersionConflictError(ConflictError):
    """The conditional itinerary update matched no row.

    Another writer advanced ``version`` after the caller last read it; the
    caller must re-fetch and retry.
    """

    def __init__(self, itinerary_id: object, expected_version: int) -> None:
        self.itinerary_id = itinerary_id
        self.expected_version = expected_version
        super().__init__(
            "ITINERARY_VERSION_CONFLICT",
            f"Itinerary {itinerary_id} is no longer at version {expected_version}",
        )


class InvalidTransitionError(ConflictError):
    """Raised when a booking status transition is not in the allowed table."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(
            "INVALID_STATUS_TRANSITION",
            f"Cannot transition booking from '{current}' to '{target}'",
        )


class PayloadError(VoyagesError):
    """Payload is well-formed JSON but fails a domain validation rule."""

    kind = ErrorKind.VALIDATION


def error_status(exc: Exception) -> int:
    """Return the HTTP-equivalent status for *exc*.

    Domain errors map through their ``kind``; anything else is an internal
    failure (500).
    """
    if isinstance(exc, VoyagesError):
        return _KIND_STATUS[exc.kind]
    return 500
