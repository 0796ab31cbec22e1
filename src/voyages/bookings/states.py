"""Booking status state machine."""

from __future__ import annotations

from voyages.audit import AuditAction
from voyages.errors import InvalidTransitionError
from voyages.models import BookingStatus

_VALID_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.DRAFT: frozenset({BookingStatus.PENDING, BookingStatus.CANCELLED}),
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.REJECTED, BookingStatus.CANCELLED}
    ),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.REJECTED: frozenset({BookingStatus.PENDING, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in _VALID_TRANSITIONS.items() if not targets)

# Statuses in which an admin decision (or the owner's cancel) has settled the booking.
RESOLVED_STATUSES = frozenset(
    {
        BookingStatus.CONFIRMED,
        BookingStatus.REJECTED,
        BookingStatus.CANCELLED,
        BookingStatus.COMPLETED,
    }
)

OWNER_EDITABLE_STATUSES = frozenset(
    {BookingStatus.DRAFT, BookingStatus.PENDING, BookingStatus.REJECTED}
)
COLLABORATOR_EDITABLE_STATUSES = frozenset({BookingStatus.DRAFT})
SUBMITTABLE_STATUSES = frozenset({BookingStatus.DRAFT, BookingStatus.REJECTED})


def allowed_targets(current: BookingStatus) -> frozenset[BookingStatus]:
    """Statuses reachable from *current* in one step (excluding itself)."""
    return _VALID_TRANSITIONS[current]


def is_allowed(current: BookingStatus, target: BookingStatus) -> bool:
    """Same-state is always allowed as a no-op."""
    return current == target or target in _VALID_TRANSITIONS[current]


def validate_transition(current: BookingStatus, target: BookingStatus) -> None:
    """Validate that a status transition is allowed.

    Raises InvalidTransitionError if the transition is not in the valid set.
    """
    if not is_allowed(current, target):
        raise InvalidTransitionError(current.value, target.value)


def audit_action_for(target: BookingStatus) -> AuditAction:
    """Audit tag recorded when an admin moves a booking to *target*."""
    return {
        BookingStatus.CONFIRMED: AuditAction.BOOKING_APPROVED,
        BookingStatus.REJECTED: AuditAction.BOOKING_REJECTED,
        BookingStatus.COMPLETED: AuditAction.BOOKING_COMPLETED,
        BookingStatus.CANCELLED: AuditAction.BOOKING_CANCELLED,
    }.get(target, AuditAction.BOOKING_STATUS_UPDATED)
