"""Booking lifecycle: creation paths, status transitions and booking codes."""

from voyages.bookings.codes import format_booking_code, issue_booking_code, parse_booking_code
from voyages.bookings.service import (
    add_collaborator,
    cancel_booking,
    create_booking,
    delete_booking_draft,
    get_booking,
    list_all_bookings,
    list_collaborators,
    list_shared_bookings,
    list_user_bookings,
    remove_collaborator,
    submit_booking,
    update_booking_itinerary,
    update_status,
)
from voyages.bookings.states import allowed_targets, is_allowed, validate_transition

__all__ = [
    "add_collaborator",
    "allowed_targets",
    "cancel_booking",
    "create_booking",
    "delete_booking_draft",
    "format_booking_code",
    "get_booking",
    "is_allowed",
    "issue_booking_code",
    "list_all_bookings",
    "list_collaborators",
    "list_shared_bookings",
    "list_user_bookings",
    "parse_booking_code",
    "remove_collaborator",
    "submit_booking",
    "update_booking_itinerary",
    "update_status",
    "validate_transition",
]
