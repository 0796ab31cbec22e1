"""Collaborative itinerary editing with optimistic concurrency and version history."""

from voyages.itineraries.service import (
    add_collaborator,
    archive_itinerary,
    confirm_itinerary,
    create_itinerary,
    delete_itinerary,
    get_itinerary,
    list_collaborators,
    list_itineraries,
    remove_collaborator,
    restore_version,
    send_itinerary,
    update_itinerary,
)
from voyages.itineraries.snapshot import build_snapshot
from voyages.itineraries.versions import get_version_detail, list_versions

__all__ = [
    "add_collaborator",
    "archive_itinerary",
    "build_snapshot",
    "confirm_itinerary",
    "create_itinerary",
    "delete_itinerary",
    "get_itinerary",
    "get_version_detail",
    "list_collaborators",
    "list_itineraries",
    "list_versions",
    "remove_collaborator",
    "restore_version",
    "send_itinerary",
    "update_itinerary",
]
