"""Collaborator membership shared by the itinerary and booking entry points.

A booking has no collaborator list of its own: booking collaborators are the
collaborators of the booking's itinerary. Both services authorize the caller
and then delegate here.
"""

from __future__ import annotations

import uuid
from typing import Any

from voyages.errors import ConflictError, NotFoundError
from voyages.itineraries.store import fetch_collaborators
from voyages.models import Collaborator, CollaboratorRole


async def add_member(
    conn: Any,
    itinerary_id: uuid.UUID,
    owner_id: uuid.UUID,
    collaborator_id: uuid.UUID,
    *,
    reject_existing: bool = False,
) -> Collaborator:
    """Add *collaborator_id* to the itinerary's collaborators.

    Adding an existing member is a no-op that returns the stored record,
    unless *reject_existing* is set, in which case it raises
    ``COLLABORATOR_EXISTS``.

    Raises
    ------
    ConflictError
        ``CANNOT_ADD_OWNER`` when the owner invites themselves, or
        ``COLLABORATOR_EXISTS`` (see above).
    NotFoundError
        ``USER_NOT_FOUND`` when the invitee does not exist.
    """
    if collaborator_id == owner_id:
        raise ConflictError("CANNOT_ADD_OWNER")

    user_exists = await conn.fetchval("SELECT 1 FROM users WHERE id = $1", collaborator_id)
    if not user_exists:
        raise NotFoundError("USER_NOT_FOUND")

    inserted = await conn.fetchval(
        "INSERT INTO itinerary_collaborators (itinerary_id, user_id, role, invited_by) "
        "VALUES ($1, $2, $3, $4) "
        "ON CONFLICT (itinerary_id, user_id) DO NOTHING RETURNING user_id",
        itinerary_id,
        collaborator_id,
        CollaboratorRole.COLLABORATOR.value,
        owner_id,
    )
    if inserted is None and reject_existing:
        raise ConflictError("COLLABORATOR_EXISTS")

    for member in await fetch_collaborators(conn, itinerary_id):
        if member.user_id == collaborator_id:
            return member
    raise NotFoundError("USER_NOT_FOUND")


async def remove_member(conn: Any, itinerary_id: uuid.UUID, collaborator_id: uuid.UUID) -> int:
    """Remove *collaborator_id*; returns the number of rows removed (0 or 1)."""
    status = await conn.execute(
        "DELETE FROM itinerary_collaborators WHERE itinerary_id = $1 AND user_id = $2",
        itinerary_id,
        collaborator_id,
    )
    return int(status.rsplit(" ", 1)[-1])


async def list_members(conn: Any, itinerary_id: uuid.UUID) -> list[Collaborator]:
    return await fetch_collaborators(conn, itinerary_id)
