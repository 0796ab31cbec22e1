"""Append-only version log of itinerary snapshots.

Rows in ``itinerary_versions`` are never updated or deleted (a trigger
enforces this). :func:`append_version` must run in the same transaction as
the write that produced the version number.
"""

from __future__ import annotations

import json
import uuid
from typing import Any

from voyages.core.telemetry import operation_span
from voyages.errors import ForbiddenError, NotFoundError
from voyages.itineraries.store import is_collaborator
from voyages.models import ItineraryVersion

_SELECT_VERSION = (
    "SELECT v.*, u.first_name, u.last_name "
    "FROM itinerary_versions v LEFT JOIN users u ON u.id = v.created_by "
)


async def append_version(
    conn: Any,
    itinerary_id: uuid.UUID,
    version: int,
    snapshot: dict[str, Any],
    creator_id: uuid.UUID | None,
) -> uuid.UUID:
    """Insert an immutable version row and return its id.

    A duplicate ``(itinerary_id, version)`` violates a unique constraint and
    aborts the surrounding transaction.
    """
    return await conn.fetchval(
        "INSERT INTO itinerary_versions (itinerary_id, version, snapshot, created_by) "
        "VALUES ($1, $2, $3::jsonb, $4) RETURNING id",
        itinerary_id,
        version,
        json.dumps(snapshot),
        creator_id,
    )


async def ensure_can_view(conn: Any, itinerary_id: uuid.UUID, viewer_id: uuid.UUID) -> uuid.UUID:
    """Check *viewer_id* is the owner or a collaborator; return the owner id.

    Raises
    ------
    NotFoundError
        ``ITINERARY_NOT_FOUND`` when the itinerary does not exist.
    ForbiddenError
        ``ITINERARY_FORBIDDEN`` for everyone else.
    """
    owner_id = await conn.fetchval("SELECT user_id FROM itineraries WHERE id = $1", itinerary_id)
    if owner_id is None:
        raise NotFoundError("ITINERARY_NOT_FOUND")
    if owner_id != viewer_id and not await is_collaborator(conn, itinerary_id, viewer_id):
        raise ForbiddenError("ITINERARY_FORBIDDEN")
    return owner_id


@operation_span("itinerary.list_versions")
async def list_versions(
    pool: Any,
    itinerary_id: uuid.UUID,
    viewer_id: uuid.UUID,
) -> list[ItineraryVersion]:
    """Return every version of the itinerary, newest first."""
    async with pool.acquire() as conn:
        await ensure_can_view(conn, itinerary_id, viewer_id)
        rows = await conn.fetch(
            _SELECT_VERSION + "WHERE v.itinerary_id = $1 ORDER BY v.version DESC",
            itinerary_id,
        )
    return [ItineraryVersion.from_row(row) for row in rows]


@operation_span("itinerary.get_version")
async def get_version_detail(
    pool: Any,
    itinerary_id: uuid.UUID,
    version_id: uuid.UUID,
    viewer_id: uuid.UUID,
) -> ItineraryVersion | None:
    """Return one version, or ``None`` if it is absent or belongs to another itinerary."""
    async with pool.acquire() as conn:
        await ensure_can_view(conn, itinerary_id, viewer_id)
        row = await conn.fetchrow(
            _SELECT_VERSION + "WHERE v.id = $1 AND v.itinerary_id = $2",
            version_id,
            itinerary_id,
        )
    return ItineraryVersion.from_row(row) if row is not None else None


async def fetch_version(
    conn: Any, itinerary_id: uuid.UUID, version_id: uuid.UUID
) -> ItineraryVersion | None:
    """Load a version row scoped to *itinerary_id*, without permission checks."""
    row = await conn.fetchrow(
        _SELECT_VERSION + "WHERE v.id = $1 AND v.itinerary_id = $2",
        version_id,
        itinerary_id,
    )
    return ItineraryVersion.from_row(row) if row is not None else None
