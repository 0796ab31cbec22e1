"""Row-level reads and inserts for the itinerary graph."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from typing import Any

from voyages.models import Activity, Collaborator, Itinerary, ItineraryDay
from voyages.schemas import DayInput

# Columns a caller may set on insert or through the conditional update.
ITINERARY_COLUMNS = frozenset(
    {
        "title",
        "destination",
        "start_date",
        "end_date",
        "travelers",
        "estimated_cost",
        "travel_pace",
        "preferences",
        "type",
        "status",
        "tour_type",
    }
)


def check_columns(fields: dict[str, Any]) -> None:
    unknown = set(fields) - ITINERARY_COLUMNS
    if unknown:
        raise ValueError(f"Unknown itinerary column(s): {', '.join(sorted(unknown))}")


async def fetch_days(conn: Any, itinerary_id: uuid.UUID) -> list[ItineraryDay]:
    """Load an itinerary's days (by day number) with their activities (by order)."""
    day_rows = await conn.fetch(
        "SELECT id, day_number, title, date FROM itinerary_days "
        "WHERE itinerary_id = $1 ORDER BY day_number, id",
        itinerary_id,
    )
    if not day_rows:
        return []

    activity_rows = await conn.fetch(
        "SELECT * FROM activities WHERE itinerary_day_id = ANY($1::uuid[]) "
        "ORDER BY sort_order, time, title, id",
        [row["id"] for row in day_rows],
    )
    by_day: dict[uuid.UUID, list[Activity]] = {}
    for row in activity_rows:
        by_day.setdefault(row["itinerary_day_id"], []).append(Activity.from_row(row))

    return [ItineraryDay.from_row(row, by_day.get(row["id"], [])) for row in day_rows]


async def fetch_collaborators(conn: Any, itinerary_id: uuid.UUID) -> list[Collaborator]:
    """Load collaborators decorated with the user's name and email."""
    rows = await conn.fetch(
        "SELECT c.itinerary_id, c.user_id, c.role, c.invited_by, c.added_at, "
        "u.first_name, u.last_name, u.email "
        "FROM itinerary_collaborators c JOIN users u ON u.id = c.user_id "
        "WHERE c.itinerary_id = $1 ORDER BY c.added_at, c.user_id",
        itinerary_id,
    )
    return [Collaborator.from_row(row) for row in rows]


async def load_itinerary(
    conn: Any,
    itinerary_id: uuid.UUID,
    *,
    with_days: bool = True,
    for_update: bool = False,
) -> Itinerary | None:
    """Load an itinerary with collaborators and, by default, days and activities.

    With *for_update* the itinerary row is locked until the caller's
    transaction ends.
    """
    lock = " FOR UPDATE" if for_update else ""
    row = await conn.fetchrow(f"SELECT * FROM itineraries WHERE id = $1{lock}", itinerary_id)
    if row is None:
        return None
    itinerary = Itinerary.from_row(row)
    itinerary.collaborators = await fetch_collaborators(conn, itinerary_id)
    if with_days:
        itinerary.days = await fetch_days(conn, itinerary_id)
    return itinerary


async def insert_itinerary(conn: Any, user_id: uuid.UUID, fields: dict[str, Any]) -> uuid.UUID:
    """Insert an itinerary row at version 1 and return its id."""
    check_columns(fields)
    columns = ["user_id", *fields]
    placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
    return await conn.fetchval(
        f"INSERT INTO itineraries ({', '.join(columns)}) VALUES ({placeholders}) RETURNING id",
        user_id,
        *(str(v) if k in ("type", "status", "tour_type") else v for k, v in fields.items()),
    )


async def insert_days(conn: Any, itinerary_id: uuid.UUID, days: Iterable[DayInput]) -> None:
    """Insert *days* and their activities under *itinerary_id*."""
    for day in days:
        day_id = await conn.fetchval(
            "INSERT INTO itinerary_days (itinerary_id, day_number, title, date) "
            "VALUES ($1, $2, $3, $4) RETURNING id",
            itinerary_id,
            day.day_number,
            day.title,
            day.date,
        )
        if day.activities:
            await conn.executemany(
                "INSERT INTO activities "
                "(itinerary_day_id, time, title, description, location, icon, sort_order) "
                "VALUES ($1, $2, $3, $4, $5, $6, $7)",
                [
                    (day_id, a.time, a.title, a.description, a.location, a.icon, a.order)
                    for a in day.activities
                ],
            )


async def is_collaborator(conn: Any, itinerary_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    return bool(
        await conn.fetchval(
            "SELECT 1 FROM itinerary_collaborators WHERE itinerary_id = $1 AND user_id = $2",
            itinerary_id,
            user_id,
        )
    )
