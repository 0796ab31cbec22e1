"""Plain-data snapshots of an itinerary's versioned content.

A snapshot holds the itinerary's own fields plus its days and activities.
Collaborators are not versioned. The same shape is written to
``itinerary_versions.snapshot`` and read back by restore, so keys are only
ever added, never renamed; ``schema_version`` marks the layout.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any

from voyages.models import Itinerary
from voyages.schemas import DayInput

SNAPSHOT_SCHEMA_VERSION = 1

# Itinerary columns a restore writes back from a snapshot.
RESTORABLE_FIELDS = (
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
)


def _iso(value: dt.date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _number(value: Decimal | float | int | None) -> float | int | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


def build_snapshot(itinerary: Itinerary) -> dict[str, Any]:
    """Return a JSON-serializable snapshot of *itinerary* and its children.

    Days are ordered by day number and activities by their order, so two
    calls on the same content produce equal output.
    """
    days = sorted(itinerary.days, key=lambda d: d.day_number)
    return {
        "schema_version": SNAPSHOT_SCHEMA_VERSION,
        "id": str(itinerary.id),
        "user_id": str(itinerary.user_id),
        "title": itinerary.title,
        "destination": itinerary.destination or "",
        "start_date": _iso(itinerary.start_date),
        "end_date": _iso(itinerary.end_date),
        "travelers": itinerary.travelers,
        "estimated_cost": _number(itinerary.estimated_cost),
        "travel_pace": itinerary.travel_pace,
        "preferences": list(itinerary.preferences or []),
        "type": str(itinerary.type),
        "status": str(itinerary.status),
        "tour_type": str(itinerary.tour_type),
        "days": [
            {
                "day_number": day.day_number,
                "title": day.title,
                "date": _iso(day.date),
                "activities": [
                    {
                        "time": activity.time,
                        "title": activity.title,
                        "description": activity.description,
                        "location": activity.location,
                        "icon": activity.icon,
                        "order": activity.order,
                    }
                    for activity in sorted(day.activities, key=lambda a: a.order)
                ],
            }
            for day in days
        ],
    }


def snapshot_fields(snapshot: dict[str, Any]) -> dict[str, Any]:
    """Column values to write back when restoring *snapshot*."""
    start = snapshot.get("start_date")
    end = snapshot.get("end_date")
    cost = snapshot.get("estimated_cost")
    return {
        "title": snapshot.get("title"),
        "destination": snapshot.get("destination") or "",
        "start_date": dt.date.fromisoformat(start[:10]) if start else None,
        "end_date": dt.date.fromisoformat(end[:10]) if end else None,
        "travelers": snapshot.get("travelers") or 1,
        "estimated_cost": Decimal(str(cost)) if cost is not None else None,
        "travel_pace": snapshot.get("travel_pace"),
        "preferences": list(snapshot.get("preferences") or []),
        "type": snapshot["type"],
        "status": snapshot["status"],
        "tour_type": snapshot["tour_type"],
    }


def snapshot_days(snapshot: dict[str, Any]) -> list[DayInput]:
    """Day payloads equivalent to the days stored in *snapshot*."""
    return [DayInput.model_validate(day) for day in snapshot.get("days") or []]


def snapshot_content(snapshot: dict[str, Any]) -> dict[str, Any]:
    """The content part of *snapshot*, for comparing two snapshots."""
    return {k: v for k, v in snapshot.items() if k in RESTORABLE_FIELDS or k == "days"}
