"""Append-only audit trail for itinerary and booking mutations.

Entries are written on the caller's connection so they commit or roll back
together with the mutation they describe.
"""

from __future__ import annotations

import enum
import json
import uuid
from typing import Any

from voyages.models import Page


class AuditAction(enum.StrEnum):
    """Canonical action tags stored in ``activity_logs.action``."""

    ITINERARY_CREATED = "ITINERARY_CREATED"
    ITINERARY_UPDATED = "ITINERARY_UPDATED"
    ITINERARY_RESTORED = "ITINERARY_RESTORED"
    ITINERARY_ARCHIVED = "ITINERARY_ARCHIVED"
    ITINERARY_SENT = "ITINERARY_SENT"
    ITINERARY_CONFIRMED = "ITINERARY_CONFIRMED"
    ITINERARY_DELETED = "ITINERARY_DELETED"
    ITINERARY_COLLABORATOR_ADDED = "ITINERARY_COLLABORATOR_ADDED"
    ITINERARY_COLLABORATOR_REMOVED = "ITINERARY_COLLABORATOR_REMOVED"
    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_UPDATED = "BOOKING_UPDATED"
    BOOKING_SUBMITTED = "BOOKING_SUBMITTED"
    BOOKING_APPROVED = "BOOKING_APPROVED"
    BOOKING_REJECTED = "BOOKING_REJECTED"
    BOOKING_COMPLETED = "BOOKING_COMPLETED"
    BOOKING_STATUS_UPDATED = "BOOKING_STATUS_UPDATED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    BOOKING_DELETED = "BOOKING_DELETED"
    BOOKING_COLLABORATOR_ADDED = "BOOKING_COLLABORATOR_ADDED"
    BOOKING_COLLABORATOR_REMOVED = "BOOKING_COLLABORATOR_REMOVED"


class EntityType(enum.StrEnum):
    ITINERARY = "ITINERARY"
    BOOKING = "BOOKING"


def sanitize_metadata(metadata: dict[str, Any] | None) -> dict[str, str | int | float | bool]:
    """Reduce *metadata* to a flat map of scalar values.

    Enum members collapse to their value; UUIDs to their string form.
    Everything else that is not a str/int/float/bool (``None`` included) is
    dropped.
    """
    if not metadata:
        return {}
    clean: dict[str, str | int | float | bool] = {}
    for key, value in metadata.items():
        if isinstance(value, enum.Enum):
            value = value.value
        elif isinstance(value, uuid.UUID):
            value = str(value)
        if isinstance(value, bool | int | float | str):
            clean[str(key)] = value
    return clean


async def log_audit(
    conn: Any,
    action: AuditAction | str,
    *,
    actor_user_id: uuid.UUID | None,
    entity_type: EntityType | str,
    entity_id: uuid.UUID | str,
    metadata: dict[str, Any] | None = None,
    message: str | None = None,
) -> None:
    """Insert one ``activity_logs`` row on *conn*.

    Parameters
    ----------
    conn:
        Connection (usually inside an open transaction) or pool.
    action:
        Action tag, normally an :class:`AuditAction`.
    actor_user_id:
        User who performed the mutation, ``None`` for system actions.
    entity_type, entity_id:
        What was mutated.
    metadata:
        Extra context; passed through :func:`sanitize_metadata`.
    message:
        Short developer-facing description.
    """
    await conn.execute(
        "INSERT INTO activity_logs "
        "(actor_user_id, action, entity_type, entity_id, metadata, message) "
        "VALUES ($1, $2, $3, $4, $5::jsonb, $6)",
        actor_user_id,
        str(action),
        str(entity_type),
        str(entity_id),
        json.dumps(sanitize_metadata(metadata)),
        message,
    )


def _entry_to_dict(row: Any) -> dict[str, Any]:
    meta = row["metadata"]
    return {
        "id": str(row["id"]),
        "actor_user_id": str(row["actor_user_id"]) if row["actor_user_id"] else None,
        "action": row["action"],
        "entity_type": row["entity_type"],
        "entity_id": row["entity_id"],
        "metadata": json.loads(meta) if isinstance(meta, str) else (meta or {}),
        "message": row["message"],
        "created_at": row["created_at"].isoformat(),
    }


async def list_audit(
    pool: Any,
    *,
    entity_type: EntityType | str | None = None,
    entity_id: uuid.UUID | str | None = None,
    actor_id: uuid.UUID | None = None,
    limit: int = 50,
    offset: int = 0,
) -> Page:
    """Return audit entries newest-first, optionally filtered."""
    conditions: list[str] = []
    args: list[Any] = []
    idx = 1

    if entity_type is not None:
        conditions.append(f"entity_type = ${idx}")
        args.append(str(entity_type))
        idx += 1
    if entity_id is not None:
        conditions.append(f"entity_id = ${idx}")
        args.append(str(entity_id))
        idx += 1
    if actor_id is not None:
        conditions.append(f"actor_user_id = ${idx}")
        args.append(actor_id)
        idx += 1

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    total = await pool.fetchval(f"SELECT count(*) FROM activity_logs {where}", *args)
    rows = await pool.fetch(
        f"SELECT * FROM activity_logs {where} "
        f"ORDER BY created_at DESC, id DESC LIMIT ${idx} OFFSET ${idx + 1}",
        *args,
        limit,
        offset,
    )
    return Page(items=[_entry_to_dict(r) for r in rows], total=total, limit=limit, offset=offset)
