"""Itinerary lifecycle operations.

Versioned writes (update and restore) go through
:func:`~voyages.itineraries.concurrency.apply_versioned_update`; the
remaining operations change status fields that are not versioned.

Itinerary lifecycle::

    status:            DRAFT -> PENDING / APPROVED / REJECTED (owner edits)
                       any   -> ARCHIVED (owner, archive())
    requested_status:  None  -> SENT (owner, send()) -> CONFIRMED (confirm())

Collaborators may edit only while ``status`` is DRAFT.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from voyages.audit import AuditAction, EntityType, log_audit
from voyages.core.telemetry import operation_span
from voyages.errors import ConflictError, ForbiddenError, NotFoundError, PayloadError
from voyages.itineraries import collaborators as members
from voyages.itineraries.concurrency import apply_versioned_update
from voyages.itineraries.snapshot import build_snapshot, snapshot_days, snapshot_fields
from voyages.itineraries.store import insert_days, insert_itinerary, load_itinerary
from voyages.itineraries.versions import append_version, ensure_can_view, fetch_version
from voyages.models import (
    Collaborator,
    Itinerary,
    ItineraryStatus,
    Page,
    RequestStatus,
    UserRole,
)
from voyages.schemas import DayInput, ItineraryInput, ItineraryUpdate

logger = logging.getLogger(__name__)

# Columns that reject NULL; an explicit None in an update leaves them as-is.
_NOT_NULL_FIELDS = frozenset(
    {"destination", "travelers", "type", "tour_type", "status", "preferences"}
)


# ---------------------------------------------------------------------------
# Helpers shared with the booking service
# ---------------------------------------------------------------------------


async def create_itinerary_in_tx(
    conn: Any,
    user_id: uuid.UUID,
    fields: dict[str, Any],
    days: list[DayInput],
) -> Itinerary:
    """Insert an itinerary at version 1 with its days and its first snapshot.

    Must run inside the caller's transaction.
    """
    itinerary_id = await insert_itinerary(conn, user_id, fields)
    await insert_days(conn, itinerary_id, days)
    itinerary = await load_itinerary(conn, itinerary_id)
    if itinerary is None:
        raise NotFoundError("ITINERARY_NOT_FOUND")
    await append_version(conn, itinerary_id, itinerary.version, build_snapshot(itinerary), user_id)
    return itinerary


async def _require(
    conn: Any,
    itinerary_id: uuid.UUID,
    *,
    with_days: bool = False,
    for_update: bool = False,
) -> Itinerary:
    itinerary = await load_itinerary(conn, itinerary_id, with_days=with_days, for_update=for_update)
    if itinerary is None:
        raise NotFoundError("ITINERARY_NOT_FOUND")
    return itinerary


def _require_owner(itinerary: Itinerary, user_id: uuid.UUID) -> None:
    if not itinerary.is_owner(user_id):
        raise ForbiddenError("ITINERARY_FORBIDDEN")


def require_not_archived(itinerary: Itinerary) -> None:
    if itinerary.status == ItineraryStatus.ARCHIVED:
        raise ConflictError("ITINERARY_ARCHIVED")


def _update_fields(itinerary: Itinerary, payload: ItineraryUpdate) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for name in payload.model_fields_set - {"expected_version", "days"}:
        value = getattr(payload, name)
        if value is None and name in _NOT_NULL_FIELDS:
            continue
        fields[name] = value

    start = fields.get("start_date", itinerary.start_date)
    end = fields.get("end_date", itinerary.end_date)
    if start and end and end < start:
        raise PayloadError("INVALID_DATE_RANGE", "end_date must not precede start_date")
    return fields


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


@operation_span("itinerary.create")
async def create_itinerary(pool: Any, user_id: uuid.UUID, payload: ItineraryInput) -> Itinerary:
    """Create a DRAFT itinerary at version 1 with an initial snapshot."""
    fields = payload.model_dump(exclude={"days"})
    fields["status"] = ItineraryStatus.DRAFT
    async with pool.acquire() as conn:
        async with conn.transaction():
            itinerary = await create_itinerary_in_tx(conn, user_id, fields, payload.days)
            await log_audit(
                conn,
                AuditAction.ITINERARY_CREATED,
                actor_user_id=user_id,
                entity_type=EntityType.ITINERARY,
                entity_id=itinerary.id,
                metadata={"destination": itinerary.destination},
                message=f"Created itinerary {itinerary.id}",
            )
    return itinerary


@operation_span("itinerary.get")
async def get_itinerary(
    pool: Any,
    itinerary_id: uuid.UUID,
    viewer_id: uuid.UUID | None = None,
) -> Itinerary:
    """Load an itinerary graph; when *viewer_id* is given it must be owner or collaborator."""
    async with pool.acquire() as conn:
        itinerary = await _require(conn, itinerary_id, with_days=True)
    if viewer_id is not None and not (
        itinerary.is_owner(viewer_id) or itinerary.is_collaborator(viewer_id)
    ):
        raise ForbiddenError("ITINERARY_FORBIDDEN")
    return itinerary


@operation_span("itinerary.list")
async def list_itineraries(
    pool: Any,
    user_id: uuid.UUID,
    *,
    limit: int = 10,
    offset: int = 0,
) -> Page:
    """Return the user's own itineraries, newest first."""
    async with pool.acquire() as conn:
        total = await conn.fetchval("SELECT count(*) FROM itineraries WHERE user_id = $1", user_id)
        ids = await conn.fetch(
            "SELECT id FROM itineraries WHERE user_id = $1 "
            "ORDER BY created_at DESC, id LIMIT $2 OFFSET $3",
            user_id,
            limit,
            offset,
        )
        items = [await load_itinerary(conn, row["id"]) for row in ids]
    return Page(items=[i for i in items if i is not None], total=total, limit=limit, offset=offset)


# ---------------------------------------------------------------------------
# Versioned writes
# ---------------------------------------------------------------------------


@operation_span("itinerary.update")
async def update_itinerary(
    pool: Any,
    itinerary_id: uuid.UUID,
    user_id: uuid.UUID,
    payload: ItineraryUpdate,
) -> Itinerary:
    """Apply a partial update guarded by ``payload.expected_version``.

    The owner may always edit; a collaborator only while the itinerary is
    DRAFT, and never its status. Permission is checked before the version.

    Raises
    ------
    NotFoundError
        ``ITINERARY_NOT_FOUND``.
    ForbiddenError
        ``ITINERARY_FORBIDDEN`` for non-members and for collaborators on a
        non-DRAFT itinerary.
    ConflictError
        ``ITINERARY_ARCHIVED`` once the itinerary is archived.
    VersionConflictError
        The stored version is no longer ``payload.expected_version``.
    """
    async with pool.acquire() as conn:
        async with conn.transaction():
            existing = await _require(conn, itinerary_id, for_update=True)
            is_owner = existing.is_owner(user_id)
            if not is_owner:
                if not existing.is_collaborator(user_id):
                    raise ForbiddenError("ITINERARY_FORBIDDEN")
                if existing.status != ItineraryStatus.DRAFT:
                    raise ForbiddenError(
                        "ITINERARY_FORBIDDEN", "Collaborators may only edit drafts"
                    )
                if payload.status is not None and payload.status != existing.status:
                    raise ForbiddenError("ITINERARY_FORBIDDEN", "Only the owner may change status")
            require_not_archived(existing)

            fields = _update_fields(existing, payload)
            updated = await apply_versioned_update(
                conn,
                itinerary_id,
                payload.expected_version,
                fields,
                payload.days,
                user_id,
            )
            await log_audit(
                conn,
                AuditAction.ITINERARY_UPDATED,
                actor_user_id=user_id,
                entity_type=EntityType.ITINERARY,
                entity_id=itinerary_id,
                metadata={
                    "destination": updated.destination,
                    "travelers": updated.travelers,
                    "version": updated.version,
                },
                message=f"Updated itinerary {itinerary_id}",
            )
    return updated


@operation_span("itinerary.restore_version")
async def restore_version(
    pool: Any,
    itinerary_id: uuid.UUID,
    version_id: uuid.UUID,
    user_id: uuid.UUID,
    role: UserRole | str,
    expected_version: int,
) -> Itinerary:
    """Re-apply a stored snapshot as a new version.

    Restore is itself a versioned write: the itinerary moves to
    ``expected_version + 1`` and a new snapshot is appended. Only the owner
    or an admin may restore.

    Raises
    ------
    NotFoundError
        ``ITINERARY_NOT_FOUND`` or ``ITINERARY_VERSION_NOT_FOUND`` (also when
        the version belongs to another itinerary).
    ForbiddenError
        ``ITINERARY_FORBIDDEN``.
    ConflictError
        ``ITINERARY_ARCHIVED``.
    VersionConflictError
        The stored version is no longer *expected_version*.
    """
    async with pool.acquire() as conn:
        async with conn.transaction():
            existing = await _require(conn, itinerary_id, for_update=True)
            if not existing.is_owner(user_id) and UserRole(role) != UserRole.ADMIN:
                raise ForbiddenError("ITINERARY_FORBIDDEN")
            require_not_archived(existing)

            version = await fetch_version(conn, itinerary_id, version_id)
            if version is None:
                raise NotFoundError("ITINERARY_VERSION_NOT_FOUND")

            restored = await apply_versioned_update(
                conn,
                itinerary_id,
                expected_version,
                snapshot_fields(version.snapshot),
                snapshot_days(version.snapshot),
                user_id,
            )
            await log_audit(
                conn,
                AuditAction.ITINERARY_RESTORED,
                actor_user_id=user_id,
                entity_type=EntityType.ITINERARY,
                entity_id=itinerary_id,
                metadata={
                    "restored_from_version": version.version,
                    "version": restored.version,
                },
                message=f"Restored itinerary {itinerary_id} to version {version.version}",
            )
    logger.info(
        "Restored itinerary %s from version %d as version %d",
        itinerary_id,
        version.version,
        restored.version,
    )
    return restored


# ---------------------------------------------------------------------------
# Unversioned lifecycle transitions
# ---------------------------------------------------------------------------


async def _set_lifecycle(
    pool: Any,
    itinerary_id: uuid.UUID,
    user_id: uuid.UUID,
    *,
    owner_only: bool,
    assignments: str,
    args: tuple[Any, ...],
    action: AuditAction,
) -> Itinerary:
    async with pool.acquire() as conn:
        async with conn.transaction():
            existing = await _require(conn, itinerary_id, for_update=True)
            if owner_only:
                _require_owner(existing, user_id)
            elif not (existing.is_owner(user_id) or existing.is_collaborator(user_id)):
                raise ForbiddenError("ITINERARY_FORBIDDEN")
            if action != AuditAction.ITINERARY_ARCHIVED:
                require_not_archived(existing)
            elif existing.status == ItineraryStatus.ARCHIVED:
                return await _require(conn, itinerary_id, with_days=True)

            await conn.execute(
                f"UPDATE itineraries SET {assignments}, updated_at = now() "
                f"WHERE id = ${len(args) + 1}",
                *args,
                itinerary_id,
            )
            await log_audit(
                conn,
                action,
                actor_user_id=user_id,
                entity_type=EntityType.ITINERARY,
                entity_id=itinerary_id,
                message=f"{action.value.split('_', 1)[1].capitalize()} itinerary {itinerary_id}",
            )
            return await _require(conn, itinerary_id, with_days=True)


@operation_span("itinerary.archive")
async def archive_itinerary(pool: Any, itinerary_id: uuid.UUID, user_id: uuid.UUID) -> Itinerary:
    """Soft-delete: owner-only, sets status ARCHIVED. Archiving twice is a no-op."""
    return await _set_lifecycle(
        pool,
        itinerary_id,
        user_id,
        owner_only=True,
        assignments="status = $1",
        args=(ItineraryStatus.ARCHIVED.value,),
        action=AuditAction.ITINERARY_ARCHIVED,
    )


@operation_span("itinerary.send")
async def send_itinerary(pool: Any, itinerary_id: uuid.UUID, user_id: uuid.UUID) -> Itinerary:
    """Owner dispatches the offer: requested status SENT plus a sent timestamp."""
    return await _set_lifecycle(
        pool,
        itinerary_id,
        user_id,
        owner_only=True,
        assignments="requested_status = $1, sent_status = $2, sent_at = $3",
        args=(RequestStatus.SENT.value, "Sent", datetime.now(UTC)),
        action=AuditAction.ITINERARY_SENT,
    )


@operation_span("itinerary.confirm")
async def confirm_itinerary(pool: Any, itinerary_id: uuid.UUID, user_id: uuid.UUID) -> Itinerary:
    """Owner or collaborator accepts the offer: requested status CONFIRMED."""
    return await _set_lifecycle(
        pool,
        itinerary_id,
        user_id,
        owner_only=False,
        assignments="requested_status = $1, confirmed_at = $2",
        args=(RequestStatus.CONFIRMED.value, datetime.now(UTC)),
        action=AuditAction.ITINERARY_CONFIRMED,
    )


@operation_span("itinerary.delete")
async def delete_itinerary(pool: Any, itinerary_id: uuid.UUID, user_id: uuid.UUID) -> None:
    """Legacy hard delete; owner-only and refused while a booking references it."""
    async with pool.acquire() as conn:
        async with conn.transaction():
            existing = await _require(conn, itinerary_id, for_update=True)
            _require_owner(existing, user_id)
            booked = await conn.fetchval(
                "SELECT 1 FROM bookings WHERE itinerary_id = $1 LIMIT 1", itinerary_id
            )
            if booked:
                raise ConflictError("ITINERARY_HAS_BOOKINGS")
            await conn.execute("DELETE FROM itineraries WHERE id = $1", itinerary_id)
            await log_audit(
                conn,
                AuditAction.ITINERARY_DELETED,
                actor_user_id=user_id,
                entity_type=EntityType.ITINERARY,
                entity_id=itinerary_id,
                message=f"Deleted itinerary {itinerary_id}",
            )


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@operation_span("itinerary.add_collaborator")
async def add_collaborator(
    pool: Any,
    itinerary_id: uuid.UUID,
    owner_id: uuid.UUID,
    collaborator_id: uuid.UUID,
) -> Collaborator:
    """Owner-only idempotent invite; the owner cannot invite themselves."""
    async with pool.acquire() as conn:
        async with conn.transaction():
            _require_owner(await _require(conn, itinerary_id), owner_id)
            member = await members.add_member(conn, itinerary_id, owner_id, collaborator_id)
            await log_audit(
                conn,
                AuditAction.ITINERARY_COLLABORATOR_ADDED,
                actor_user_id=owner_id,
                entity_type=EntityType.ITINERARY,
                entity_id=itinerary_id,
                metadata={"collaborator_id": collaborator_id},
                message=f"Added collaborator {collaborator_id} to itinerary {itinerary_id}",
            )
    return member


@operation_span("itinerary.remove_collaborator")
async def remove_collaborator(
    pool: Any,
    itinerary_id: uuid.UUID,
    owner_id: uuid.UUID,
    collaborator_id: uuid.UUID,
) -> int:
    """Owner-only removal; removing a non-member is a no-op returning 0."""
    async with pool.acquire() as conn:
        async with conn.transaction():
            _require_owner(await _require(conn, itinerary_id), owner_id)
            removed = await members.remove_member(conn, itinerary_id, collaborator_id)
            await log_audit(
                conn,
                AuditAction.ITINERARY_COLLABORATOR_REMOVED,
                actor_user_id=owner_id,
                entity_type=EntityType.ITINERARY,
                entity_id=itinerary_id,
                metadata={"collaborator_id": collaborator_id, "removed": removed},
                message=f"Removed collaborator {collaborator_id} from itinerary {itinerary_id}",
            )
    return removed


@operation_span("itinerary.list_collaborators")
async def list_collaborators(
    pool: Any, itinerary_id: uuid.UUID, viewer_id: uuid.UUID
) -> list[Collaborator]:
    """Owner or collaborator may view the collaborator list."""
    async with pool.acquire() as conn:
        await ensure_can_view(conn, itinerary_id, viewer_id)
        return await members.list_members(conn, itinerary_id)
