"""Booking lifecycle operations.

Bookings consume an itinerary: creation either builds a fresh itinerary
(smart trip, tour package, inline payload) or links an existing one, and
booking-scoped edits go through the itinerary's optimistic version check.
Status changes are validated against :mod:`voyages.bookings.states`.

Every mutation writes its audit entry in the same transaction. Owner
notifications are written inside the transaction under a savepoint; admin
fan-out happens after commit. Neither can fail the mutation.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta
from typing import Any

from voyages.audit import AuditAction, EntityType, log_audit
from voyages.bookings.codes import issue_booking_code
from voyages.bookings.states import (
    COLLABORATOR_EDITABLE_STATUSES,
    OWNER_EDITABLE_STATUSES,
    RESOLVED_STATUSES,
    SUBMITTABLE_STATUSES,
    TERMINAL_STATUSES,
    audit_action_for,
    validate_transition,
)
from voyages.core.telemetry import operation_span
from voyages.errors import ConflictError, ForbiddenError, NotFoundError, PayloadError
from voyages.itineraries import collaborators as members
from voyages.itineraries.concurrency import apply_versioned_update
from voyages.itineraries.service import create_itinerary_in_tx, require_not_archived
from voyages.itineraries.store import is_collaborator, load_itinerary
from voyages.models import (
    Booking,
    BookingStatus,
    BookingType,
    Collaborator,
    Itinerary,
    ItineraryStatus,
    ItineraryType,
    Page,
    RequestStatus,
    TourType,
    UserRole,
)
from voyages.notifications import (
    booking_notification,
    notify_admins_isolated,
    notify_isolated,
)
from voyages.schemas import (
    ActivityInput,
    CreateBookingRequest,
    DayInput,
    StatusUpdateRequest,
    UpdateBookingItineraryRequest,
)

logger = logging.getLogger(__name__)

OWNED = "OWNED"
COLLABORATED = "COLLABORATED"

_SORT_ORDERS = {
    "created_at:desc": "b.created_at DESC",
    "created_at:asc": "b.created_at ASC",
    "start_date:desc": "b.start_date DESC NULLS LAST",
    "start_date:asc": "b.start_date ASC NULLS LAST",
}


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------


async def _fetch_booking(
    conn: Any,
    booking_id: uuid.UUID,
    *,
    owner_id: uuid.UUID | None = None,
    for_update: bool = False,
) -> Booking:
    """Load a booking, optionally scoped to its owner; raises ``BOOKING_NOT_FOUND``."""
    query = "SELECT * FROM bookings WHERE id = $1"
    args: list[Any] = [booking_id]
    if owner_id is not None:
        query += " AND user_id = $2"
        args.append(owner_id)
    if for_update:
        query += " FOR UPDATE"
    row = await conn.fetchrow(query, *args)
    if row is None:
        raise NotFoundError("BOOKING_NOT_FOUND")
    return Booking.from_row(row)


async def _attach_itinerary(conn: Any, booking: Booking) -> Booking:
    booking.itinerary = await load_itinerary(conn, booking.itinerary_id)
    return booking


async def _insert_booking(
    conn: Any,
    *,
    user_id: uuid.UUID,
    itinerary: Itinerary,
    payload: CreateBookingRequest,
    booking_type: BookingType,
    tour_type: TourType,
    start_date: date | None,
    end_date: date | None,
    travelers: int,
) -> Booking:
    code = await issue_booking_code(conn)
    row = await conn.fetchrow(
        "INSERT INTO bookings (booking_code, user_id, itinerary_id, destination, start_date, "
        "end_date, travelers, total_price, user_budget, type, tour_type, status, "
        "customer_name, customer_email, customer_mobile) "
        "VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15) "
        "RETURNING *",
        code,
        user_id,
        itinerary.id,
        itinerary.destination,
        start_date,
        end_date,
        travelers,
        payload.total_price,
        payload.user_budget,
        booking_type.value,
        tour_type.value,
        BookingStatus.DRAFT.value,
        payload.customer_name,
        payload.customer_email,
        payload.customer_mobile,
    )
    booking = Booking.from_row(row)
    booking.itinerary = itinerary
    booking.ownership = OWNED
    return booking


def _booking_type_for(itinerary_type: ItineraryType) -> BookingType:
    if itinerary_type == ItineraryType.SMART_TRIP:
        return BookingType.CUSTOMIZED
    return BookingType(itinerary_type.value)


# ---------------------------------------------------------------------------
# Creation paths
# ---------------------------------------------------------------------------


def _smart_trip_days(payload: CreateBookingRequest) -> list[DayInput]:
    days = sorted(payload.itinerary_data or [], key=lambda d: d.day)
    return [
        DayInput(
            day_number=day.day,
            title=day.title,
            activities=[
                ActivityInput(
                    time=a.time,
                    title=a.title,
                    description=a.description,
                    location=a.location,
                    icon=a.icon_key,
                    order=idx,
                )
                for idx, a in enumerate(day.activities)
            ],
        )
        for day in days
    ]


async def _create_smart_trip(
    conn: Any, user_id: uuid.UUID, payload: CreateBookingRequest
) -> tuple[Booking, dict[str, Any]]:
    destination = (payload.destination or "").strip()
    itinerary = await create_itinerary_in_tx(
        conn,
        user_id,
        {
            "title": f"Smart Trip: {destination}" if destination else "Smart Trip",
            "destination": destination,
            "start_date": payload.start_date,
            "end_date": payload.end_date,
            "travelers": payload.travelers or 1,
            "estimated_cost": payload.budget,
            "travel_pace": payload.travel_pace,
            "preferences": payload.preferences or [],
            "type": ItineraryType.SMART_TRIP,
            "status": ItineraryStatus.DRAFT,
            "tour_type": payload.tour_type or TourType.PRIVATE,
        },
        _smart_trip_days(payload),
    )
    booking = await _insert_booking(
        conn,
        user_id=user_id,
        itinerary=itinerary,
        payload=payload,
        booking_type=payload.type or BookingType.CUSTOMIZED,
        tour_type=payload.tour_type or TourType.PRIVATE,
        start_date=payload.start_date,
        end_date=payload.end_date,
        travelers=payload.travelers or 1,
    )
    return booking, {}


async def _tour_package_days(
    conn: Any, tour_package_id: uuid.UUID, start_date: date | None
) -> list[DayInput]:
    day_rows = await conn.fetch(
        "SELECT id, day_number, title FROM tour_package_days "
        "WHERE tour_package_id = $1 ORDER BY day_number",
        tour_package_id,
    )
    activity_rows = await conn.fetch(
        "SELECT * FROM tour_package_activities WHERE tour_package_day_id = ANY($1::uuid[]) "
        "ORDER BY sort_order",
        [row["id"] for row in day_rows],
    )
    by_day: dict[uuid.UUID, list[ActivityInput]] = {}
    for row in activity_rows:
        by_day.setdefault(row["tour_package_day_id"], []).append(
            ActivityInput(
                time=row["time"],
                title=row["title"],
                description=row["description"],
                location=row["location"],
                icon=row["icon"],
                order=row["sort_order"],
            )
        )
    return [
        DayInput(
            day_number=row["day_number"],
            title=row["title"],
            date=start_date + timedelta(days=index) if start_date else None,
            activities=by_day.get(row["id"], []),
        )
        for index, row in enumerate(day_rows)
    ]


async def _create_from_tour_package(
    conn: Any, user_id: uuid.UUID, payload: CreateBookingRequest
) -> tuple[Booking, dict[str, Any]]:
    package = await conn.fetchrow(
        "SELECT id, title, destination, price FROM tour_packages WHERE id = $1",
        payload.tour_package_id,
    )
    if package is None:
        raise NotFoundError("TOUR_PACKAGE_NOT_FOUND")

    itinerary = await create_itinerary_in_tx(
        conn,
        user_id,
        {
            "title": package["title"],
            "destination": package["destination"],
            "start_date": payload.start_date,
            "end_date": payload.end_date,
            "travelers": payload.travelers or 1,
            "estimated_cost": package["price"],
            "type": ItineraryType.STANDARD,
            "status": ItineraryStatus.DRAFT,
            "tour_type": payload.tour_type or TourType.PRIVATE,
        },
        await _tour_package_days(conn, package["id"], payload.start_date),
    )
    booking = await _insert_booking(
        conn,
        user_id=user_id,
        itinerary=itinerary,
        payload=payload,
        booking_type=BookingType.STANDARD,
        tour_type=payload.tour_type or TourType.PRIVATE,
        start_date=payload.start_date,
        end_date=payload.end_date,
        travelers=payload.travelers or 1,
    )
    return booking, {"tour_package_id": package["id"]}


async def _create_from_itinerary(
    conn: Any, user_id: uuid.UUID, role: UserRole, payload: CreateBookingRequest
) -> tuple[Booking, dict[str, Any]]:
    if payload.itinerary_id is None and payload.itinerary is not None:
        inline = payload.itinerary
        fields = inline.model_dump(exclude={"days"})
        fields["status"] = ItineraryStatus.DRAFT
        if "tour_type" not in inline.model_fields_set and payload.tour_type is not None:
            fields["tour_type"] = payload.tour_type
        itinerary = await create_itinerary_in_tx(conn, user_id, fields, inline.days)
    else:
        itinerary = await load_itinerary(conn, payload.itinerary_id, for_update=True)
        if itinerary is None:
            raise NotFoundError("ITINERARY_NOT_FOUND")
        if not itinerary.is_owner(user_id) and role != UserRole.ADMIN:
            raise ForbiddenError("ITINERARY_FORBIDDEN")
        require_not_archived(itinerary)
        if (
            itinerary.type == ItineraryType.REQUESTED
            and itinerary.requested_status != RequestStatus.CONFIRMED
        ):
            raise ConflictError("ITINERARY_NOT_CONFIRMED")

    booking = await _insert_booking(
        conn,
        user_id=user_id,
        itinerary=itinerary,
        payload=payload,
        booking_type=payload.type or _booking_type_for(itinerary.type),
        tour_type=payload.tour_type or itinerary.tour_type,
        start_date=itinerary.start_date,
        end_date=itinerary.end_date,
        travelers=itinerary.travelers,
    )
    return booking, {"itinerary_id": itinerary.id}


@operation_span("booking.create")
async def create_booking(
    pool: Any,
    user_id: uuid.UUID,
    role: UserRole | str,
    payload: CreateBookingRequest,
) -> Booking:
    """Create a DRAFT booking through one of the three creation paths.

    Raises
    ------
    NotFoundError
        ``TOUR_PACKAGE_NOT_FOUND`` or ``ITINERARY_NOT_FOUND``.
    ForbiddenError
        ``ITINERARY_FORBIDDEN`` when linking someone else's itinerary as a
        non-admin.
    ConflictError
        ``ITINERARY_NOT_CONFIRMED`` for a REQUESTED itinerary whose offer has
        not been confirmed, ``ITINERARY_ARCHIVED`` for an archived one.
    """
    role = UserRole(role)
    async with pool.acquire() as conn:
        async with conn.transaction():
            if payload.is_smart_trip:
                booking, extra = await _create_smart_trip(conn, user_id, payload)
            elif payload.tour_package_id is not None:
                booking, extra = await _create_from_tour_package(conn, user_id, payload)
            else:
                booking, extra = await _create_from_itinerary(conn, user_id, role, payload)

            await log_audit(
                conn,
                AuditAction.BOOKING_CREATED,
                actor_user_id=user_id,
                entity_type=EntityType.BOOKING,
                entity_id=booking.id,
                metadata={
                    "booking_code": booking.booking_code,
                    "destination": booking.destination,
                    "status": booking.status,
                    "type": booking.type,
                    **extra,
                },
                message=f"Created booking {booking.booking_code} for {booking.destination}",
            )
            await notify_isolated(
                conn,
                user_id,
                booking_notification(
                    "Booking created",
                    f"Your booking to {booking.destination} has been created.",
                    booking_id=booking.id,
                    booking_code=booking.booking_code,
                    status=booking.status,
                    itinerary_id=booking.itinerary_id,
                    destination=booking.destination,
                ),
            )

    await notify_admins_isolated(
        pool,
        booking_notification(
            "New booking created",
            f"Booking {booking.booking_code} requires review",
            booking_id=booking.id,
            booking_code=booking.booking_code,
            status=booking.status,
            itinerary_id=booking.itinerary_id,
            destination=booking.destination,
        ),
    )
    logger.info("Created booking %s (%s)", booking.booking_code, booking.type)
    return booking


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@operation_span("booking.get")
async def get_booking(
    pool: Any,
    booking_id: uuid.UUID,
    viewer_id: uuid.UUID,
    role: UserRole | str = UserRole.USER,
) -> Booking:
    """Load a booking with its itinerary, tagged OWNED or COLLABORATED for the viewer."""
    async with pool.acquire() as conn:
        booking = await _attach_itinerary(conn, await _fetch_booking(conn, booking_id))
    if booking.user_id == viewer_id:
        booking.ownership = OWNED
    elif booking.itinerary is not None and booking.itinerary.is_collaborator(viewer_id):
        booking.ownership = COLLABORATED
    elif UserRole(role) != UserRole.ADMIN:
        raise ForbiddenError("BOOKING_FORBIDDEN")
    return booking


async def _page(
    conn: Any,
    where: list[str],
    args: list[Any],
    *,
    order_by: str,
    limit: int,
    offset: int,
    ownership: str | None = None,
) -> Page:
    clause = f"WHERE {' AND '.join(where)}" if where else ""
    base = f"FROM bookings b JOIN users u ON u.id = b.user_id {clause}"
    total = await conn.fetchval(f"SELECT count(*) {base}", *args)
    n = len(args)
    rows = await conn.fetch(
        f"SELECT b.* {base} ORDER BY {order_by}, b.id LIMIT ${n + 1} OFFSET ${n + 2}",
        *args,
        limit,
        offset,
    )
    items: list[Booking] = []
    for row in rows:
        booking = await _attach_itinerary(conn, Booking.from_row(row))
        booking.ownership = ownership
        items.append(booking)
    return Page(items=items, total=total, limit=limit, offset=offset)


@operation_span("booking.list_user")
async def list_user_bookings(
    pool: Any,
    user_id: uuid.UUID,
    *,
    status: BookingStatus | None = None,
    limit: int = 10,
    offset: int = 0,
) -> Page:
    """The user's own bookings, newest first."""
    where = ["b.user_id = $1"]
    args: list[Any] = [user_id]
    if status is not None:
        where.append("b.status = $2")
        args.append(BookingStatus(status).value)
    async with pool.acquire() as conn:
        return await _page(
            conn, where, args, order_by="b.created_at DESC", limit=limit, offset=offset,
            ownership=OWNED,
        )


@operation_span("booking.list_shared")
async def list_shared_bookings(
    pool: Any,
    user_id: uuid.UUID,
    *,
    status: BookingStatus | None = None,
    limit: int = 10,
    offset: int = 0,
) -> Page:
    """Bookings owned by others whose itinerary lists *user_id* as collaborator."""
    where = [
        "b.user_id <> $1",
        "EXISTS (SELECT 1 FROM itinerary_collaborators c "
        "WHERE c.itinerary_id = b.itinerary_id AND c.user_id = $1)",
    ]
    args: list[Any] = [user_id]
    if status is not None:
        where.append("b.status = $2")
        args.append(BookingStatus(status).value)
    async with pool.acquire() as conn:
        return await _page(
            conn, where, args, order_by="b.created_at DESC", limit=limit, offset=offset,
            ownership=COLLABORATED,
        )


@operation_span("booking.list_all")
async def list_all_bookings(
    pool: Any,
    *,
    status: BookingStatus | None = None,
    type: BookingType | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    q: str | None = None,
    sort: str = "created_at:desc",
    limit: int = 10,
    offset: int = 0,
) -> Page:
    """Admin listing with filters on status, type, start-date window and free text.

    ``q`` matches destination and the customer's first name, last name or
    email, case-insensitively. ``sort`` is one of ``created_at:asc|desc`` or
    ``start_date:asc|desc``.
    """
    order_by = _SORT_ORDERS.get(sort)
    if order_by is None:
        raise PayloadError("INVALID_SORT", f"Unsupported sort {sort!r}")

    where: list[str] = []
    args: list[Any] = []

    def _bind(value: Any) -> str:
        args.append(value)
        return f"${len(args)}"

    if status is not None:
        where.append(f"b.status = {_bind(BookingStatus(status).value)}")
    if type is not None:
        where.append(f"b.type = {_bind(BookingType(type).value)}")
    if date_from is not None:
        where.append(f"b.start_date >= {_bind(date_from)}")
    if date_to is not None:
        where.append(f"b.start_date <= {_bind(date_to)}")
    if q:
        p = _bind(f"%{q}%")
        where.append(
            f"(b.destination ILIKE {p} OR u.first_name ILIKE {p} "
            f"OR u.last_name ILIKE {p} OR u.email ILIKE {p})"
        )

    async with pool.acquire() as conn:
        return await _page(conn, where, args, order_by=order_by, limit=limit, offset=offset)


# ---------------------------------------------------------------------------
# Booking-scoped itinerary edit
# ---------------------------------------------------------------------------


@operation_span("booking.update_itinerary")
async def update_booking_itinerary(
    pool: Any,
    booking_id: uuid.UUID,
    user_id: uuid.UUID,
    payload: UpdateBookingItineraryRequest,
) -> Booking:
    """Edit the booking's itinerary under the optimistic version check.

    The owner may edit while the booking is DRAFT, PENDING or REJECTED; a
    collaborator only while it is DRAFT. Marks the booking unresolved.

    Raises
    ------
    NotFoundError
        ``BOOKING_NOT_FOUND``.
    ForbiddenError
        ``BOOKING_FORBIDDEN`` for callers who are neither owner nor collaborator.
    ConflictError
        ``BOOKING_COLLABORATOR_NOT_ALLOWED``, ``BOOKING_NOT_EDITABLE``,
        ``ITINERARY_ARCHIVED``.
    VersionConflictError
        The itinerary is no longer at ``payload.version``.
    """
    async with pool.acquire() as conn:
        async with conn.transaction():
            booking = await _fetch_booking(conn, booking_id, for_update=True)
            is_owner = booking.user_id == user_id
            if not is_owner:
                if not await is_collaborator(conn, booking.itinerary_id, user_id):
                    raise ForbiddenError("BOOKING_FORBIDDEN")
                if booking.status not in COLLABORATOR_EDITABLE_STATUSES:
                    raise ConflictError("BOOKING_COLLABORATOR_NOT_ALLOWED")
            elif booking.status not in OWNER_EDITABLE_STATUSES:
                raise ConflictError("BOOKING_NOT_EDITABLE")

            linked = await load_itinerary(
                conn, booking.itinerary_id, with_days=False, for_update=True
            )
            if linked is None:
                raise NotFoundError("ITINERARY_NOT_FOUND")
            require_not_archived(linked)

            itinerary = await apply_versioned_update(
                conn,
                booking.itinerary_id,
                payload.version,
                {
                    "destination": payload.destination,
                    "start_date": payload.start_date,
                    "end_date": payload.end_date,
                    "travelers": payload.travelers,
                },
                payload.itinerary,
                user_id,
            )

            assignments = [
                "destination = $2",
                "start_date = $3",
                "end_date = $4",
                "travelers = $5",
                "total_price = $6",
                "is_resolved = false",
                "updated_at = now()",
            ]
            args: list[Any] = [
                booking_id,
                payload.destination,
                payload.start_date,
                payload.end_date,
                payload.travelers,
                payload.total_price,
            ]
            for column in ("user_budget", "customer_name", "customer_email", "customer_mobile"):
                if column in payload.model_fields_set:
                    args.append(getattr(payload, column))
                    assignments.append(f"{column} = ${len(args)}")

            row = await conn.fetchrow(
                f"UPDATE bookings SET {', '.join(assignments)} WHERE id = $1 RETURNING *",
                *args,
            )
            await log_audit(
                conn,
                AuditAction.BOOKING_UPDATED,
                actor_user_id=user_id,
                entity_type=EntityType.BOOKING,
                entity_id=booking_id,
                metadata={
                    "destination": payload.destination,
                    "travelers": payload.travelers,
                    "version": itinerary.version,
                    "customer_updated": bool(
                        payload.customer_name or payload.customer_email or payload.customer_mobile
                    ),
                },
                message=f"Updated itinerary for booking {booking_id}",
            )

    updated = Booking.from_row(row)
    updated.itinerary = itinerary
    updated.ownership = OWNED if is_owner else COLLABORATED
    return updated


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


@operation_span("booking.submit")
async def submit_booking(pool: Any, booking_id: uuid.UUID, user_id: uuid.UUID) -> Booking:
    """Owner submits a DRAFT or REJECTED booking for review (-> PENDING).

    Every itinerary day must have at least one activity, and there must be at
    least one day.

    Raises
    ------
    NotFoundError
        ``BOOKING_NOT_FOUND`` (also for non-owners).
    ConflictError
        ``CANNOT_SUBMIT`` from any other status.
    PayloadError
        ``BOOKING_ACTIVITIES_REQUIRED``.
    """
    async with pool.acquire() as conn:
        async with conn.transaction():
            booking = await _fetch_booking(conn, booking_id, owner_id=user_id, for_update=True)
            if booking.status not in SUBMITTABLE_STATUSES:
                raise ConflictError("CANNOT_SUBMIT")

            day_count, empty_days = await conn.fetchrow(
                "SELECT count(*), count(*) FILTER (WHERE NOT EXISTS ("
                "SELECT 1 FROM activities a WHERE a.itinerary_day_id = d.id)) "
                "FROM itinerary_days d WHERE d.itinerary_id = $1",
                booking.itinerary_id,
            )
            if day_count == 0 or empty_days > 0:
                raise PayloadError(
                    "BOOKING_ACTIVITIES_REQUIRED",
                    "Every itinerary day needs at least one activity",
                )

            validate_transition(booking.status, BookingStatus.PENDING)
            row = await conn.fetchrow(
                "UPDATE bookings SET status = $2, rejection_reason = NULL, "
                "rejection_resolution = NULL, is_resolved = false, updated_at = now() "
                "WHERE id = $1 RETURNING *",
                booking_id,
                BookingStatus.PENDING.value,
            )
            await log_audit(
                conn,
                AuditAction.BOOKING_SUBMITTED,
                actor_user_id=user_id,
                entity_type=EntityType.BOOKING,
                entity_id=booking_id,
                metadata={"status": BookingStatus.PENDING, "previous_status": booking.status},
                message=f"Submitted booking {booking_id} for approval",
            )
            await notify_isolated(
                conn,
                user_id,
                booking_notification(
                    "Booking submitted",
                    f"Your booking {booking.booking_code} has been submitted for approval.",
                    booking_id=booking_id,
                    booking_code=booking.booking_code,
                    status=BookingStatus.PENDING,
                ),
            )
            submitter = await conn.fetchrow(
                "SELECT first_name, last_name FROM users WHERE id = $1", user_id
            )

    name = " ".join(p for p in (submitter["first_name"], submitter["last_name"]) if p)
    await notify_admins_isolated(
        pool,
        booking_notification(
            "Booking submitted",
            f"{name or 'A customer'} submitted booking {booking.booking_code} for approval",
            booking_id=booking_id,
            booking_code=booking.booking_code,
            status=BookingStatus.PENDING,
        ),
    )
    return Booking.from_row(row)


@operation_span("booking.update_status")
async def update_status(
    pool: Any,
    booking_id: uuid.UUID,
    payload: StatusUpdateRequest,
    actor_id: uuid.UUID | None = None,
) -> Booking:
    """Admin-driven status change validated against the transition table.

    A same-status request is accepted and changes nothing. Rejection keeps
    ``payload.reason``/``payload.resolution``; any other target clears them.

    Raises
    ------
    NotFoundError
        ``BOOKING_NOT_FOUND``.
    InvalidTransitionError
        ``INVALID_STATUS_TRANSITION``; the booking is left untouched.
    """
    target = payload.status
    async with pool.acquire() as conn:
        async with conn.transaction():
            booking = await _fetch_booking(conn, booking_id, for_update=True)
            validate_transition(booking.status, target)
            if booking.status == target:
                return booking

            rejected = target == BookingStatus.REJECTED
            row = await conn.fetchrow(
                "UPDATE bookings SET status = $2, rejection_reason = $3, "
                "rejection_resolution = $4, is_resolved = $5, updated_at = now() "
                "WHERE id = $1 RETURNING *",
                booking_id,
                target.value,
                payload.reason if rejected else None,
                payload.resolution if rejected else None,
                target in RESOLVED_STATUSES,
            )
            if actor_id is not None:
                await log_audit(
                    conn,
                    audit_action_for(target),
                    actor_user_id=actor_id,
                    entity_type=EntityType.BOOKING,
                    entity_id=booking_id,
                    metadata={"status": target, "previous_status": booking.status},
                    message=f"Status set to {target} for booking {booking_id}",
                )
            await notify_isolated(
                conn,
                booking.user_id,
                booking_notification(
                    "Booking status updated",
                    f"Your booking {booking.booking_code} was rejected."
                    if rejected
                    else f"Your booking {booking.booking_code} status is now {target}.",
                    booking_id=booking_id,
                    booking_code=booking.booking_code,
                    status=target,
                    itinerary_id=booking.itinerary_id,
                    destination=booking.destination,
                ),
            )
    logger.info("Booking %s: %s -> %s", booking.booking_code, booking.status, target)
    return Booking.from_row(row)


@operation_span("booking.cancel")
async def cancel_booking(pool: Any, booking_id: uuid.UUID, user_id: uuid.UUID) -> Booking:
    """Owner cancels a booking from any non-terminal status."""
    async with pool.acquire() as conn:
        async with conn.transaction():
            booking = await _fetch_booking(conn, booking_id, owner_id=user_id, for_update=True)
            if booking.status in TERMINAL_STATUSES:
                raise ConflictError("CANNOT_CANCEL")
            validate_transition(booking.status, BookingStatus.CANCELLED)
            row = await conn.fetchrow(
                "UPDATE bookings SET status = $2, is_resolved = true, updated_at = now() "
                "WHERE id = $1 RETURNING *",
                booking_id,
                BookingStatus.CANCELLED.value,
            )
            await log_audit(
                conn,
                AuditAction.BOOKING_CANCELLED,
                actor_user_id=user_id,
                entity_type=EntityType.BOOKING,
                entity_id=booking_id,
                metadata={"status": BookingStatus.CANCELLED, "previous_status": booking.status},
                message=f"Cancelled booking {booking_id}",
            )
    return Booking.from_row(row)


@operation_span("booking.delete_draft")
async def delete_booking_draft(pool: Any, booking_id: uuid.UUID, user_id: uuid.UUID) -> None:
    """Owner hard-deletes a DRAFT booking; its itinerary is kept."""
    async with pool.acquire() as conn:
        async with conn.transaction():
            booking = await _fetch_booking(conn, booking_id, owner_id=user_id, for_update=True)
            if booking.status != BookingStatus.DRAFT:
                raise ConflictError("CANNOT_DELETE_NON_DRAFT")
            await conn.execute("DELETE FROM bookings WHERE id = $1", booking_id)
            await log_audit(
                conn,
                AuditAction.BOOKING_DELETED,
                actor_user_id=user_id,
                entity_type=EntityType.BOOKING,
                entity_id=booking_id,
                metadata={"booking_code": booking.booking_code},
                message=f"Deleted draft booking {booking.booking_code}",
            )


# ---------------------------------------------------------------------------
# Collaborators (aliases for the booking's itinerary collaborators)
# ---------------------------------------------------------------------------


@operation_span("booking.add_collaborator")
async def add_collaborator(
    pool: Any,
    booking_id: uuid.UUID,
    owner_id: uuid.UUID,
    collaborator_id: uuid.UUID,
) -> Collaborator:
    """Owner invites a collaborator to the booking's itinerary.

    Unlike the itinerary entry point, inviting an existing member fails
    with ``COLLABORATOR_EXISTS``.
    """
    async with pool.acquire() as conn:
        async with conn.transaction():
            booking = await _fetch_booking(conn, booking_id, owner_id=owner_id)
            member = await members.add_member(
                conn, booking.itinerary_id, booking.user_id, collaborator_id, reject_existing=True
            )
            await log_audit(
                conn,
                AuditAction.BOOKING_COLLABORATOR_ADDED,
                actor_user_id=owner_id,
                entity_type=EntityType.BOOKING,
                entity_id=booking_id,
                metadata={"collaborator_id": collaborator_id},
                message=f"Added collaborator {collaborator_id} to booking {booking_id}",
            )
    return member


@operation_span("booking.remove_collaborator")
async def remove_collaborator(
    pool: Any,
    booking_id: uuid.UUID,
    owner_id: uuid.UUID,
    collaborator_id: uuid.UUID,
) -> int:
    """Owner removes a collaborator; removing a non-member returns 0."""
    async with pool.acquire() as conn:
        async with conn.transaction():
            booking = await _fetch_booking(conn, booking_id, owner_id=owner_id)
            removed = await members.remove_member(conn, booking.itinerary_id, collaborator_id)
            await log_audit(
                conn,
                AuditAction.BOOKING_COLLABORATOR_REMOVED,
                actor_user_id=owner_id,
                entity_type=EntityType.BOOKING,
                entity_id=booking_id,
                metadata={"collaborator_id": collaborator_id, "removed": removed},
                message=f"Removed collaborator {collaborator_id} from booking {booking_id}",
            )
    return removed


@operation_span("booking.list_collaborators")
async def list_collaborators(
    pool: Any, booking_id: uuid.UUID, viewer_id: uuid.UUID
) -> list[Collaborator]:
    """Owner or collaborator may view the booking's collaborators."""
    async with pool.acquire() as conn:
        booking = await _fetch_booking(conn, booking_id)
        collaborators = await members.list_members(conn, booking.itinerary_id)
    if booking.user_id != viewer_id and not any(c.user_id == viewer_id for c in collaborators):
        raise ForbiddenError("BOOKING_FORBIDDEN")
    return collaborators
