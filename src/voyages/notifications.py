"""User-facing notification records with type-discriminated payloads.

Each notification variant pins its ``type`` tag to one payload model, so a
BOOKING notification can only carry booking data. Dispatch from the core is
best-effort: the ``*_isolated`` helpers log and swallow failures so that a
notification problem never fails the mutation that triggered it.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from voyages.errors import PayloadError
from voyages.models import Page

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Payload variants
# ---------------------------------------------------------------------------


class BookingData(BaseModel):
    model_config = ConfigDict(extra="forbid")

    booking_id: uuid.UUID
    booking_code: str | None = None
    status: str | None = None
    itinerary_id: uuid.UUID | None = None
    destination: str | None = None


class PaymentData(BaseModel):
    model_config = ConfigDict(extra="forbid")

    payment_id: uuid.UUID
    booking_id: uuid.UUID
    booking_code: str | None = None
    status: str | None = None
    amount: float | None = None


class InquiryData(BaseModel):
    model_config = ConfigDict(extra="forbid")

    inquiry_id: uuid.UUID
    booking_id: uuid.UUID | None = None
    itinerary_id: uuid.UUID | None = None
    subject: str | None = None


class SystemData(BaseModel):
    model_config = ConfigDict(extra="forbid")

    key: str
    meta: dict[str, Any] | None = None


class _NotificationBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    message: str = Field(min_length=1)


class BookingNotification(_NotificationBase):
    type: Literal["BOOKING"] = "BOOKING"
    data: BookingData


class PaymentNotification(_NotificationBase):
    type: Literal["PAYMENT"] = "PAYMENT"
    data: PaymentData


class InquiryNotification(_NotificationBase):
    type: Literal["INQUIRY"] = "INQUIRY"
    data: InquiryData


class SystemNotification(_NotificationBase):
    type: Literal["SYSTEM"] = "SYSTEM"
    data: SystemData


class FeedbackNotification(_NotificationBase):
    type: Literal["FEEDBACK"] = "FEEDBACK"
    data: dict[str, Any] = Field(default_factory=dict)


Notification = Annotated[
    BookingNotification
    | PaymentNotification
    | InquiryNotification
    | SystemNotification
    | FeedbackNotification,
    Field(discriminator="type"),
]

_NOTIFICATION_ADAPTER: TypeAdapter[Notification] = TypeAdapter(Notification)


def parse_notification(payload: dict[str, Any]) -> Notification:
    """Validate a raw ``{type, title, message, data}`` mapping.

    Raises
    ------
    PayloadError
        ``INVALID_NOTIFICATION_PAYLOAD`` when the tag is unknown or the data
        does not match the tag's payload shape.
    """
    try:
        return _NOTIFICATION_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise PayloadError("INVALID_NOTIFICATION_PAYLOAD", str(exc)) from exc


def booking_notification(
    title: str,
    message: str,
    *,
    booking_id: uuid.UUID,
    booking_code: str | None = None,
    status: str | None = None,
    itinerary_id: uuid.UUID | None = None,
    destination: str | None = None,
) -> BookingNotification:
    """Shorthand for the BOOKING variant used throughout the booking service."""
    return BookingNotification(
        title=title,
        message=message,
        data=BookingData(
            booking_id=booking_id,
            booking_code=booking_code,
            status=status,
            itinerary_id=itinerary_id,
            destination=destination or None,
        ),
    )


def _data_json(notification: Notification) -> str:
    data = notification.data
    if isinstance(data, BaseModel):
        return json.dumps(data.model_dump(mode="json", exclude_none=True))
    return json.dumps(data, default=str)


# ---------------------------------------------------------------------------
# Write side
# ---------------------------------------------------------------------------


async def create_notification(
    conn: Any, user_id: uuid.UUID, notification: Notification
) -> uuid.UUID:
    """Insert one notification for *user_id* and return its id."""
    return await conn.fetchval(
        "INSERT INTO notifications (user_id, type, title, message, data) "
        "VALUES ($1, $2, $3, $4, $5::jsonb) RETURNING id",
        user_id,
        notification.type,
        notification.title,
        notification.message,
        _data_json(notification),
    )


async def notify_admins(conn: Any, notification: Notification) -> int:
    """Fan *notification* out to every active ADMIN user.

    Returns the number of notifications created.
    """
    status = await conn.execute(
        "INSERT INTO notifications (user_id, type, title, message, data) "
        "SELECT id, $1, $2, $3, $4::jsonb FROM users "
        "WHERE role = 'ADMIN' AND is_active",
        notification.type,
        notification.title,
        notification.message,
        _data_json(notification),
    )
    # asyncpg returns the command tag, e.g. "INSERT 0 3"
    return int(status.rsplit(" ", 1)[-1])


async def notify_isolated(conn: Any, user_id: uuid.UUID, notification: Notification) -> None:
    """Create a notification inside a savepoint, logging instead of raising.

    *conn* is normally a connection inside the caller's open transaction; the
    nested ``transaction()`` becomes a savepoint so a failed insert leaves the
    outer transaction usable.
    """
    try:
        async with conn.transaction():
            await create_notification(conn, user_id, notification)
    except Exception:
        logger.warning(
            "Failed to create %s notification for user %s",
            notification.type,
            user_id,
            exc_info=True,
        )


async def notify_admins_isolated(pool: Any, notification: Notification) -> None:
    """Best-effort admin fan-out, run after the triggering transaction commits."""
    try:
        sent = await notify_admins(pool, notification)
    except Exception:
        logger.warning("Failed to notify admins: %s", notification.title, exc_info=True)
        return
    logger.debug("Admin notification %r sent to %d admin(s)", notification.title, sent)


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------


def _notification_to_dict(row: Any) -> dict[str, Any]:
    data = row["data"]
    return {
        "id": str(row["id"]),
        "user_id": str(row["user_id"]),
        "type": row["type"],
        "title": row["title"],
        "message": row["message"],
        "data": json.loads(data) if isinstance(data, str) else (data or {}),
        "is_read": row["is_read"],
        "read_at": row["read_at"].isoformat() if row["read_at"] else None,
        "created_at": row["created_at"].isoformat(),
    }


async def list_notifications(
    pool: Any,
    user_id: uuid.UUID,
    *,
    is_read: bool | None = None,
    limit: int = 20,
    offset: int = 0,
) -> Page:
    """Return *user_id*'s notifications newest-first."""
    where = "WHERE user_id = $1"
    args: list[Any] = [user_id]
    if is_read is not None:
        where += " AND is_read = $2"
        args.append(is_read)
    total = await pool.fetchval(f"SELECT count(*) FROM notifications {where}", *args)
    n = len(args)
    rows = await pool.fetch(
        f"SELECT * FROM notifications {where} "
        f"ORDER BY created_at DESC, id DESC LIMIT ${n + 1} OFFSET ${n + 2}",
        *args,
        limit,
        offset,
    )
    return Page(
        items=[_notification_to_dict(r) for r in rows], total=total, limit=limit, offset=offset
    )


async def mark_read(pool: Any, notification_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    """Mark one of *user_id*'s notifications as read. Returns False if not theirs."""
    status = await pool.execute(
        "UPDATE notifications SET is_read = true, read_at = COALESCE(read_at, now()) "
        "WHERE id = $1 AND user_id = $2",
        notification_id,
        user_id,
    )
    return status != "UPDATE 0"


async def mark_all_read(pool: Any, user_id: uuid.UUID) -> int:
    """Mark every unread notification of *user_id* as read; returns the count."""
    status = await pool.execute(
        "UPDATE notifications SET is_read = true, read_at = now() "
        "WHERE user_id = $1 AND NOT is_read",
        user_id,
    )
    return int(status.rsplit(" ", 1)[-1])
