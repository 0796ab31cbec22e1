"""Data models for itineraries, versions and bookings.

Dataclasses map 1:1 to the corresponding database tables and carry
``from_row`` constructors for asyncpg records plus JSON-safe ``to_dict``
serialisers for the calling layer.
"""

from __future__ import annotations

import enum
import json
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class UserRole(enum.StrEnum):
    USER = "USER"
    ADMIN = "ADMIN"


class ItineraryType(enum.StrEnum):
    STANDARD = "STANDARD"
    CUSTOMIZED = "CUSTOMIZED"
    REQUESTED = "REQUESTED"
    SMART_TRIP = "SMART_TRIP"


class ItineraryStatus(enum.StrEnum):
    """Lifecycle status of the itinerary content itself."""

    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ARCHIVED = "ARCHIVED"


class RequestStatus(enum.StrEnum):
    """Offer flow for customized itineraries: owner sends, recipient confirms."""

    SENT = "SENT"
    CONFIRMED = "CONFIRMED"


class TourType(enum.StrEnum):
    JOINER = "JOINER"
    PRIVATE = "PRIVATE"


class CollaboratorRole(enum.StrEnum):
    COLLABORATOR = "COLLABORATOR"


class BookingType(enum.StrEnum):
    STANDARD = "STANDARD"
    CUSTOMIZED = "CUSTOMIZED"
    REQUESTED = "REQUESTED"


class BookingStatus(enum.StrEnum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(enum.StrEnum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    REFUNDED = "REFUNDED"


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _parse_uuid(value: Any) -> uuid.UUID:
    """Parse a UUID from a string or UUID object."""
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def _parse_optional_uuid(value: Any) -> uuid.UUID | None:
    if value is None:
        return None
    return _parse_uuid(value)


def _parse_jsonb(value: Any) -> dict[str, Any]:
    """Parse a JSONB value (may be a string or already a dict)."""
    if isinstance(value, str):
        return json.loads(value)
    if isinstance(value, dict):
        return value
    return dict(value)


def _get(row: Any, key: str, default: Any = None) -> Any:
    """Read an optional column from an asyncpg Record or a plain mapping."""
    try:
        return row[key]
    except KeyError:
        return default


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _money(value: Decimal | float | int | None) -> float | None:
    return float(value) if value is not None else None


# ---------------------------------------------------------------------------
# Itinerary graph
# ---------------------------------------------------------------------------


@dataclass
class Activity:
    """One scheduled item within an itinerary day."""

    time: str
    title: str
    order: int
    description: str | None = None
    location: str | None = None
    icon: str | None = None
    id: uuid.UUID | None = None

    @classmethod
    def from_row(cls, row: Any) -> Activity:
        return cls(
            id=_parse_optional_uuid(_get(row, "id")),
            time=row["time"],
            title=row["title"],
            order=row["sort_order"],
            description=_get(row, "description"),
            location=_get(row, "location"),
            icon=_get(row, "icon"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id) if self.id else None,
            "time": self.time,
            "title": self.title,
            "description": self.description,
            "location": self.location,
            "icon": self.icon,
            "order": self.order,
        }


@dataclass
class ItineraryDay:
    """A 1-based day of an itinerary with its ordered activities."""

    day_number: int
    title: str | None = None
    date: date | None = None
    activities: list[Activity] = field(default_factory=list)
    id: uuid.UUID | None = None

    @classmethod
    def from_row(cls, row: Any, activities: list[Activity] | None = None) -> ItineraryDay:
        return cls(
            id=_parse_optional_uuid(_get(row, "id")),
            day_number=row["day_number"],
            title=_get(row, "title"),
            date=_get(row, "date"),
            activities=activities or [],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id) if self.id else None,
            "day_number": self.day_number,
            "title": self.title,
            "date": _iso(self.date),
            "activities": [a.to_dict() for a in self.activities],
        }


@dataclass
class Collaborator:
    """A non-owner user with edit rights on an itinerary."""

    itinerary_id: uuid.UUID
    user_id: uuid.UUID
    role: CollaboratorRole = CollaboratorRole.COLLABORATOR
    invited_by: uuid.UUID | None = None
    added_at: datetime | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> Collaborator:
        return cls(
            itinerary_id=_parse_uuid(row["itinerary_id"]),
            user_id=_parse_uuid(row["user_id"]),
            role=CollaboratorRole(row["role"]),
            invited_by=_parse_optional_uuid(_get(row, "invited_by")),
            added_at=_get(row, "added_at"),
            first_name=_get(row, "first_name"),
            last_name=_get(row, "last_name"),
            email=_get(row, "email"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "itinerary_id": str(self.itinerary_id),
            "user_id": str(self.user_id),
            "role": self.role.value,
            "invited_by": str(self.invited_by) if self.invited_by else None,
            "added_at": _iso(self.added_at),
            "user": {
                "first_name": self.first_name,
                "last_name": self.last_name,
                "email": self.email,
            },
        }


@dataclass
class Itinerary:
    """Maps 1:1 to the ``itineraries`` table, optionally with its children."""

    id: uuid.UUID
    user_id: uuid.UUID
    destination: str
    type: ItineraryType
    status: ItineraryStatus
    tour_type: TourType
    version: int
    travelers: int = 1
    title: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    estimated_cost: Decimal | None = None
    travel_pace: str | None = None
    preferences: list[str] = field(default_factory=list)
    requested_status: RequestStatus | None = None
    sent_status: str | None = None
    sent_at: datetime | None = None
    confirmed_at: datetime | None = None
    rejection_reason: str | None = None
    rejection_resolution: str | None = None
    is_resolved: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    days: list[ItineraryDay] = field(default_factory=list)
    collaborators: list[Collaborator] = field(default_factory=list)

    def is_owner(self, user_id: uuid.UUID) -> bool:
        return self.user_id == user_id

    def is_collaborator(self, user_id: uuid.UUID) -> bool:
        return any(c.user_id == user_id for c in self.collaborators)

    @classmethod
    def from_row(cls, row: Any) -> Itinerary:
        requested = _get(row, "requested_status")
        return cls(
            id=_parse_uuid(row["id"]),
            user_id=_parse_uuid(row["user_id"]),
            title=_get(row, "title"),
            destination=row["destination"],
            start_date=_get(row, "start_date"),
            end_date=_get(row, "end_date"),
            travelers=row["travelers"],
            estimated_cost=_get(row, "estimated_cost"),
            travel_pace=_get(row, "travel_pace"),
            preferences=list(_get(row, "preferences") or []),
            type=ItineraryType(row["type"]),
            status=ItineraryStatus(row["status"]),
            tour_type=TourType(row["tour_type"]),
            requested_status=RequestStatus(requested) if requested else None,
            sent_status=_get(row, "sent_status"),
            sent_at=_get(row, "sent_at"),
            confirmed_at=_get(row, "confirmed_at"),
            rejection_reason=_get(row, "rejection_reason"),
            rejection_resolution=_get(row, "rejection_resolution"),
            is_resolved=bool(_get(row, "is_resolved", False)),
            version=row["version"],
            created_at=_get(row, "created_at"),
            updated_at=_get(row, "updated_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-safe dictionary, children included."""
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "title": self.title,
            "destination": self.destination,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "travelers": self.travelers,
            "estimated_cost": _money(self.estimated_cost),
            "travel_pace": self.travel_pace,
            "preferences": list(self.preferences),
            "type": self.type.value,
            "status": self.status.value,
            "tour_type": self.tour_type.value,
            "requested_status": self.requested_status.value if self.requested_status else None,
            "sent_status": self.sent_status,
            "sent_at": _iso(self.sent_at),
            "confirmed_at": _iso(self.confirmed_at),
            "rejection_reason": self.rejection_reason,
            "rejection_resolution": self.rejection_resolution,
            "is_resolved": self.is_resolved,
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "days": [d.to_dict() for d in self.days],
            "collaborators": [c.to_dict() for c in self.collaborators],
        }


@dataclass
class ItineraryVersion:
    """Immutable snapshot row from ``itinerary_versions``."""

    id: uuid.UUID
    itinerary_id: uuid.UUID
    version: int
    snapshot: dict[str, Any]
    created_at: datetime
    created_by: uuid.UUID | None = None
    author_first_name: str | None = None
    author_last_name: str | None = None

    @property
    def author(self) -> str:
        """Display name of the creator, ``"Unknown User"`` when unavailable."""
        parts = [p for p in (self.author_first_name, self.author_last_name) if p]
        return " ".join(parts) if parts else "Unknown User"

    @classmethod
    def from_row(cls, row: Any) -> ItineraryVersion:
        return cls(
            id=_parse_uuid(row["id"]),
            itinerary_id=_parse_uuid(row["itinerary_id"]),
            version=row["version"],
            snapshot=_parse_jsonb(row["snapshot"]),
            created_at=row["created_at"],
            created_by=_parse_optional_uuid(_get(row, "created_by")),
            author_first_name=_get(row, "first_name"),
            author_last_name=_get(row, "last_name"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise for the version history view."""
        return {
            "id": str(self.id),
            "itinerary_id": str(self.itinerary_id),
            "version": self.version,
            "label": f"Version {self.version}",
            "timestamp": int(self.created_at.timestamp() * 1000),
            "created_at": self.created_at.isoformat(),
            "created_by": str(self.created_by) if self.created_by else None,
            "author": self.author,
            "data": self.snapshot,
        }


# ---------------------------------------------------------------------------
# Booking
# ---------------------------------------------------------------------------


@dataclass
class Booking:
    """Maps 1:1 to the ``bookings`` table."""

    id: uuid.UUID
    booking_code: str
    user_id: uuid.UUID
    itinerary_id: uuid.UUID
    destination: str
    total_price: Decimal
    type: BookingType
    status: BookingStatus
    tour_type: TourType
    payment_status: PaymentStatus = PaymentStatus.PENDING
    travelers: int = 1
    start_date: date | None = None
    end_date: date | None = None
    user_budget: Decimal | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    customer_mobile: str | None = None
    rejection_reason: str | None = None
    rejection_resolution: str | None = None
    is_resolved: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    itinerary: Itinerary | None = None
    ownership: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> Booking:
        return cls(
            id=_parse_uuid(row["id"]),
            booking_code=row["booking_code"],
            user_id=_parse_uuid(row["user_id"]),
            itinerary_id=_parse_uuid(row["itinerary_id"]),
            destination=row["destination"],
            start_date=_get(row, "start_date"),
            end_date=_get(row, "end_date"),
            travelers=row["travelers"],
            total_price=row["total_price"],
            user_budget=_get(row, "user_budget"),
            type=BookingType(row["type"]),
            status=BookingStatus(row["status"]),
            tour_type=TourType(row["tour_type"]),
            payment_status=PaymentStatus(_get(row, "payment_status") or PaymentStatus.PENDING),
            customer_name=_get(row, "customer_name"),
            customer_email=_get(row, "customer_email"),
            customer_mobile=_get(row, "customer_mobile"),
            rejection_reason=_get(row, "rejection_reason"),
            rejection_resolution=_get(row, "rejection_resolution"),
            is_resolved=bool(_get(row, "is_resolved", False)),
            created_at=_get(row, "created_at"),
            updated_at=_get(row, "updated_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-safe dictionary."""
        return {
            "id": str(self.id),
            "booking_code": self.booking_code,
            "user_id": str(self.user_id),
            "itinerary_id": str(self.itinerary_id),
            "destination": self.destination,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "travelers": self.travelers,
            "total_price": _money(self.total_price),
            "user_budget": _money(self.user_budget),
            "type": self.type.value,
            "status": self.status.value,
            "tour_type": self.tour_type.value,
            "payment_status": self.payment_status.value,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_mobile": self.customer_mobile,
            "rejection_reason": self.rejection_reason,
            "rejection_resolution": self.rejection_resolution,
            "is_resolved": self.is_resolved,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "itinerary": self.itinerary.to_dict() if self.itinerary else None,
            "ownership": self.ownership,
        }


@dataclass
class Page:
    """One page of a paginated listing."""

    items: list[Any]
    total: int
    limit: int
    offset: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [i.to_dict() if hasattr(i, "to_dict") else i for i in self.items],
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
        }
