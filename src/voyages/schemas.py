"""Pydantic payload models for itinerary and booking mutations.

Services accept these models rather than raw dicts so that malformed
payloads fail with ``pydantic.ValidationError`` before any SQL runs.
"""

from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from voyages.models import (
    BookingStatus,
    BookingType,
    ItineraryStatus,
    ItineraryType,
    TourType,
)


def _check_unique_day_numbers(days: list[DayInput] | None) -> list[DayInput] | None:
    if days is None:
        return None
    seen: set[int] = set()
    for day in days:
        if day.day_number in seen:
            raise ValueError(f"duplicate day_number {day.day_number}")
        seen.add(day.day_number)
    return days


def _check_date_order(start: dt.date | None, end: dt.date | None) -> None:
    if start and end and end < start:
        raise ValueError("end_date must not precede start_date")


class ActivityInput(BaseModel):
    """One activity inside a day payload."""

    model_config = ConfigDict(extra="forbid")

    time: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str | None = None
    location: str | None = None
    icon: str | None = None
    order: int = Field(default=0, ge=0)


class DayInput(BaseModel):
    """One day payload; a list of these replaces the stored days wholesale."""

    model_config = ConfigDict(extra="forbid")

    day_number: int = Field(ge=1)
    title: str | None = None
    date: dt.date | None = None
    activities: list[ActivityInput] = Field(default_factory=list)


class ItineraryInput(BaseModel):
    """Payload for creating an itinerary."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    destination: str = Field(min_length=1)
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    travelers: int = Field(default=1, ge=1)
    estimated_cost: Decimal | None = Field(default=None, ge=0)
    travel_pace: str | None = None
    preferences: list[str] = Field(default_factory=list)
    type: ItineraryType = ItineraryType.CUSTOMIZED
    tour_type: TourType = TourType.PRIVATE
    days: list[DayInput] = Field(default_factory=list)

    @field_validator("days")
    @classmethod
    def _unique_days(cls, value: list[DayInput]) -> list[DayInput]:
        return _check_unique_day_numbers(value) or []

    @model_validator(mode="after")
    def _date_order(self) -> ItineraryInput:
        _check_date_order(self.start_date, self.end_date)
        return self


class ItineraryUpdate(BaseModel):
    """Partial itinerary update guarded by ``expected_version``.

    Fields left unset keep their stored value; ``days=None`` keeps the stored
    days while any list (including an empty one) replaces them.
    """

    model_config = ConfigDict(extra="forbid")

    expected_version: int = Field(ge=1)
    title: str | None = None
    destination: str | None = Field(default=None, min_length=1)
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    travelers: int | None = Field(default=None, ge=1)
    estimated_cost: Decimal | None = Field(default=None, ge=0)
    travel_pace: str | None = None
    preferences: list[str] | None = None
    type: ItineraryType | None = None
    tour_type: TourType | None = None
    status: ItineraryStatus | None = None
    days: list[DayInput] | None = None

    @field_validator("days")
    @classmethod
    def _unique_days(cls, value: list[DayInput] | None) -> list[DayInput] | None:
        return _check_unique_day_numbers(value)

    @field_validator("status")
    @classmethod
    def _not_archived(cls, value: ItineraryStatus | None) -> ItineraryStatus | None:
        if value == ItineraryStatus.ARCHIVED:
            raise ValueError("use archive() to archive an itinerary")
        return value


class SmartTripActivity(BaseModel):
    """Generated activity as produced by the trip planner."""

    model_config = ConfigDict(extra="ignore")

    time: str = Field(min_length=1)
    title: str = Field(min_length=1)
    icon_key: str
    location: str | None = None
    description: str | None = None


class SmartTripDay(BaseModel):
    """Generated day as produced by the trip planner."""

    model_config = ConfigDict(extra="ignore")

    day: int = Field(ge=1)
    title: str
    activities: list[SmartTripActivity] = Field(default_factory=list)


class CreateBookingRequest(BaseModel):
    """Payload for ``create_booking``.

    Exactly one creation path applies, checked in this order: smart trip
    (``itinerary_type=SMART_TRIP`` or ``itinerary_data`` present), tour
    package (``tour_package_id``), then linked (``itinerary_id``) or inline
    (``itinerary``) itinerary.
    """

    model_config = ConfigDict(extra="forbid")

    total_price: Decimal = Field(ge=0)
    itinerary_id: uuid.UUID | None = None
    tour_package_id: uuid.UUID | None = None
    itinerary: ItineraryInput | None = None
    itinerary_type: ItineraryType | None = None
    itinerary_data: list[SmartTripDay] | None = None
    destination: str | None = None
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    travelers: int | None = Field(default=None, ge=1)
    budget: Decimal | None = Field(default=None, ge=0)
    travel_pace: str | None = None
    preferences: list[str] | None = None
    user_budget: Decimal | None = Field(default=None, ge=0)
    type: BookingType | None = None
    tour_type: TourType | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    customer_mobile: str | None = None

    @property
    def is_smart_trip(self) -> bool:
        return self.itinerary_type == ItineraryType.SMART_TRIP or self.itinerary_data is not None

    @model_validator(mode="after")
    def _has_source(self) -> CreateBookingRequest:
        if not (
            self.is_smart_trip
            or self.tour_package_id
            or self.itinerary_id
            or self.itinerary is not None
        ):
            raise ValueError(
                "one of itinerary_data, tour_package_id, itinerary_id or itinerary is required"
            )
        return self

    @model_validator(mode="after")
    def _date_order(self) -> CreateBookingRequest:
        _check_date_order(self.start_date, self.end_date)
        return self


class UpdateBookingItineraryRequest(BaseModel):
    """Booking-scoped itinerary edit; ``itinerary`` replaces all days."""

    model_config = ConfigDict(extra="forbid")

    version: int = Field(ge=1)
    destination: str = Field(min_length=1)
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    travelers: int = Field(ge=1)
    total_price: Decimal = Field(ge=0)
    user_budget: Decimal | None = Field(default=None, ge=0)
    customer_name: str | None = None
    customer_email: str | None = None
    customer_mobile: str | None = None
    itinerary: list[DayInput] = Field(default_factory=list)

    @field_validator("itinerary")
    @classmethod
    def _unique_days(cls, value: list[DayInput]) -> list[DayInput]:
        return _check_unique_day_numbers(value) or []

    @model_validator(mode="after")
    def _date_order(self) -> UpdateBookingItineraryRequest:
        _check_date_order(self.start_date, self.end_date)
        return self


class StatusUpdateRequest(BaseModel):
    """Admin status change; rejection requires a reason and a resolution."""

    model_config = ConfigDict(extra="forbid")

    status: BookingStatus
    reason: str | None = None
    resolution: str | None = None

    @field_validator("reason", "resolution")
    @classmethod
    def _strip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @model_validator(mode="after")
    def _rejection_details(self) -> StatusUpdateRequest:
        if self.status == BookingStatus.REJECTED and not (self.reason and self.resolution):
            raise ValueError("reason and resolution are required when rejecting a booking")
        return self
