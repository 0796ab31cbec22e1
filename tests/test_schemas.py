"""Tests for pydantic payload validation."""

from __future__ import annotations

import uuid

import pytest
from pydantic import ValidationError

from voyages.models import BookingStatus, ItineraryStatus
from voyages.schemas import (
    CreateBookingRequest,
    ItineraryInput,
    ItineraryUpdate,
    StatusUpdateRequest,
    UpdateBookingItineraryRequest,
)

pytestmark = pytest.mark.unit


class TestItineraryInput:
    def test_defaults(self):
        payload = ItineraryInput(destination="Siargao")
        assert payload.travelers == 1
        assert payload.days == []

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError, match="end_date"):
            ItineraryInput(destination="x", start_date="2026-05-02", end_date="2026-05-01")

    def test_duplicate_day_numbers_rejected(self):
        with pytest.raises(ValidationError, match="duplicate day_number"):
            ItineraryInput(
                destination="x",
                days=[{"day_number": 1}, {"day_number": 1}],
            )

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError):
            ItineraryInput(destination="x", version=3)


class TestItineraryUpdate:
    def test_requires_expected_version(self):
        with pytest.raises(ValidationError):
            ItineraryUpdate(title="x")

    def test_fields_set_tracks_explicit_values(self):
        payload = ItineraryUpdate(expected_version=2, title=None)
        assert payload.model_fields_set == {"expected_version", "title"}
        assert payload.days is None

    def test_archive_not_allowed_via_update(self):
        with pytest.raises(ValidationError, match="archive"):
            ItineraryUpdate(expected_version=1, status=ItineraryStatus.ARCHIVED)


class TestCreateBookingRequest:
    def test_needs_a_source(self):
        with pytest.raises(ValidationError, match="required"):
            CreateBookingRequest(total_price=100)

    def test_smart_trip_detected_from_data(self):
        payload = CreateBookingRequest(
            total_price=100,
            destination="Palawan",
            itinerary_data=[
                {"day": 1, "title": "Arrive", "activities": [
                    {"time": "09:00", "title": "Check in", "icon_key": "hotel", "extra": 1}
                ]}
            ],
        )
        assert payload.is_smart_trip
        assert payload.itinerary_data[0].activities[0].icon_key == "hotel"

    def test_linked_itinerary(self):
        payload = CreateBookingRequest(total_price=0, itinerary_id=uuid.uuid4())
        assert not payload.is_smart_trip

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            CreateBookingRequest(total_price=-1, itinerary_id=uuid.uuid4())

    def test_reversed_dates_rejected(self):
        with pytest.raises(ValidationError, match="end_date"):
            CreateBookingRequest(
                total_price=100,
                destination="Cebu",
                itinerary_data=[],
                start_date="2026-05-10",
                end_date="2026-05-01",
            )

    def test_same_day_trip_accepted(self):
        payload = CreateBookingRequest(
            total_price=100,
            tour_package_id=uuid.uuid4(),
            start_date="2026-05-10",
            end_date="2026-05-10",
        )
        assert payload.start_date == payload.end_date


class TestUpdateBookingItineraryRequest:
    def test_version_required(self):
        with pytest.raises(ValidationError):
            UpdateBookingItineraryRequest(destination="x", travelers=1, total_price=1)

    def test_reversed_dates_rejected(self):
        with pytest.raises(ValidationError, match="end_date"):
            UpdateBookingItineraryRequest(
                version=1,
                destination="Cebu",
                travelers=2,
                total_price=100,
                start_date="2026-05-10",
                end_date="2026-05-01",
            )

    def test_open_ended_dates_accepted(self):
        payload = UpdateBookingItineraryRequest(
            version=1, destination="Cebu", travelers=2, total_price=100, end_date="2026-05-01"
        )
        assert payload.start_date is None


class TestStatusUpdateRequest:
    def test_rejection_requires_reason_and_resolution(self):
        with pytest.raises(ValidationError, match="reason and resolution"):
            StatusUpdateRequest(status=BookingStatus.REJECTED, reason="Too late")

    def test_blank_reason_counts_as_missing(self):
        with pytest.raises(ValidationError):
            StatusUpdateRequest(status="REJECTED", reason="  ", resolution="Pick new dates")

    def test_values_are_stripped(self):
        payload = StatusUpdateRequest(
            status="REJECTED", reason=" Full ", resolution=" Pick new dates "
        )
        assert (payload.reason, payload.resolution) == ("Full", "Pick new dates")

    def test_other_statuses_need_nothing(self):
        assert StatusUpdateRequest(status="CONFIRMED").reason is None
