"""Tests for voyages.itineraries.snapshot."""

from __future__ import annotations

import datetime as dt
import json
import uuid
from decimal import Decimal

import pytest

from voyages.itineraries.snapshot import (
    SNAPSHOT_SCHEMA_VERSION,
    build_snapshot,
    snapshot_content,
    snapshot_days,
    snapshot_fields,
)
from voyages.models import (
    Activity,
    Collaborator,
    Itinerary,
    ItineraryDay,
    ItineraryStatus,
    ItineraryType,
    TourType,
)

pytestmark = pytest.mark.unit


def _itinerary(**overrides) -> Itinerary:
    base = dict(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        title="Visayas loop",
        destination="Cebu",
        type=ItineraryType.CUSTOMIZED,
        status=ItineraryStatus.DRAFT,
        tour_type=TourType.PRIVATE,
        version=3,
        travelers=2,
        start_date=dt.date(2026, 3, 1),
        end_date=dt.date(2026, 3, 3),
        estimated_cost=Decimal("1500.00"),
        preferences=["beach"],
        days=[
            ItineraryDay(
                day_number=2,
                title="Island hopping",
                activities=[
                    Activity(time="13:00", title="Snorkel", order=1),
                    Activity(time="08:00", title="Boat", order=0, icon="boat"),
                ],
            ),
            ItineraryDay(day_number=1, title="Arrival", date=dt.date(2026, 3, 1)),
        ],
    )
    base.update(overrides)
    return Itinerary(**base)


class TestBuildSnapshot:
    def test_orders_days_and_activities(self):
        snap = build_snapshot(_itinerary())
        assert [d["day_number"] for d in snap["days"]] == [1, 2]
        assert [a["title"] for a in snap["days"][1]["activities"]] == ["Boat", "Snorkel"]

    def test_is_json_serializable(self):
        snap = build_snapshot(_itinerary())
        assert json.loads(json.dumps(snap)) == snap

    def test_scalar_encoding(self):
        snap = build_snapshot(_itinerary())
        assert snap["schema_version"] == SNAPSHOT_SCHEMA_VERSION
        assert snap["start_date"] == "2026-03-01"
        assert snap["estimated_cost"] == 1500
        assert snap["type"] == "CUSTOMIZED"
        assert snap["days"][0]["date"] == "2026-03-01"

    def test_fractional_cost_stays_fractional(self):
        snap = build_snapshot(_itinerary(estimated_cost=Decimal("99.50")))
        assert snap["estimated_cost"] == 99.5

    def test_collaborators_not_captured(self):
        it = _itinerary()
        it.collaborators = [Collaborator(itinerary_id=it.id, user_id=uuid.uuid4())]
        assert "collaborators" not in build_snapshot(it)

    def test_equal_content_gives_equal_snapshots(self):
        it = _itinerary()
        assert build_snapshot(it) == build_snapshot(it)


class TestSnapshotRoundTrip:
    def test_fields_restore_typed_values(self):
        fields = snapshot_fields(build_snapshot(_itinerary()))
        assert fields["start_date"] == dt.date(2026, 3, 1)
        assert fields["estimated_cost"] == Decimal("1500")
        assert fields["status"] == "DRAFT"
        assert "id" not in fields
        assert "version" not in fields

    def test_fields_accept_timestamp_dates(self):
        snap = build_snapshot(_itinerary())
        snap["start_date"] = "2026-03-01T00:00:00.000Z"
        assert snapshot_fields(snap)["start_date"] == dt.date(2026, 3, 1)

    def test_days_validate_as_payloads(self):
        days = snapshot_days(build_snapshot(_itinerary()))
        assert [d.day_number for d in days] == [1, 2]
        assert days[1].activities[0].icon == "boat"

    def test_content_ignores_identity(self):
        a = build_snapshot(_itinerary())
        b = build_snapshot(_itinerary())
        assert a != b
        assert snapshot_content(a) == snapshot_content(b)
