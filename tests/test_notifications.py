"""Tests for notification payload validation and best-effort dispatch."""

from __future__ import annotations

import json
import uuid
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest

from voyages.errors import PayloadError
from voyages.notifications import (
    BookingNotification,
    booking_notification,
    create_notification,
    notify_admins,
    notify_admins_isolated,
    notify_isolated,
    parse_notification,
)

pytestmark = pytest.mark.unit


def _conn_with_savepoint() -> MagicMock:
    conn = MagicMock()
    conn.savepoints = 0

    @asynccontextmanager
    async def _tx():
        conn.savepoints += 1
        yield

    conn.transaction = _tx
    return conn


class TestParseNotification:
    def test_booking_variant(self):
        booking_id = uuid.uuid4()
        n = parse_notification(
            {"type": "BOOKING", "message": "hi", "data": {"booking_id": str(booking_id)}}
        )
        assert isinstance(n, BookingNotification)
        assert n.data.booking_id == booking_id

    def test_payload_must_match_type(self):
        with pytest.raises(PayloadError) as exc_info:
            parse_notification({"type": "BOOKING", "message": "hi", "data": {"key": "x"}})
        assert exc_info.value.code == "INVALID_NOTIFICATION_PAYLOAD"

    def test_unknown_type_rejected(self):
        with pytest.raises(PayloadError):
            parse_notification({"type": "PROMO", "message": "hi", "data": {}})

    def test_empty_message_rejected(self):
        with pytest.raises(PayloadError):
            parse_notification({"type": "FEEDBACK", "message": ""})

    def test_feedback_takes_free_form_data(self):
        n = parse_notification({"type": "FEEDBACK", "message": "thanks", "data": {"stars": 5}})
        assert n.data == {"stars": 5}


class TestCreate:
    async def test_insert_args(self):
        conn = MagicMock()
        conn.fetchval = AsyncMock(return_value=uuid.uuid4())
        user_id = uuid.uuid4()
        booking_id = uuid.uuid4()
        n = booking_notification("Booking created", "Created", booking_id=booking_id)

        await create_notification(conn, user_id, n)

        sql, uid, ntype, title, message, data = conn.fetchval.await_args.args
        assert "INSERT INTO notifications" in sql
        assert (uid, ntype, title, message) == (user_id, "BOOKING", "Booking created", "Created")
        assert json.loads(data) == {"booking_id": str(booking_id)}

    async def test_notify_admins_returns_count(self):
        conn = MagicMock()
        conn.execute = AsyncMock(return_value="INSERT 0 3")
        n = booking_notification("New booking created", "x", booking_id=uuid.uuid4())
        assert await notify_admins(conn, n) == 3
        assert "role = 'ADMIN'" in conn.execute.await_args.args[0]


class TestIsolation:
    async def test_failure_is_logged_not_raised(self, caplog):
        conn = _conn_with_savepoint()
        conn.fetchval = AsyncMock(side_effect=RuntimeError("fk violation"))
        n = booking_notification("t", "m", booking_id=uuid.uuid4())

        with caplog.at_level("WARNING", logger="voyages.notifications"):
            await notify_isolated(conn, uuid.uuid4(), n)

        assert conn.savepoints == 1
        assert "Failed to create BOOKING notification" in caplog.text

    async def test_success_runs_in_savepoint(self):
        conn = _conn_with_savepoint()
        conn.fetchval = AsyncMock(return_value=uuid.uuid4())
        n = booking_notification("t", "m", booking_id=uuid.uuid4())
        await notify_isolated(conn, uuid.uuid4(), n)
        assert conn.savepoints == 1
        conn.fetchval.assert_awaited_once()

    async def test_admin_fanout_failure_swallowed(self, caplog):
        pool = MagicMock()
        pool.execute = AsyncMock(side_effect=ConnectionError("down"))
        with caplog.at_level("WARNING", logger="voyages.notifications"):
            await notify_admins_isolated(
                pool, booking_notification("t", "m", booking_id=uuid.uuid4())
            )
        assert "Failed to notify admins" in caplog.text
