"""Year-scoped booking code allocation (``BV-{year}-{seq:03d}``).

Codes are issued from the ``booking_sequences`` row for the current year
inside the booking's own transaction:

1. create the year's row if missing (``ON CONFLICT DO NOTHING``);
2. lock the row with ``SELECT ... FOR UPDATE``;
3. find the highest numeric suffix already used in ``bookings`` for the year;
4. take ``max(current_number, observed) + 1`` and store it with the code.

The row lock serialises concurrent issuers for the same year. Step 4 heals a
sequence row that fell behind the codes actually in use. If the booking
transaction rolls back, so does the increment.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

BOOKING_CODE_PREFIX = "BV"
BOOKING_CODE_PADDING = 3

_CODE_PATTERN = re.compile(rf"^{BOOKING_CODE_PREFIX}-(\d{{4}})-(\d+)$")


def format_booking_code(year: int, sequence: int) -> str:
    """``format_booking_code(2026, 7) == "BV-2026-007"``; longer numbers are not truncated."""
    return f"{BOOKING_CODE_PREFIX}-{year}-{sequence:0{BOOKING_CODE_PADDING}d}"


def parse_booking_code(code: str) -> tuple[int, int] | None:
    """Return ``(year, sequence)`` for a well-formed code, else ``None``."""
    match = _CODE_PATTERN.match(code)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


async def highest_issued_number(conn: Any, year: int) -> int:
    """Highest numeric suffix among the year's booking codes (0 if none).

    Compares numerically, so ``BV-2026-1000`` ranks above ``BV-2026-999``.
    """
    value = await conn.fetchval(
        "SELECT max(split_part(booking_code, '-', 3)::int) FROM bookings "
        "WHERE booking_code ~ $1",
        rf"^{BOOKING_CODE_PREFIX}-{year}-[0-9]+$",
    )
    return int(value or 0)


async def issue_booking_code(conn: Any, year: int | None = None) -> str:
    """Allocate the next booking code for *year* (default: current UTC year).

    Must run inside the transaction that inserts the booking.
    """
    if year is None:
        year = datetime.now(UTC).year

    await conn.execute(
        "INSERT INTO booking_sequences (year, current_number) VALUES ($1, 0) "
        "ON CONFLICT (year) DO NOTHING",
        year,
    )
    current = await conn.fetchval(
        "SELECT current_number FROM booking_sequences WHERE year = $1 FOR UPDATE",
        year,
    )
    # Read after taking the lock so codes committed by the previous holder count.
    observed = await highest_issued_number(conn, year)
    if current < observed:
        logger.warning(
            "Booking sequence for %d was behind issued codes (%d < %d); advancing",
            year,
            current,
            observed,
        )
    next_number = max(current, observed) + 1
    code = format_booking_code(year, next_number)
    await conn.execute(
        "UPDATE booking_sequences SET current_number = $2, last_issued_code = $3, "
        "updated_at = now() WHERE year = $1",
        year,
        next_number,
        code,
    )
    return code
