"""Optimistic concurrency control for itinerary mutations.

Every versioned write is a single conditional UPDATE::

    UPDATE itineraries SET ..., version = version + 1
    WHERE id = $n AND version = $expected
    RETURNING ...

An empty result means another writer advanced the version first and the
caller gets :class:`~voyages.errors.VersionConflictError`. The compare and
the increment happen in one statement, so there is no window between a read
and a write for a concurrent writer to slip into.

All functions here run on a connection with an open transaction owned by the
caller. Day replacement and the version append happen in that same
transaction, so the counter, the child rows and the version log commit or
roll back together.
"""

from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import Sequence
from typing import Any

from voyages.errors import NotFoundError, VersionConflictError
from voyages.itineraries.snapshot import build_snapshot
from voyages.itineraries.store import check_columns, insert_days, load_itinerary
from voyages.itineraries.versions import append_version
from voyages.models import Itinerary
from voyages.schemas import DayInput

logger = logging.getLogger(__name__)


async def conditional_update(
    conn: Any,
    itinerary_id: uuid.UUID,
    expected_version: int,
    fields: dict[str, Any],
) -> int:
    """Apply *fields* and bump the version iff it still equals *expected_version*.

    Returns
    -------
    int
        The new version number (``expected_version + 1``).

    Raises
    ------
    VersionConflictError
        No row matched ``id`` and ``version`` together.
    ValueError
        *fields* names a column that is not an updatable itinerary column.
    """
    check_columns(fields)

    assignments: list[str] = []
    args: list[Any] = []
    for idx, (column, value) in enumerate(fields.items(), start=1):
        assignments.append(f"{column} = ${idx}")
        args.append(value.value if isinstance(value, enum.Enum) else value)
    assignments.append("version = version + 1")
    assignments.append("updated_at = now()")

    n = len(args)
    new_version = await conn.fetchval(
        f"UPDATE itineraries SET {', '.join(assignments)} "
        f"WHERE id = ${n + 1} AND version = ${n + 2} "
        "RETURNING version",
        *args,
        itinerary_id,
        expected_version,
    )
    if new_version is None:
        logger.info(
            "Version conflict on itinerary %s (expected version %d)",
            itinerary_id,
            expected_version,
        )
        raise VersionConflictError(itinerary_id, expected_version)
    return new_version


async def replace_days(conn: Any, itinerary_id: uuid.UUID, days: Sequence[DayInput]) -> None:
    """Delete every day (activities cascade) and recreate them from *days*."""
    await conn.execute("DELETE FROM itinerary_days WHERE itinerary_id = $1", itinerary_id)
    await insert_days(conn, itinerary_id, days)


async def apply_versioned_update(
    conn: Any,
    itinerary_id: uuid.UUID,
    expected_version: int,
    fields: dict[str, Any],
    days: Sequence[DayInput] | None,
    actor_id: uuid.UUID | None,
) -> Itinerary:
    """Run one complete versioned write and return the reloaded itinerary.

    Steps: conditional update, wholesale day replacement (skipped when *days*
    is ``None``), snapshot of the new state, version append under the new
    number. Must be called inside a transaction.
    """
    new_version = await conditional_update(conn, itinerary_id, expected_version, fields)
    if days is not None:
        await replace_days(conn, itinerary_id, days)

    itinerary = await load_itinerary(conn, itinerary_id)
    if itinerary is None:
        raise NotFoundError("ITINERARY_NOT_FOUND")
    await append_version(conn, itinerary_id, new_version, build_snapshot(itinerary), actor_id)
    return itinerary
