"""Integration tests for itinerary versioning against a real PostgreSQL.

Covers version monotonicity, optimistic-concurrency conflicts, restore, the
append-only history table and collaborator permissions.
"""

from __future__ import annotations

import asyncio
import shutil

import asyncpg
import pytest

from conftest import create_user

_docker_available = shutil.which("docker") is not None

pytestmark = [
    pytest.mark.integration,
    pytest.mark.asyncio(loop_scope="session"),
    pytest.mark.skipif(not _docker_available, reason="Docker not available"),
]


def _days(*titles: str) -> list[dict]:
    return [
        {
            "day_number": i,
            "title": f"Day {i}",
            "activities": [{"time": "09:00", "title": title, "order": 0}],
        }
        for i, title in enumerate(titles, start=1)
    ]


async def _seed(pool, **payload):
    from voyages.itineraries import create_itinerary
    from voyages.schemas import ItineraryInput

    owner = await create_user(pool)
    itinerary = await create_itinerary(
        pool, owner, ItineraryInput(destination="Cebu", days=_days("Arrive"), **payload)
    )
    return owner, itinerary


class TestVersionMonotonicity:
    async def test_create_writes_version_one(self, provisioned_postgres_pool):
        """A new itinerary starts at version 1 with exactly one snapshot."""
        from voyages.itineraries import list_versions

        async with provisioned_postgres_pool() as pool:
            owner, itinerary = await _seed(pool)
            assert itinerary.version == 1
            versions = await list_versions(pool, itinerary.id, owner)
            assert [v.version for v in versions] == [1]
            assert versions[0].snapshot["destination"] == "Cebu"
            assert versions[0].author == "Test User"

    async def test_each_update_adds_one_version(self, provisioned_postgres_pool):
        """N sequential updates leave version N+1 and versions 1..N+1 in history."""
        from voyages.itineraries import list_versions, update_itinerary
        from voyages.schemas import ItineraryUpdate

        async with provisioned_postgres_pool() as pool:
            owner, itinerary = await _seed(pool)
            for n in range(1, 5):
                itinerary = await update_itinerary(
                    pool,
                    itinerary.id,
                    owner,
                    ItineraryUpdate(expected_version=n, travelers=n + 1),
                )
                assert itinerary.version == n + 1

            versions = await list_versions(pool, itinerary.id, owner)
            assert [v.version for v in versions] == [5, 4, 3, 2, 1]
            assert versions[0].snapshot["travelers"] == 5
            assert versions[-1].snapshot["travelers"] == 1

    async def test_days_none_keeps_days(self, provisioned_postgres_pool):
        from voyages.itineraries import get_itinerary, update_itinerary
        from voyages.schemas import ItineraryUpdate

        async with provisioned_postgres_pool() as pool:
            owner, itinerary = await _seed(pool)
            await update_itinerary(
                pool, itinerary.id, owner, ItineraryUpdate(expected_version=1, title="Renamed")
            )
            loaded = await get_itinerary(pool, itinerary.id, owner)
            assert loaded.title == "Renamed"
            assert [a.title for a in loaded.days[0].activities] == ["Arrive"]

    async def test_days_list_replaces_all(self, provisioned_postgres_pool):
        from voyages.itineraries import get_itinerary, update_itinerary
        from voyages.schemas import ItineraryUpdate

        async with provisioned_postgres_pool() as pool:
            owner, itinerary = await _seed(pool)
            await update_itinerary(
                pool,
                itinerary.id,
                owner,
                ItineraryUpdate(expected_version=1, days=_days("Dive", "Hike")),
            )
            loaded = await get_itinerary(pool, itinerary.id, owner)
            assert [d.activities[0].title for d in loaded.days] == ["Dive", "Hike"]

    async def test_invalid_date_range_rejected(self, provisioned_postgres_pool):
        from voyages.errors import PayloadError
        from voyages.itineraries import update_itinerary
        from voyages.schemas import ItineraryUpdate

        async with provisioned_postgres_pool() as pool:
            owner, itinerary = await _seed(pool, start_date="2026-05-10")
            with pytest.raises(PayloadError) as exc_info:
                await update_itinerary(
                    pool,
                    itinerary.id,
                    owner,
                    ItineraryUpdate(expected_version=1, end_date="2026-05-01"),
                )
            assert exc_info.value.code == "INVALID_DATE_RANGE"


class TestOptimisticConcurrency:
    async def test_stale_version_conflicts(self, provisioned_postgres_pool):
        """A write with an old expected_version changes nothing."""
        from voyages.errors import VersionConflictError
        from voyages.itineraries import get_itinerary, list_versions, update_itinerary
        from voyages.schemas import ItineraryUpdate

        async with provisioned_postgres_pool() as pool:
            owner, itinerary = await _seed(pool)
            await update_itinerary(
                pool, itinerary.id, owner, ItineraryUpdate(expected_version=1, title="A")
            )
            with pytest.raises(VersionConflictError):
                await update_itinerary(
                    pool, itinerary.id, owner, ItineraryUpdate(expected_version=1, title="B")
                )
            assert (await get_itinerary(pool, itinerary.id)).title == "A"
            assert len(await list_versions(pool, itinerary.id, owner)) == 2

    async def test_concurrent_writers_exactly_one_wins(self, provisioned_postgres_pool):
        """Two writers holding the same version: one commits, the other conflicts."""
        from voyages.errors import VersionConflictError
        from voyages.itineraries import get_itinerary, list_versions, update_itinerary
        from voyages.schemas import ItineraryUpdate

        async with provisioned_postgres_pool(max_pool_size=4) as pool:
            owner, itinerary = await _seed(pool)
            results = await asyncio.gather(
                update_itinerary(
                    pool,
                    itinerary.id,
                    owner,
                    ItineraryUpdate(expected_version=1, title="first", days=_days("A")),
                ),
                update_itinerary(
                    pool,
                    itinerary.id,
                    owner,
                    ItineraryUpdate(expected_version=1, title="second", days=_days("B", "C")),
                ),
                return_exceptions=True,
            )

            conflicts = [r for r in results if isinstance(r, VersionConflictError)]
            winners = [r for r in results if not isinstance(r, BaseException)]
            assert len(conflicts) == 1
            assert len(winners) == 1

            stored = await get_itinerary(pool, itinerary.id)
            assert stored.version == 2
            assert stored.title == winners[0].title
            assert len(stored.days) == len(winners[0].days)
            assert [v.version for v in await list_versions(pool, itinerary.id, owner)] == [2, 1]


class TestRestore:
    async def test_restore_reapplies_snapshot_as_new_version(self, provisioned_postgres_pool):
        """Restoring version 1 after edits produces v1 content at a new version."""
        from voyages.itineraries import (
            get_itinerary,
            list_versions,
            restore_version,
            update_itinerary,
        )
        from voyages.itineraries.snapshot import build_snapshot, snapshot_content
        from voyages.schemas import ItineraryUpdate

        async with provisioned_postgres_pool() as pool:
            owner, itinerary = await _seed(pool)
            await update_itinerary(
                pool,
                itinerary.id,
                owner,
                ItineraryUpdate(
                    expected_version=1, destination="Bohol", days=_days("Tarsiers", "River")
                ),
            )
            v1 = (await list_versions(pool, itinerary.id, owner))[-1]

            restored = await restore_version(pool, itinerary.id, v1.id, owner, "USER", 2)

            assert restored.version == 3
            stored = await get_itinerary(pool, itinerary.id)
            assert snapshot_content(build_snapshot(stored)) == snapshot_content(v1.snapshot)
            versions = await list_versions(pool, itinerary.id, owner)
            assert [v.version for v in versions] == [3, 2, 1]

            entry = await pool.fetchrow(
                "SELECT metadata FROM activity_logs WHERE action = 'ITINERARY_RESTORED'"
            )
            assert '"restored_from_version": 1' in entry["metadata"]

    async def test_restore_checks_version_and_permissions(self, provisioned_postgres_pool):
        import uuid

        from voyages.errors import ForbiddenError, NotFoundError, VersionConflictError
        from voyages.itineraries import list_versions, restore_version

        async with provisioned_postgres_pool() as pool:
            owner, itinerary = await _seed(pool)
            stranger = await create_user(pool)
            admin = await create_user(pool, role="ADMIN")
            v1 = (await list_versions(pool, itinerary.id, owner))[0]

            with pytest.raises(ForbiddenError):
                await restore_version(pool, itinerary.id, v1.id, stranger, "USER", 1)
            with pytest.raises(NotFoundError) as exc_info:
                await restore_version(pool, itinerary.id, uuid.uuid4(), owner, "USER", 1)
            assert exc_info.value.code == "ITINERARY_VERSION_NOT_FOUND"
            with pytest.raises(VersionConflictError):
                await restore_version(pool, itinerary.id, v1.id, owner, "USER", 5)

            restored = await restore_version(pool, itinerary.id, v1.id, admin, "ADMIN", 1)
            assert restored.version == 2

    async def test_version_detail_scoped_to_itinerary(self, provisioned_postgres_pool):
        from voyages.itineraries import get_version_detail, list_versions

        async with provisioned_postgres_pool() as pool:
            owner, first = await _seed(pool)
            _, second = await _seed(pool)
            v = (await list_versions(pool, first.id, owner))[0]
            assert (await get_version_detail(pool, first.id, v.id, owner)).version == 1
            assert await get_version_detail(pool, second.id, v.id, second.user_id) is None
            assert v.to_dict()["label"] == "Version 1"


class TestAppendOnlyHistory:
    async def test_versions_cannot_be_modified(self, provisioned_postgres_pool):
        async with provisioned_postgres_pool() as pool:
            _, itinerary = await _seed(pool)
            with pytest.raises(asyncpg.exceptions.RestrictViolationError):
                await pool.execute(
                    "UPDATE itinerary_versions SET version = 9 WHERE itinerary_id = $1",
                    itinerary.id,
                )
            with pytest.raises(asyncpg.exceptions.RestrictViolationError):
                await pool.execute(
                    "DELETE FROM itinerary_versions WHERE itinerary_id = $1", itinerary.id
                )

    async def test_audit_log_is_append_only(self, provisioned_postgres_pool):
        async with provisioned_postgres_pool() as pool:
            await _seed(pool)
            with pytest.raises(asyncpg.exceptions.RestrictViolationError):
                await pool.execute("DELETE FROM activity_logs")

    async def test_delete_itinerary_cascades_history(self, provisioned_postgres_pool):
        from voyages.itineraries import delete_itinerary

        async with provisioned_postgres_pool() as pool:
            owner, itinerary = await _seed(pool)
            await delete_itinerary(pool, itinerary.id, owner)
            remaining = await pool.fetchval(
                "SELECT count(*) FROM itinerary_versions WHERE itinerary_id = $1", itinerary.id
            )
            assert remaining == 0


class TestCollaborators:
    async def test_collaborator_edits_only_drafts(self, provisioned_postgres_pool):
        """A collaborator may edit a DRAFT and is refused once the owner moves it on."""
        from voyages.errors import ForbiddenError
        from voyages.itineraries import add_collaborator, update_itinerary
        from voyages.models import ItineraryStatus
        from voyages.schemas import ItineraryUpdate

        async with provisioned_postgres_pool() as pool:
            owner, itinerary = await _seed(pool)
            friend = await create_user(pool, first_name="Ana")
            await add_collaborator(pool, itinerary.id, owner, friend)

            edited = await update_itinerary(
                pool, itinerary.id, friend, ItineraryUpdate(expected_version=1, title="Ours")
            )
            assert edited.version == 2

            with pytest.raises(ForbiddenError):
                await update_itinerary(
                    pool,
                    itinerary.id,
                    friend,
                    ItineraryUpdate(expected_version=2, status=ItineraryStatus.PENDING),
                )

            await update_itinerary(
                pool,
                itinerary.id,
                owner,
                ItineraryUpdate(expected_version=2, status=ItineraryStatus.PENDING),
            )
            with pytest.raises(ForbiddenError):
                await update_itinerary(
                    pool, itinerary.id, friend, ItineraryUpdate(expected_version=3, title="x")
                )

    async def test_edit_waiting_on_archive_sees_archived_row(self, provisioned_postgres_pool):
        """A collaborator edit blocked behind an uncommitted archive is refused after it."""
        from voyages.errors import ForbiddenError
        from voyages.itineraries import add_collaborator, get_itinerary, update_itinerary
        from voyages.schemas import ItineraryUpdate

        async with provisioned_postgres_pool(max_pool_size=3) as pool:
            owner, itinerary = await _seed(pool)
            friend = await create_user(pool)
            await add_collaborator(pool, itinerary.id, owner, friend)

            async with pool.acquire() as conn:
                tx = conn.transaction()
                await tx.start()
                await conn.execute(
                    "UPDATE itineraries SET status = 'ARCHIVED' WHERE id = $1", itinerary.id
                )
                edit = asyncio.create_task(
                    update_itinerary(
                        pool, itinerary.id, friend, ItineraryUpdate(expected_version=1, title="x")
                    )
                )
                await asyncio.sleep(0.5)
                assert not edit.done()
                await tx.commit()

            with pytest.raises(ForbiddenError):
                await edit

            stored = await get_itinerary(pool, itinerary.id)
            assert stored.version == 1
            assert stored.title is None

    async def test_add_is_idempotent_and_owner_rejected(self, provisioned_postgres_pool):
        from voyages.errors import ConflictError, ForbiddenError
        from voyages.itineraries import add_collaborator, list_collaborators

        async with provisioned_postgres_pool() as pool:
            owner, itinerary = await _seed(pool)
            friend = await create_user(pool)
            await add_collaborator(pool, itinerary.id, owner, friend)
            await add_collaborator(pool, itinerary.id, owner, friend)
            assert [c.user_id for c in await list_collaborators(pool, itinerary.id, friend)] == [
                friend
            ]

            with pytest.raises(ConflictError) as exc_info:
                await add_collaborator(pool, itinerary.id, owner, owner)
            assert exc_info.value.code == "CANNOT_ADD_OWNER"
            with pytest.raises(ForbiddenError):
                await add_collaborator(pool, itinerary.id, friend, await create_user(pool))

    async def test_non_member_cannot_view_history(self, provisioned_postgres_pool):
        from voyages.errors import ForbiddenError
        from voyages.itineraries import list_versions

        async with provisioned_postgres_pool() as pool:
            _, itinerary = await _seed(pool)
            with pytest.raises(ForbiddenError):
                await list_versions(pool, itinerary.id, await create_user(pool))


class TestLifecycle:
    async def test_archive_send_confirm(self, provisioned_postgres_pool):
        from voyages.errors import ConflictError
        from voyages.itineraries import (
            archive_itinerary,
            confirm_itinerary,
            send_itinerary,
            update_itinerary,
        )
        from voyages.models import ItineraryStatus, RequestStatus
        from voyages.schemas import ItineraryUpdate

        async with provisioned_postgres_pool() as pool:
            owner, itinerary = await _seed(pool)
            sent = await send_itinerary(pool, itinerary.id, owner)
            assert sent.requested_status == RequestStatus.SENT
            assert sent.sent_status == "Sent"
            assert sent.version == 1

            confirmed = await confirm_itinerary(pool, itinerary.id, owner)
            assert confirmed.requested_status == RequestStatus.CONFIRMED
            assert confirmed.confirmed_at is not None

            archived = await archive_itinerary(pool, itinerary.id, owner)
            assert archived.status == ItineraryStatus.ARCHIVED
            again = await archive_itinerary(pool, itinerary.id, owner)
            assert again.status == ItineraryStatus.ARCHIVED

            with pytest.raises(ConflictError) as exc_info:
                await send_itinerary(pool, itinerary.id, owner)
            assert exc_info.value.code == "ITINERARY_ARCHIVED"

            with pytest.raises(ConflictError):
                await update_itinerary(
                    pool, itinerary.id, owner, ItineraryUpdate(expected_version=1, title="x")
                )
