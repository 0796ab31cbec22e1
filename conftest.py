"""Root conftest: shared Postgres testcontainer and seeding helpers.

Each use of ``provisioned_postgres_pool`` creates a fresh database with a
random name and migrates it to head, so rows never leak between tests.
"""

from __future__ import annotations

import shutil
import uuid
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import TYPE_CHECKING, Any

import pytest

if TYPE_CHECKING:
    from asyncpg.pool import Pool
    from testcontainers.postgres import PostgresContainer

docker_available = shutil.which("docker") is not None


def _unique_test_db_name() -> str:
    return f"test_{uuid.uuid4().hex[:12]}"


@pytest.fixture(scope="session")
def postgres_container() -> Iterator[PostgresContainer]:
    """Shared Postgres testcontainer for all DB-backed tests in this pytest session."""
    from testcontainers.postgres import PostgresContainer

    with PostgresContainer("postgres:16") as pg:
        yield pg


@pytest.fixture
def provisioned_postgres_pool(
    postgres_container: PostgresContainer,
) -> Callable[..., AbstractAsyncContextManager[Pool]]:
    """Create a fresh, migrated database and asyncpg pool for a single test usage.

    Tests should use this as:
        async with provisioned_postgres_pool() as pool:
            ...
    """
    from voyages.db import Database, database_url
    from voyages.migrations import run_migrations

    @asynccontextmanager
    async def _provision(
        *,
        min_pool_size: int = 1,
        max_pool_size: int = 5,
    ) -> AsyncIterator[Pool]:
        db = Database(
            db_name=_unique_test_db_name(),
            host=postgres_container.get_container_host_ip(),
            port=int(postgres_container.get_exposed_port(5432)),
            user=postgres_container.username,
            password=postgres_container.password,
            min_pool_size=min_pool_size,
            max_pool_size=max_pool_size,
        )
        await db.provision()
        await run_migrations(database_url(db))
        pool = await db.connect()
        try:
            yield pool
        finally:
            await db.close()

    return _provision


async def create_user(
    pool: Any,
    *,
    role: str = "USER",
    first_name: str = "Test",
    last_name: str = "User",
) -> uuid.UUID:
    """Insert a user with a unique email and return its id."""
    return await pool.fetchval(
        "INSERT INTO users (first_name, last_name, email, role) "
        "VALUES ($1, $2, $3, $4) RETURNING id",
        first_name,
        last_name,
        f"{uuid.uuid4().hex[:10]}@example.com",
        role,
    )
