"""CLI for voyages: database provisioning, migrations and audit inspection."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click

from voyages.audit import EntityType, list_audit
from voyages.config import ConfigError, VoyagesConfig, load_config
from voyages.core.logging import configure_logging
from voyages.core.telemetry import init_telemetry
from voyages.db import database_url
from voyages.migrations import run_migrations

logger = logging.getLogger(__name__)

# Default directory holding voyages.toml
DEFAULT_CONFIG_DIR = Path(".")


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=DEFAULT_CONFIG_DIR,
    help="Directory containing voyages.toml",
)
@click.pass_context
def cli(ctx: click.Context, config_dir: Path) -> None:
    """voyages: itinerary versioning and booking lifecycle service."""
    try:
        config = load_config(config_dir)
    except ConfigError as exc:
        click.echo(f"Config error: {exc}", err=True)
        sys.exit(1)
    configure_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_root=config.logging.log_root,
        service_name=config.name,
    )
    init_telemetry(config.telemetry.service_name)
    ctx.obj = config


@cli.group()
def db() -> None:
    """Database management."""


@db.command()
@click.pass_obj
def provision(config: VoyagesConfig) -> None:
    """Create the configured database if it does not exist."""
    asyncio.run(config.database().provision())
    click.echo(f"Database ready: {config.db.name}")


@db.command()
@click.option("--chain", default="core", show_default=True, help="Version chain, or 'all'")
@click.pass_obj
def migrate(config: VoyagesConfig, chain: str) -> None:
    """Provision the database and upgrade it to head."""
    database = config.database()

    async def _migrate() -> None:
        await database.provision()
        await run_migrations(database_url(database), chain=chain)

    asyncio.run(_migrate())
    click.echo(f"Migrated {config.db.name} (chain={chain})")


@cli.command()
@click.option(
    "--entity-type",
    type=click.Choice([e.value for e in EntityType]),
    default=None,
    help="Filter by entity type",
)
@click.option("--entity-id", default=None, help="Filter by entity id")
@click.option("--limit", type=int, default=20, show_default=True)
@click.pass_obj
def audit(
    config: VoyagesConfig, entity_type: str | None, entity_id: str | None, limit: int
) -> None:
    """Print recent audit entries as JSON lines."""

    async def _list() -> None:
        database = config.database()
        await database.connect()
        try:
            page = await list_audit(
                database, entity_type=entity_type, entity_id=entity_id, limit=limit
            )
        finally:
            await database.close()
        for entry in page.items:
            click.echo(json.dumps(entry))
        click.echo(f"{len(page.items)} of {page.total} entries", err=True)

    asyncio.run(_list())


def main() -> None:
    cli()
