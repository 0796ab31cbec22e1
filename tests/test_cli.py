"""Tests for the voyages CLI."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from voyages.cli import cli
from voyages.models import Page

pytestmark = pytest.mark.unit


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_dir(tmp_path):
    (tmp_path / "voyages.toml").write_text(
        '[voyages]\nname = "voyages"\n\n'
        '[voyages.db]\nname = "voyages_cli"\n'
        'url = "postgresql://u:p@dbhost:5433/x"\n'
    )
    return tmp_path


@pytest.fixture(autouse=True)
def _no_global_setup():
    with (
        patch("voyages.cli.configure_logging") as configure,
        patch("voyages.cli.init_telemetry") as init,
    ):
        yield configure, init


def test_config_error_exits(runner, tmp_path):
    result = runner.invoke(cli, ["--config-dir", str(tmp_path), "db", "provision"])
    assert result.exit_code == 1
    assert "Config error" in result.output


def test_configures_logging_from_file(runner, config_dir, _no_global_setup):
    configure, init = _no_global_setup
    with patch("voyages.db.Database.provision", new=AsyncMock()):
        result = runner.invoke(cli, ["--config-dir", str(config_dir), "db", "provision"])
    assert result.exit_code == 0, result.output
    assert configure.call_args.kwargs["service_name"] == "voyages"
    init.assert_called_once_with("voyages")
    assert "Database ready: voyages_cli" in result.output


def test_migrate_provisions_then_upgrades(runner, config_dir):
    provision = AsyncMock()
    migrate = AsyncMock()
    with (
        patch("voyages.db.Database.provision", new=provision),
        patch("voyages.cli.run_migrations", new=migrate),
    ):
        result = runner.invoke(
            cli, ["--config-dir", str(config_dir), "db", "migrate", "--chain", "all"]
        )
    assert result.exit_code == 0, result.output
    provision.assert_awaited_once()
    url = migrate.await_args.args[0]
    assert url == "postgresql://u:p@dbhost:5433/voyages_cli"
    assert migrate.await_args.kwargs["chain"] == "all"


def test_audit_prints_entries(runner, config_dir):
    entry = {"action": "BOOKING_CREATED", "entity_id": "b1"}
    listing = AsyncMock(return_value=Page(items=[entry], total=1, limit=5, offset=0))
    with (
        patch("voyages.db.Database.connect", new=AsyncMock(return_value=MagicMock())),
        patch("voyages.db.Database.close", new=AsyncMock()),
        patch("voyages.cli.list_audit", new=listing),
    ):
        result = runner.invoke(
            cli,
            ["--config-dir", str(config_dir), "audit", "--entity-type", "BOOKING", "--limit", "5"],
        )
    assert result.exit_code == 0, result.output
    assert '"action": "BOOKING_CREATED"' in result.output
    assert listing.await_args.kwargs["entity_type"] == "BOOKING"
    assert listing.await_args.kwargs["limit"] == 5
