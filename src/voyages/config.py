"""Service configuration loading and validation.

Reads ``voyages.toml`` from a config directory, resolves ``${VAR}``
references against the environment, and returns a validated
``VoyagesConfig`` dataclass.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from voyages.db import Database, db_params_from_env, db_params_from_url

CONFIG_FILENAME = "voyages.toml"

# Pattern matching ${VAR_NAME}, alphanumeric + underscore variable names.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_DB_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_\-]*$")


class ConfigError(Exception):
    """Raised when configuration is missing, malformed, or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from [voyages.logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class DatabaseConfig:
    """Connection settings from [voyages.db].

    ``url`` overrides the ``DATABASE_URL`` / ``POSTGRES_*`` environment when
    set; ``name`` always selects the database on that server.
    """

    name: str = "voyages"
    url: str | None = None
    min_pool_size: int = 2
    max_pool_size: int = 10


@dataclass
class TelemetryConfig:
    """Tracing settings from [voyages.telemetry]."""

    service_name: str = "voyages"


@dataclass
class VoyagesConfig:
    """Parsed and validated service configuration."""

    name: str = "voyages"
    db: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)

    def database(self) -> Database:
        """Build the ``Database`` described by this configuration.

        ``db.url`` takes precedence over the process environment.
        """
        params = db_params_from_url(self.db.url) if self.db.url else db_params_from_env()
        return Database(
            db_name=self.db.name,
            host=str(params["host"]),
            port=int(params["port"]),
            user=str(params["user"]),
            password=str(params["password"]),
            ssl=params["ssl"] if isinstance(params["ssl"], str) else None,
            min_pool_size=self.db.min_pool_size,
            max_pool_size=self.db.max_pool_size,
        )


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings.  Non-string leaf values (int, bool,
    float, None) are returned unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s* with env var values.

    Collects all missing variable names and reports them in a single error.
    """
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {vars_str} (original: {s!r})"
        )

    return result


def _positive_int(section: dict[str, Any], key: str, default: int, path: str) -> int:
    raw = section.get(key, default)
    if isinstance(raw, bool):
        raise ConfigError(f"Invalid {path}.{key}: {raw!r}. Must be a positive integer.")
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {path}.{key}: {raw!r}. Must be a positive integer.") from exc
    if value <= 0:
        raise ConfigError(f"Invalid {path}.{key}: {value!r}. Must be a positive integer.")
    return value


def _parse_db(section: dict[str, Any]) -> DatabaseConfig:
    name = str(section.get("name", "voyages")).strip()
    if not name:
        raise ConfigError("voyages.db.name must be a non-empty string")
    if _DB_NAME_PATTERN.fullmatch(name) is None:
        raise ConfigError(f"Invalid voyages.db.name: {name!r}. Expected an identifier-style name.")

    url = section.get("url")
    if url is not None and not isinstance(url, str):
        raise ConfigError("voyages.db.url must be a string when set")

    min_size = _positive_int(section, "min_pool_size", 2, "voyages.db")
    max_size = _positive_int(section, "max_pool_size", 10, "voyages.db")
    if min_size > max_size:
        raise ConfigError(
            f"voyages.db.min_pool_size ({min_size}) exceeds max_pool_size ({max_size})"
        )
    return DatabaseConfig(
        name=name, url=url or None, min_pool_size=min_size, max_pool_size=max_size
    )


def _parse_logging(section: dict[str, Any]) -> LoggingConfig:
    log_level = str(section.get("level", "INFO")).upper()
    log_format = str(section.get("format", "text")).lower()
    if log_format not in ("text", "json"):
        raise ConfigError(
            f"Invalid voyages.logging.format: {log_format!r}. Expected 'text' or 'json'."
        )
    return LoggingConfig(level=log_level, format=log_format, log_root=section.get("log_root"))


def load_config(config_dir: Path) -> VoyagesConfig:
    """Load and validate ``voyages.toml`` from *config_dir*.

    Parameters
    ----------
    config_dir:
        Directory containing ``voyages.toml``.

    Returns
    -------
    VoyagesConfig
        Fully parsed and validated configuration.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or has invalid values.
    """
    toml_path = config_dir / CONFIG_FILENAME

    if not toml_path.exists():
        raise ConfigError(f"Config file not found: {toml_path}")

    try:
        data = tomllib.loads(toml_path.read_bytes().decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    # --- Resolve env var references before any validation ---
    data = resolve_env_vars(data)

    # --- [voyages] section (required) ---
    section = data.get("voyages")
    if not isinstance(section, dict):
        raise ConfigError("Missing [voyages] section in config")

    name = str(section.get("name", "voyages")).strip()
    if not name:
        raise ConfigError("voyages.name must be a non-empty string")

    # --- [voyages.telemetry] sub-section ---
    telemetry_section = section.get("telemetry", {})
    service_name = str(telemetry_section.get("service_name", name)).strip() or name

    return VoyagesConfig(
        name=name,
        db=_parse_db(section.get("db", {})),
        logging=_parse_logging(section.get("logging", {})),
        telemetry=TelemetryConfig(service_name=service_name),
    )
