"""Configuration loading and validation.

Reads ``contact_scopes.toml`` from a config directory and returns a validated
:class:`ContactScopesConfig`. ``${VAR}`` references in string values are
resolved from the environment before validation.
"""

from __future__ import annotations

import enum
import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from contact_scopes.models import DEFAULT_AUTHORITY, RecordKind

CONFIG_FILENAME = "contact_scopes.toml"

_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


class ConfigError(Exception):
    """Raised when configuration is missing, malformed, or invalid."""


class ResourceResolverKind(enum.StrEnum):
    """Backend used to resolve foreign-package group titles."""

    NONE = "none"
    STATIC = "static"
    HTTP = "http"


@dataclass
class LoggingConfig:
    """[logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class DatabaseConfig:
    """[database] section.

    ``url`` wins over the ``DATABASE_URL`` / ``POSTGRES_*`` environment; ``name``
    overrides the database named by either.
    """

    url: str | None = None
    name: str | None = None
    schema: str | None = None
    tables: dict[RecordKind, str] = field(default_factory=dict)


@dataclass
class ResourcesConfig:
    """[resources] section."""

    kind: ResourceResolverKind = ResourceResolverKind.NONE
    base_url: str | None = None
    timeout_s: float = 10.0
    labels: dict[str, dict[int, str]] = field(default_factory=dict)


@dataclass
class ViewModelConfig:
    """[view_model] section."""

    max_concurrent_lookups: int = 8
    authority: str = DEFAULT_AUTHORITY


@dataclass
class ContactScopesConfig:
    """Parsed and validated configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    resources: ResourcesConfig = field(default_factory=ResourcesConfig)
    view_model: ViewModelConfig = field(default_factory=ViewModelConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in parsed TOML values.

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
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {', '.join(missing)} "
            f"(original: {s!r})"
        )
    return result


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _parse_database(section: dict[str, Any]) -> DatabaseConfig:
    schema = section.get("schema")
    if schema is not None and (
        not isinstance(schema, str) or _IDENTIFIER_PATTERN.fullmatch(schema.strip()) is None
    ):
        raise ConfigError(f"Invalid database.schema: {schema!r}")

    tables: dict[RecordKind, str] = {}
    raw_tables = section.get("tables", {})
    if not isinstance(raw_tables, dict):
        raise ConfigError("[database.tables] must be a table")
    for key, table in raw_tables.items():
        try:
            kind = RecordKind(key)
        except ValueError:
            valid = ", ".join(k.value for k in RecordKind)
            raise ConfigError(
                f"Unknown record kind in [database.tables]: {key!r}. Expected one of: {valid}"
            ) from None
        if not isinstance(table, str) or _IDENTIFIER_PATTERN.fullmatch(table) is None:
            raise ConfigError(f"Invalid table name for database.tables.{key}: {table!r}")
        tables[kind] = table

    return DatabaseConfig(
        url=section.get("url"),
        name=section.get("name"),
        schema=schema.strip() if isinstance(schema, str) else None,
        tables=tables,
    )


def _parse_resources(section: dict[str, Any]) -> ResourcesConfig:
    raw_kind = str(section.get("kind", ResourceResolverKind.NONE.value)).strip().lower()
    try:
        kind = ResourceResolverKind(raw_kind)
    except ValueError:
        valid = ", ".join(k.value for k in ResourceResolverKind)
        raise ConfigError(
            f"Invalid resources.kind: {raw_kind!r}. Expected one of: {valid}"
        ) from None

    base_url = section.get("base_url")
    if kind is ResourceResolverKind.HTTP and not base_url:
        raise ConfigError("resources.base_url is required when resources.kind is 'http'")

    try:
        timeout_s = float(section.get("timeout_s", 10.0))
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid resources.timeout_s: {section.get('timeout_s')!r}") from None
    if timeout_s <= 0:
        raise ConfigError(f"Invalid resources.timeout_s: {timeout_s!r}. Must be positive.")

    labels: dict[str, dict[int, str]] = {}
    raw_labels = section.get("labels", {})
    if not isinstance(raw_labels, dict):
        raise ConfigError("[resources.labels] must be a table")
    for package, table in raw_labels.items():
        if not isinstance(table, dict):
            raise ConfigError(f"[resources.labels.{package}] must be a table")
        parsed: dict[int, str] = {}
        for resource_id, text in table.items():
            try:
                parsed[int(resource_id)] = str(text)
            except ValueError:
                raise ConfigError(
                    f"Invalid resource id in [resources.labels.{package}]: {resource_id!r}"
                ) from None
        labels[package] = parsed

    return ResourcesConfig(kind=kind, base_url=base_url, timeout_s=timeout_s, labels=labels)


def _parse_view_model(section: dict[str, Any]) -> ViewModelConfig:
    raw_limit = section.get("max_concurrent_lookups", 8)
    try:
        limit = int(raw_limit)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid view_model.max_concurrent_lookups: {raw_limit!r}") from None
    if limit < 1:
        raise ConfigError(
            f"Invalid view_model.max_concurrent_lookups: {limit!r}. Must be a positive integer."
        )
    authority = str(section.get("authority", DEFAULT_AUTHORITY)).strip()
    if not authority or "/" in authority:
        raise ConfigError(f"Invalid view_model.authority: {authority!r}")
    return ViewModelConfig(max_concurrent_lookups=limit, authority=authority)


def _parse_logging(section: dict[str, Any]) -> LoggingConfig:
    log_format = str(section.get("format", "text")).lower()
    if log_format not in ("text", "json"):
        raise ConfigError(f"Invalid logging.format: {log_format!r}. Expected 'text' or 'json'.")
    return LoggingConfig(
        level=str(section.get("level", "INFO")).upper(),
        format=log_format,
        log_root=section.get("log_root"),
    )


def parse_config(data: dict[str, Any]) -> ContactScopesConfig:
    """Validate already-parsed TOML *data* (env references are resolved first)."""
    data = resolve_env_vars(data)
    return ContactScopesConfig(
        database=_parse_database(_section(data, "database")),
        resources=_parse_resources(_section(data, "resources")),
        view_model=_parse_view_model(_section(data, "view_model")),
        logging=_parse_logging(_section(data, "logging")),
    )


def load_config(config_dir: Path) -> ContactScopesConfig:
    """Load and validate ``contact_scopes.toml`` from *config_dir*.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or holds invalid values.
    """
    toml_path = Path(config_dir) / CONFIG_FILENAME
    if not toml_path.exists():
        raise ConfigError(f"Config file not found: {toml_path}")

    try:
        data = tomllib.loads(toml_path.read_bytes().decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    return parse_config(data)
