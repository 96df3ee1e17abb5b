"""CLI for inspecting contact scopes: view models, group listing, reference resolution."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

import click

from contact_scopes import __version__
from contact_scopes.batch import resolve_reference_ids
from contact_scopes.config import ConfigError, ContactScopesConfig, load_config
from contact_scopes.core.logging import configure_logging
from contact_scopes.core.telemetry import init_telemetry
from contact_scopes.db import Database, db_params_from_env, db_params_from_url
from contact_scopes.errors import ReferenceResolutionError
from contact_scopes.groups import list_groups
from contact_scopes.models import view_model_to_payload
from contact_scopes.record_store import PostgresRecordStore, RecordStore
from contact_scopes.resources import ResourceLabelResolver, resolver_from_config
from contact_scopes.scope_state import ScopeStateStore
from contact_scopes.view_model import ScopeViewModelAssembler

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Services:
    """Collaborators opened for one CLI invocation."""

    store: RecordStore
    resources: ResourceLabelResolver
    scope_states: ScopeStateStore


def _database_from_config(config: ContactScopesConfig) -> Database:
    db_cfg = config.database
    params = db_params_from_url(db_cfg.url) if db_cfg.url else db_params_from_env()
    return Database.from_params(params, db_name=db_cfg.name, schema=db_cfg.schema)


@asynccontextmanager
async def open_services(config: ContactScopesConfig) -> AsyncIterator[Services]:
    """Open the database pool and resource resolver; release both on exit."""
    db = _database_from_config(config)
    pool = await db.connect()
    resources = resolver_from_config(config.resources)
    try:
        yield Services(
            store=PostgresRecordStore(pool, tables=config.database.tables),
            resources=resources,
            scope_states=ScopeStateStore(pool),
        )
    finally:
        await resources.shutdown()
        await db.close()


def _run(config: ContactScopesConfig, fn: Callable[[Services], Awaitable[T]]) -> T:
    async def _main() -> T:
        async with open_services(config) as services:
            return await fn(services)

    return asyncio.run(_main())


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _setup_observability(config: ContactScopesConfig, application: str | None = None) -> None:
    """Configure logging (per-application log file when *application* is set) and tracing."""
    configure_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_root=Path(config.logging.log_root) if config.logging.log_root else None,
        application=application,
    )
    init_telemetry()


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Directory containing contact_scopes.toml",
)
@click.pass_context
def cli(ctx: click.Context, config_dir: Path | None) -> None:
    """Contact scopes: resolve per-application contact access scopes."""
    try:
        config = load_config(config_dir) if config_dir is not None else ContactScopesConfig()
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    ctx.obj = config


@cli.command()
@click.argument("application")
@click.pass_obj
def view(config: ContactScopesConfig, application: str) -> None:
    """Print the scope view model of APPLICATION as JSON."""
    _setup_observability(config, application)

    async def _view(services: Services) -> dict[str, Any]:
        assembler = ScopeViewModelAssembler(
            services.store,
            services.resources,
            authority=config.view_model.authority,
            max_concurrent_lookups=config.view_model.max_concurrent_lookups,
        )
        blob = await services.scope_states.load_blob(application)
        return view_model_to_payload(await assembler.build(blob, application))

    _echo_json(_run(config, _view))


@cli.command()
@click.argument("application")
@click.pass_obj
def decode(config: ContactScopesConfig, application: str) -> None:
    """Print the decoded scope state of APPLICATION (identifiers only)."""
    _setup_observability(config, application)

    async def _decode(services: Services) -> dict[str, list[int]]:
        state = await services.scope_states.load(application)
        return {
            "groups": list(state.groups),
            "contacts": list(state.contacts),
            "numbers": list(state.numbers),
            "emails": list(state.emails),
        }

    _echo_json(_run(config, _decode))


@cli.command()
@click.pass_obj
def groups(config: ContactScopesConfig) -> None:
    """List groups that can be added to a scope, sorted by title."""
    _setup_observability(config)

    async def _groups(services: Services) -> list[dict[str, Any]]:
        infos = await list_groups(services.store, services.resources)
        return [info.to_payload() for info in infos]

    _echo_json(_run(config, _groups))


@cli.command("resolve-ids")
@click.argument("references", nargs=-1, required=True)
@click.pass_obj
def resolve_ids(config: ContactScopesConfig, references: tuple[str, ...]) -> None:
    """Resolve REFERENCES (content:// URIs) to identifiers; fails if any is missing."""
    _setup_observability(config)

    async def _resolve(services: Services) -> list[int]:
        return await resolve_reference_ids(
            services.store, references, authority=config.view_model.authority
        )

    try:
        ids = _run(config, _resolve)
    except ReferenceResolutionError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json({"ids": ids})


def main() -> None:
    cli()
