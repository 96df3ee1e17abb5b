"""Scope view model assembly: scope blob -> keyed, display-ready scope entries."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from opentelemetry import trace

from contact_scopes.core.logging import reset_application_context, set_application_context
from contact_scopes.core.telemetry import get_tracer
from contact_scopes.models import (
    DEFAULT_AUTHORITY,
    EntityType,
    ScopeEntry,
    ScopeViewModel,
)
from contact_scopes.record_store import RecordStore
from contact_scopes.resolvers import ResolverContext, resolve_entry
from contact_scopes.resources import NullResourceResolver, ResourceLabelResolver
from contact_scopes.scope_state import ScopeState, decode_scope_state

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT_LOOKUPS = 8


class ScopeViewModelAssembler:
    """Builds the permission UI view model of one application's contact scope.

    Identifiers of a bucket are resolved concurrently (bounded by
    *max_concurrent_lookups*) and collected in their stored order. Buckets
    are visited in :class:`EntityType` order and empty ones are left out.
    """

    def __init__(
        self,
        store: RecordStore,
        resources: ResourceLabelResolver | None = None,
        *,
        authority: str = DEFAULT_AUTHORITY,
        max_concurrent_lookups: int = DEFAULT_MAX_CONCURRENT_LOOKUPS,
        tracer: trace.Tracer | None = None,
    ) -> None:
        if max_concurrent_lookups < 1:
            raise ValueError("max_concurrent_lookups must be >= 1")
        self._ctx = ResolverContext(
            store=store,
            resources=resources if resources is not None else NullResourceResolver(),
            authority=authority,
        )
        self._max_concurrent_lookups = max_concurrent_lookups
        self._tracer = tracer if tracer is not None else get_tracer()

    async def _resolve_bucket(
        self,
        entity_type: EntityType,
        ids: Sequence[int],
        semaphore: asyncio.Semaphore,
    ) -> list[ScopeEntry]:
        async def _resolve_one(entity_id: int) -> ScopeEntry:
            async with semaphore:
                return await resolve_entry(self._ctx, entity_type, entity_id)

        # gather() returns results in argument order regardless of completion order.
        return list(await asyncio.gather(*(_resolve_one(i) for i in ids)))

    async def assemble(self, state: ScopeState, application: str | None = None) -> ScopeViewModel:
        """Resolve every identifier of *state* into the keyed view model."""
        token = set_application_context(application)
        try:
            with self._tracer.start_as_current_span("contact_scopes.view_model") as span:
                span.set_attribute("scope.application", application or "")
                semaphore = asyncio.Semaphore(self._max_concurrent_lookups)
                result: ScopeViewModel = {}
                for entity_type, ids in state.buckets():
                    entries = await self._resolve_bucket(entity_type, ids, semaphore)
                    span.set_attribute(f"scope.{entity_type.name.lower()}.count", len(entries))
                    if entries:
                        result[str(int(entity_type))] = entries
                logger.debug(
                    "Assembled contact scope view model for %s: %s",
                    application,
                    {key: len(entries) for key, entries in result.items()},
                )
                return result
        finally:
            reset_application_context(token)

    async def build(
        self,
        blob: bytes | str | Mapping[str, Any] | None,
        application: str | None = None,
    ) -> ScopeViewModel:
        """Decode *blob* (undecodable input counts as an empty scope) and assemble it."""
        return await self.assemble(decode_scope_state(blob, application), application)


async def build_view_model(
    blob: bytes | str | Mapping[str, Any] | None,
    application: str | None,
    store: RecordStore,
    resources: ResourceLabelResolver | None = None,
    **kwargs: Any,
) -> ScopeViewModel:
    """One-shot helper around :class:`ScopeViewModelAssembler`."""
    assembler = ScopeViewModelAssembler(store, resources, **kwargs)
    return await assembler.build(blob, application)
