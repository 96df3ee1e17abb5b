"""Per-entity resolvers: one scope identifier -> one :class:`ScopeEntry`.

Every resolver is best-effort. A missing backing record blanks the entry's
title, summary and detail reference but never drops the entry, since the
identifier itself is authoritative.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from contact_scopes.errors import UnsupportedEntityTypeError
from contact_scopes.groups import get_group_info
from contact_scopes.models import (
    DEFAULT_AUTHORITY,
    CommonDataRecord,
    DetailReference,
    EntityAddress,
    EntityType,
    RecordKind,
    ScopeEntry,
)
from contact_scopes.record_store import (
    CONTACT_NAME_RAW_CONTACT_ID,
    DATA_DATA1,
    DATA_DATA2,
    DATA_RAW_CONTACT_ID,
    RAW_CONTACT_DISPLAY_NAME_PRIMARY,
    RecordStore,
)
from contact_scopes.resources import NullResourceResolver, ResourceLabelResolver
from contact_scopes.subtypes import parse_subtype, resolve_subtype_label

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolverContext:
    """Collaborators shared by all entity resolvers of one request."""

    store: RecordStore
    resources: ResourceLabelResolver = field(default_factory=NullResourceResolver)
    authority: str = DEFAULT_AUTHORITY

    def reference(self, kind: RecordKind, record_id: int) -> DetailReference:
        return DetailReference(kind=kind, id=record_id, authority=self.authority)


async def get_display_name(store: RecordStore, raw_contact_id: int) -> str | None:
    """Return the primary display name of a raw contact, or ``None``."""
    row = await store.lookup(
        EntityAddress(kind=RecordKind.RAW_CONTACT, id=raw_contact_id),
        (RAW_CONTACT_DISPLAY_NAME_PRIMARY,),
    )
    if row is None:
        return None
    return row.get(RAW_CONTACT_DISPLAY_NAME_PRIMARY)


async def _lookup_contact_name(store: RecordStore, contact_id: int) -> tuple[bool, str | None]:
    """Return whether contact *contact_id* exists, and its display name."""
    row = await store.lookup(
        EntityAddress(kind=RecordKind.CONTACT, id=contact_id),
        (CONTACT_NAME_RAW_CONTACT_ID,),
    )
    if row is None:
        return False, None
    name_raw_contact_id = row.get(CONTACT_NAME_RAW_CONTACT_ID)
    if name_raw_contact_id is None:
        return True, None
    return True, await get_display_name(store, name_raw_contact_id)


async def get_contact_display_name(store: RecordStore, contact_id: int) -> str | None:
    """Return the display name of a contact via its name-source raw contact."""
    _, name = await _lookup_contact_name(store, contact_id)
    return name


async def get_common_data(store: RecordStore, data_id: int) -> CommonDataRecord | None:
    """Return the phone/email columns of data row *data_id*, or ``None``."""
    row = await store.lookup(
        EntityAddress(kind=RecordKind.DATA, id=data_id),
        (DATA_RAW_CONTACT_ID, DATA_DATA1, DATA_DATA2),
    )
    if row is None or row.get(DATA_RAW_CONTACT_ID) is None:
        return None
    return CommonDataRecord(
        raw_contact_id=row[DATA_RAW_CONTACT_ID],
        data1=row.get(DATA_DATA1),
        subtype=parse_subtype(row.get(DATA_DATA2)),
    )


async def resolve_group(ctx: ResolverContext, group_id: int) -> ScopeEntry:
    info = await get_group_info(ctx.store, ctx.resources, group_id)
    if info is None:
        logger.debug("Scope group %d not found or deleted", group_id)
        return ScopeEntry(type=EntityType.GROUP, id=group_id)
    return ScopeEntry(
        type=EntityType.GROUP,
        id=group_id,
        title=info.title,
        summary=info.summary,
        details=ctx.reference(RecordKind.GROUP, group_id),
    )


async def resolve_contact(ctx: ResolverContext, contact_id: int) -> ScopeEntry:
    found, title = await _lookup_contact_name(ctx.store, contact_id)
    if not found:
        logger.debug("Scope contact %d not found", contact_id)
        return ScopeEntry(type=EntityType.CONTACT, id=contact_id)
    return ScopeEntry(
        type=EntityType.CONTACT,
        id=contact_id,
        title=title,
        details=ctx.reference(RecordKind.CONTACT, contact_id),
    )


async def resolve_common_data(
    ctx: ResolverContext,
    entity_type: EntityType,
    data_id: int,
) -> ScopeEntry:
    """Resolve a NUMBER or EMAIL scope item through its data row."""
    record = await get_common_data(ctx.store, data_id)
    if record is None:
        logger.debug("Scope %s data row %d not found", entity_type.name, data_id)
        return ScopeEntry(type=entity_type, id=data_id)

    label = resolve_subtype_label(entity_type, record.subtype)
    return ScopeEntry(
        type=entity_type,
        id=data_id,
        title=await get_display_name(ctx.store, record.raw_contact_id),
        summary=f"{label}: {record.data1 or ''}",
        details=ctx.reference(RecordKind.RAW_CONTACT, record.raw_contact_id),
    )


async def resolve_entry(
    ctx: ResolverContext,
    entity_type: EntityType,
    entity_id: int,
) -> ScopeEntry:
    """Dispatch one identifier to the resolver of its entity type.

    Raises
    ------
    UnsupportedEntityTypeError
        If *entity_type* is outside the closed set of scope entity types.
    """
    match entity_type:
        case EntityType.GROUP:
            return await resolve_group(ctx, entity_id)
        case EntityType.CONTACT:
            return await resolve_contact(ctx, entity_id)
        case EntityType.NUMBER | EntityType.EMAIL:
            return await resolve_common_data(ctx, entity_type, entity_id)
        case _:
            raise UnsupportedEntityTypeError(entity_type)
