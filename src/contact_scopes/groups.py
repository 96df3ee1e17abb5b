"""Contact group lookups shared by the scope view model and the group picker."""

from __future__ import annotations

import logging
from typing import Any

from contact_scopes.models import EntityAddress, GroupInfo, RecordKind
from contact_scopes.record_store import (
    COLUMN_ID,
    GROUP_ACCOUNT_NAME,
    GROUP_AUTO_ADD,
    GROUP_DELETED,
    GROUP_FAVORITES,
    GROUP_IS_READ_ONLY,
    GROUP_RES_PACKAGE,
    GROUP_SUMMARY_COUNT,
    GROUP_TITLE,
    GROUP_TITLE_RES,
    Record,
    RecordStore,
)
from contact_scopes.resources import ResourceLabelResolver
from contact_scopes.subtypes import parse_int32

logger = logging.getLogger(__name__)

GROUP_PROJECTION: tuple[str, ...] = (
    COLUMN_ID,
    GROUP_RES_PACKAGE,
    GROUP_TITLE_RES,
    GROUP_TITLE,
    GROUP_ACCOUNT_NAME,
    GROUP_SUMMARY_COUNT,
)

# Groups offered in the picker: same filter as the stock contacts app's group list.
PICKER_FILTERS: dict[str, Any] = {
    GROUP_DELETED: False,
    GROUP_AUTO_ADD: False,
    GROUP_FAVORITES: False,
    GROUP_IS_READ_ONLY: False,
}


def _parse_resource_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return parse_int32(value)
    return None


async def resolve_group_title(row: Record, resources: ResourceLabelResolver) -> str | None:
    """Return the group title: foreign resource text first, stored title second."""
    package = row.get(GROUP_RES_PACKAGE)
    title_res = row.get(GROUP_TITLE_RES)
    if package and title_res is not None:
        resource_id = _parse_resource_id(title_res)
        if resource_id is None:
            logger.warning(
                "Group %s has non-numeric title_res %r; using stored title",
                row.get(COLUMN_ID),
                title_res,
            )
        else:
            text = await resources.resolve_text(package, resource_id)
            if text:
                return text
    return row.get(GROUP_TITLE)


async def group_info_from_row(row: Record, resources: ResourceLabelResolver) -> GroupInfo:
    summary_count = row.get(GROUP_SUMMARY_COUNT)
    return GroupInfo(
        id=row[COLUMN_ID],
        title=await resolve_group_title(row, resources),
        account_name=row.get(GROUP_ACCOUNT_NAME),
        summary=str(summary_count) if summary_count is not None else None,
    )


async def get_group_info(
    store: RecordStore,
    resources: ResourceLabelResolver,
    group_id: int,
) -> GroupInfo | None:
    """Return the non-deleted group *group_id*, or ``None`` when absent or deleted."""
    row = await store.lookup(
        EntityAddress(kind=RecordKind.GROUP, id=group_id),
        GROUP_PROJECTION,
        filters={GROUP_DELETED: False},
    )
    if row is None:
        return None
    return await group_info_from_row(row, resources)


async def list_groups(store: RecordStore, resources: ResourceLabelResolver) -> list[GroupInfo]:
    """List user-selectable groups sorted by stored title (locale-aware collation)."""
    rows = await store.query(
        RecordKind.GROUP,
        GROUP_PROJECTION,
        filters=PICKER_FILTERS,
        order_by=(GROUP_TITLE,),
    )
    return [await group_info_from_row(row, resources) for row in rows]
