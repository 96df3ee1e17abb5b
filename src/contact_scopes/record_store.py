"""Read-only record store client for contact data.

:class:`RecordStore` is the lookup contract the resolvers depend on;
:class:`PostgresRecordStore` implements it on an asyncpg pool. Every value is
bound as a query parameter and every identifier is checked against a per-kind
column whitelist before it is quoted into SQL.
"""

from __future__ import annotations

import abc
import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

import asyncpg

from contact_scopes.errors import RecordStoreError
from contact_scopes.models import EntityAddress, RecordKind

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]

# Column names of the record store, per record kind.
COLUMN_ID = "id"

GROUP_RES_PACKAGE = "res_package"
GROUP_TITLE_RES = "title_res"
GROUP_TITLE = "title"
GROUP_ACCOUNT_NAME = "account_name"
GROUP_SUMMARY_COUNT = "summary_count"
GROUP_DELETED = "deleted"
GROUP_AUTO_ADD = "auto_add"
GROUP_FAVORITES = "favorites"
GROUP_IS_READ_ONLY = "group_is_read_only"

CONTACT_NAME_RAW_CONTACT_ID = "name_raw_contact_id"

RAW_CONTACT_DISPLAY_NAME_PRIMARY = "display_name_primary"

DATA_RAW_CONTACT_ID = "raw_contact_id"
DATA_DATA1 = "data1"
DATA_DATA2 = "data2"

KIND_COLUMNS: dict[RecordKind, frozenset[str]] = {
    RecordKind.GROUP: frozenset(
        {
            COLUMN_ID,
            GROUP_RES_PACKAGE,
            GROUP_TITLE_RES,
            GROUP_TITLE,
            GROUP_ACCOUNT_NAME,
            GROUP_SUMMARY_COUNT,
            GROUP_DELETED,
            GROUP_AUTO_ADD,
            GROUP_FAVORITES,
            GROUP_IS_READ_ONLY,
        }
    ),
    RecordKind.CONTACT: frozenset({COLUMN_ID, CONTACT_NAME_RAW_CONTACT_ID}),
    RecordKind.RAW_CONTACT: frozenset({COLUMN_ID, RAW_CONTACT_DISPLAY_NAME_PRIMARY}),
    RecordKind.DATA: frozenset({COLUMN_ID, DATA_RAW_CONTACT_ID, DATA_DATA1, DATA_DATA2}),
}

DEFAULT_TABLES: dict[RecordKind, str] = {kind: kind.value for kind in RecordKind}

_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class RecordStore(abc.ABC):
    """Lookup contract of the contact record store."""

    @abc.abstractmethod
    async def lookup(
        self,
        address: EntityAddress,
        columns: Sequence[str],
        *,
        filters: Mapping[str, Any] | None = None,
    ) -> Record | None:
        """Return the single row at *address* restricted to *columns*, or ``None``.

        *filters* are additional equality conditions; a row that does not
        satisfy them counts as not found.
        """
        ...

    @abc.abstractmethod
    async def query(
        self,
        kind: RecordKind,
        columns: Sequence[str],
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: Sequence[str] = (),
    ) -> list[Record]:
        """Return every row of *kind* matching *filters*, sorted by *order_by*.

        Text columns sort with the store's locale-aware collation; ``NULL``
        values sort last.
        """
        ...


def check_columns(kind: RecordKind, columns: Sequence[str]) -> None:
    """Raise :class:`RecordStoreError` unless every column is known for *kind*."""
    allowed = KIND_COLUMNS[kind]
    unknown = [c for c in columns if c not in allowed]
    if unknown:
        raise RecordStoreError(f"Unknown column(s) for {kind.value}: {', '.join(unknown)}")


def _quote_identifier(name: str) -> str:
    parts = name.split(".")
    if not parts or any(_IDENTIFIER_PATTERN.fullmatch(part) is None for part in parts):
        raise RecordStoreError(f"Invalid SQL identifier: {name!r}")
    return ".".join(f'"{part}"' for part in parts)


class PostgresRecordStore(RecordStore):
    """Record store backed by PostgreSQL tables (or views) reached through asyncpg."""

    def __init__(
        self,
        pool: asyncpg.Pool,
        *,
        tables: Mapping[RecordKind, str] | None = None,
    ) -> None:
        self._pool = pool
        merged = dict(DEFAULT_TABLES)
        merged.update(tables or {})
        self._tables = {kind: _quote_identifier(name) for kind, name in merged.items()}

    def _build_select(
        self,
        kind: RecordKind,
        columns: Sequence[str],
        filters: Mapping[str, Any],
    ) -> tuple[str, list[Any]]:
        check_columns(kind, [*columns, *filters])
        if not columns:
            raise RecordStoreError("At least one column must be requested")
        select_list = ", ".join(_quote_identifier(c) for c in columns)
        args: list[Any] = []
        conditions: list[str] = []
        for column, value in filters.items():
            args.append(value)
            conditions.append(f"{_quote_identifier(column)} = ${len(args)}")
        sql = f"SELECT {select_list} FROM {self._tables[kind]}"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        return sql, args

    async def lookup(
        self,
        address: EntityAddress,
        columns: Sequence[str],
        *,
        filters: Mapping[str, Any] | None = None,
    ) -> Record | None:
        conditions = {COLUMN_ID: address.id, **(filters or {})}
        sql, args = self._build_select(address.kind, columns, conditions)
        # Two rows are enough to tell "exactly one" from "ambiguous".
        sql += " LIMIT 2"
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(sql, *args)
        if len(rows) != 1:
            logger.debug(
                "Record not found: %s/%s (%d matching rows)",
                address.kind.value,
                address.id,
                len(rows),
            )
            return None
        return dict(rows[0])

    async def query(
        self,
        kind: RecordKind,
        columns: Sequence[str],
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: Sequence[str] = (),
    ) -> list[Record]:
        sql, args = self._build_select(kind, columns, filters or {})
        check_columns(kind, order_by)
        if order_by:
            sql += " ORDER BY " + ", ".join(
                f"{_quote_identifier(c)} ASC NULLS LAST" for c in order_by
            )
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(sql, *args)
        return [dict(row) for row in rows]
