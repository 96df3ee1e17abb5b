"""Shared fixtures and test doubles for the contact scopes test suite."""

from __future__ import annotations

import shutil
from collections.abc import Iterator, Mapping, Sequence
from typing import TYPE_CHECKING, Any

import pytest

from contact_scopes.models import EntityAddress, RecordKind
from contact_scopes.record_store import Record, RecordStore, check_columns
from contact_scopes.resources import ResourceLabelResolver

if TYPE_CHECKING:
    from testcontainers.postgres import PostgresContainer

docker_available = shutil.which("docker") is not None


class InMemoryRecordStore(RecordStore):
    """Dict-backed record store that honours column subsets and filters."""

    def __init__(self) -> None:
        self.rows: dict[RecordKind, dict[int, dict[str, Any]]] = {kind: {} for kind in RecordKind}
        self.lookups: list[EntityAddress] = []

    def add(self, kind: RecordKind, record_id: int, **columns: Any) -> None:
        self.rows[kind][record_id] = {"id": record_id, **columns}

    def add_group(self, group_id: int, **columns: Any) -> None:
        defaults = {
            "res_package": None,
            "title_res": None,
            "title": None,
            "account_name": None,
            "summary_count": None,
            "deleted": False,
            "auto_add": False,
            "favorites": False,
            "group_is_read_only": False,
        }
        self.add(RecordKind.GROUP, group_id, **{**defaults, **columns})

    def add_contact(self, contact_id: int, name_raw_contact_id: int | None) -> None:
        self.add(RecordKind.CONTACT, contact_id, name_raw_contact_id=name_raw_contact_id)

    def add_raw_contact(self, raw_contact_id: int, display_name: str | None) -> None:
        self.add(RecordKind.RAW_CONTACT, raw_contact_id, display_name_primary=display_name)

    def add_data(
        self,
        data_id: int,
        raw_contact_id: int,
        data1: str | None,
        data2: str | None,
    ) -> None:
        self.add(RecordKind.DATA, data_id, raw_contact_id=raw_contact_id, data1=data1, data2=data2)

    @staticmethod
    def _matches(row: Mapping[str, Any], filters: Mapping[str, Any] | None) -> bool:
        return all(row.get(column) == value for column, value in (filters or {}).items())

    async def lookup(
        self,
        address: EntityAddress,
        columns: Sequence[str],
        *,
        filters: Mapping[str, Any] | None = None,
    ) -> Record | None:
        check_columns(address.kind, [*columns, *(filters or {})])
        self.lookups.append(address)
        row = self.rows[address.kind].get(address.id)
        if row is None or not self._matches(row, filters):
            return None
        return {column: row.get(column) for column in columns}

    async def query(
        self,
        kind: RecordKind,
        columns: Sequence[str],
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: Sequence[str] = (),
    ) -> list[Record]:
        check_columns(kind, [*columns, *(filters or {}), *order_by])
        rows = [row for row in self.rows[kind].values() if self._matches(row, filters)]
        for column in reversed(order_by):
            rows.sort(key=lambda r, c=column: (r.get(c) is None, (r.get(c) or "").casefold()))
        return [{column: row.get(column) for column in columns} for row in rows]


class StubResourceResolver(ResourceLabelResolver):
    """Resolver returning fixed text and recording every request."""

    def __init__(self, labels: Mapping[tuple[str, int], str] | None = None) -> None:
        self.labels = dict(labels or {})
        self.calls: list[tuple[str, int, str | None]] = []

    async def resolve_text(
        self,
        package: str,
        resource_id: int,
        theme: str | None = None,
    ) -> str | None:
        self.calls.append((package, resource_id, theme))
        return self.labels.get((package, resource_id))


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def resources() -> StubResourceResolver:
    return StubResourceResolver()


@pytest.fixture(scope="session")
def postgres_container() -> Iterator[PostgresContainer]:
    """Session-wide Postgres testcontainer for the integration tests."""
    from testcontainers.postgres import PostgresContainer

    with PostgresContainer("postgres:16") as pg:
        yield pg
