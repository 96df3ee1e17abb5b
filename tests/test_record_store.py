"""Tests for the asyncpg-backed record store (SQL shape + Docker-gated integration)."""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import pytest

from conftest import docker_available
from contact_scopes.errors import RecordStoreError
from contact_scopes.groups import GROUP_PROJECTION, PICKER_FILTERS
from contact_scopes.models import EntityAddress, EntityType, RecordKind
from contact_scopes.record_store import PostgresRecordStore
from contact_scopes.resources import NullResourceResolver
from contact_scopes.view_model import build_view_model


class _FakeConnection:
    def __init__(self, rows: list[dict[str, Any]]) -> None:
        self.rows = rows
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    async def fetch(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        self.calls.append((sql, args))
        return self.rows


class _FakePool:
    def __init__(self, rows: list[dict[str, Any]] | None = None) -> None:
        self.conn = _FakeConnection(rows or [])
        self.released = 0

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[_FakeConnection]:
        try:
            yield self.conn
        finally:
            self.released += 1


@pytest.mark.unit
class TestPostgresRecordStoreSql:
    async def test_lookup_binds_id_and_filters(self):
        pool = _FakePool([{"title": "Friends"}])
        store = PostgresRecordStore(pool)

        row = await store.lookup(
            EntityAddress(kind=RecordKind.GROUP, id=9), ("title",), filters={"deleted": False}
        )

        assert row == {"title": "Friends"}
        sql, args = pool.conn.calls[0]
        assert sql == (
            'SELECT "title" FROM "groups" WHERE "id" = $1 AND "deleted" = $2 LIMIT 2'
        )
        assert args == (9, False)
        assert pool.released == 1

    async def test_lookup_without_rows_is_not_found(self):
        store = PostgresRecordStore(_FakePool([]))
        address = EntityAddress(kind=RecordKind.CONTACT, id=1)
        assert await store.lookup(address, ("name_raw_contact_id",)) is None

    async def test_lookup_with_ambiguous_rows_is_not_found(self):
        store = PostgresRecordStore(_FakePool([{"id": 1}, {"id": 1}]))
        assert await store.lookup(EntityAddress(kind=RecordKind.CONTACT, id=1), ("id",)) is None

    async def test_table_override_with_schema(self):
        pool = _FakePool([])
        store = PostgresRecordStore(pool, tables={RecordKind.GROUP: "contacts.group_summary"})
        await store.lookup(EntityAddress(kind=RecordKind.GROUP, id=1), ("id",))
        assert 'FROM "contacts"."group_summary"' in pool.conn.calls[0][0]

    async def test_unknown_column_rejected(self):
        store = PostgresRecordStore(_FakePool([]))
        with pytest.raises(RecordStoreError):
            await store.lookup(EntityAddress(kind=RecordKind.DATA, id=1), ("data1; DROP",))

    @pytest.mark.parametrize(
        ("kind", "column"),
        [(RecordKind.DATA, "mimetype"), (RecordKind.RAW_CONTACT, "contact_id")],
    )
    async def test_unread_columns_are_not_whitelisted(self, kind, column):
        store = PostgresRecordStore(_FakePool([]))
        with pytest.raises(RecordStoreError):
            await store.lookup(EntityAddress(kind=kind, id=1), (column,))

    async def test_unknown_filter_column_rejected(self):
        store = PostgresRecordStore(_FakePool([]))
        with pytest.raises(RecordStoreError):
            await store.lookup(
                EntityAddress(kind=RecordKind.CONTACT, id=1), ("id",), filters={"deleted": False}
            )

    def test_invalid_table_name_rejected(self):
        with pytest.raises(RecordStoreError):
            PostgresRecordStore(_FakePool(), tables={RecordKind.DATA: 'data"; --'})

    async def test_query_orders_nulls_last(self):
        pool = _FakePool([{"id": 2, "title": "A"}, {"id": 1, "title": "B"}])
        store = PostgresRecordStore(pool)

        rows = await store.query(
            RecordKind.GROUP, ("id", "title"), filters=PICKER_FILTERS, order_by=("title",)
        )

        assert [r["id"] for r in rows] == [2, 1]
        sql, args = pool.conn.calls[0]
        assert sql.endswith('ORDER BY "title" ASC NULLS LAST')
        assert args == (False, False, False, False)


# ---------------------------------------------------------------------------
# Integration against a real PostgreSQL server
# ---------------------------------------------------------------------------

_SCHEMA_SQL = """
CREATE TABLE groups (
    id BIGINT PRIMARY KEY,
    res_package TEXT,
    title_res TEXT,
    title TEXT,
    account_name TEXT,
    summary_count INTEGER,
    deleted BOOLEAN NOT NULL DEFAULT false,
    auto_add BOOLEAN NOT NULL DEFAULT false,
    favorites BOOLEAN NOT NULL DEFAULT false,
    group_is_read_only BOOLEAN NOT NULL DEFAULT false
);
CREATE TABLE contacts (id BIGINT PRIMARY KEY, name_raw_contact_id BIGINT);
CREATE TABLE raw_contacts (id BIGINT PRIMARY KEY, contact_id BIGINT, display_name_primary TEXT);
CREATE TABLE data (
    id BIGINT PRIMARY KEY,
    raw_contact_id BIGINT NOT NULL,
    mimetype TEXT,
    data1 TEXT,
    data2 TEXT
);
"""


@pytest.fixture
async def pg_pool(postgres_container):
    import asyncpg

    conn_kwargs = {
        "host": postgres_container.get_container_host_ip(),
        "port": int(postgres_container.get_exposed_port(5432)),
        "user": postgres_container.username,
        "password": postgres_container.password,
    }
    db_name = f"test_{uuid.uuid4().hex[:12]}"
    admin = await asyncpg.connect(database=postgres_container.dbname, **conn_kwargs)
    try:
        await admin.execute(f'CREATE DATABASE "{db_name}"')
    finally:
        await admin.close()

    pool = await asyncpg.create_pool(database=db_name, min_size=1, max_size=3, **conn_kwargs)
    await pool.execute(_SCHEMA_SQL)
    try:
        yield pool
    finally:
        await pool.close()


@pytest.mark.integration
@pytest.mark.skipif(not docker_available, reason="Docker not available")
class TestPostgresRecordStoreIntegration:
    async def test_view_model_against_postgres(self, pg_pool):
        await pg_pool.execute(
            "INSERT INTO groups (id, title, summary_count, deleted) VALUES "
            "(9, 'Friends', 4, false), (10, 'Gone', 1, true)"
        )
        await pg_pool.execute(
            "INSERT INTO raw_contacts (id, display_name_primary) VALUES (7, 'Ann')"
        )
        await pg_pool.execute("INSERT INTO contacts (id, name_raw_contact_id) VALUES (1, 7)")
        await pg_pool.execute(
            "INSERT INTO data (id, raw_contact_id, data1, data2) VALUES "
            "(42, 7, '555-1234', '2'), (43, 7, 'ann@example.com', 'Personal')"
        )
        store = PostgresRecordStore(pg_pool)

        view_model = await build_view_model(
            {"0": [9, 10], "1": [1], "2": [42], "3": [43]},
            "com.example.app",
            store,
            NullResourceResolver(),
        )

        assert [(e.id, e.title, e.summary) for e in view_model["0"]] == [
            (9, "Friends", "4"),
            (10, None, None),
        ]
        assert view_model["1"][0].title == "Ann"
        assert view_model["2"][0].summary == "Mobile: 555-1234"
        assert view_model["3"][0].summary == "Personal: ann@example.com"
        assert {e.type for e in view_model["3"]} == {EntityType.EMAIL}

    async def test_group_listing_query(self, pg_pool):
        await pg_pool.execute(
            "INSERT INTO groups (id, title, favorites) VALUES "
            "(1, 'b', false), (2, 'a', false), (3, NULL, false), (4, 'starred', true)"
        )
        store = PostgresRecordStore(pg_pool)
        rows = await store.query(
            RecordKind.GROUP, GROUP_PROJECTION, filters=PICKER_FILTERS, order_by=("title",)
        )
        assert [r["id"] for r in rows] == [2, 1, 3]
