"""Tests for the contact-scopes CLI."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager

import pytest
from click.testing import CliRunner

from contact_scopes import cli as cli_module
from contact_scopes.cli import Services, cli
from contact_scopes.config import CONFIG_FILENAME
from contact_scopes.scope_state import decode_scope_state

pytestmark = pytest.mark.unit


class _ScopeStates:
    def __init__(self, blobs):
        self.blobs = blobs

    async def load_blob(self, application):
        return self.blobs.get(application)

    async def load(self, application):
        return decode_scope_state(self.blobs.get(application), application)


@pytest.fixture
def services(store, resources, monkeypatch):
    services = Services(store=store, resources=resources, scope_states=_ScopeStates({}))

    @asynccontextmanager
    async def _open(config):
        yield services

    monkeypatch.setattr(cli_module, "open_services", _open)
    monkeypatch.setattr(cli_module, "configure_logging", lambda **kwargs: None)
    return services


def test_view_prints_payload(services):
    services.store.add_data(42, raw_contact_id=7, data1="555-1234", data2="2")
    services.store.add_raw_contact(7, "Ann")
    services.scope_states.blobs["com.example.app"] = {"2": [42]}

    result = CliRunner().invoke(cli, ["view", "com.example.app"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {
        "2": [
            {
                "type": 2,
                "id": 42,
                "title": "Ann",
                "summary": "Mobile: 555-1234",
                "details_uri": "content://com.android.contacts/raw_contacts/7",
            }
        ]
    }


def test_view_of_unknown_application_is_empty(services):
    result = CliRunner().invoke(cli, ["view", "com.unknown"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {}


def test_decode(services):
    services.scope_states.blobs["com.example.app"] = {"0": [1], "3": [5, 4]}
    result = CliRunner().invoke(cli, ["decode", "com.example.app"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {
        "groups": [1],
        "contacts": [],
        "numbers": [],
        "emails": [5, 4],
    }


def test_groups(services):
    services.store.add_group(2, title="Work", account_name="a@example.com", summary_count=3)
    services.store.add_group(1, title="Family")
    result = CliRunner().invoke(cli, ["groups"])
    assert result.exit_code == 0, result.output
    assert [g["title"] for g in json.loads(result.output)] == ["Family", "Work"]


def test_resolve_ids_success(services):
    services.store.add_contact(1, name_raw_contact_id=None)
    services.store.add_contact(2, name_raw_contact_id=None)
    result = CliRunner().invoke(
        cli,
        [
            "resolve-ids",
            "content://com.android.contacts/contacts/2",
            "content://com.android.contacts/contacts/1",
        ],
    )
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"ids": [2, 1]}


def test_resolve_ids_failure_exits_non_zero(services):
    services.store.add_contact(1, name_raw_contact_id=None)
    result = CliRunner().invoke(
        cli,
        [
            "resolve-ids",
            "content://com.android.contacts/contacts/1",
            "content://com.android.contacts/contacts/2",
        ],
    )
    assert result.exit_code == 1
    assert "Reference #1" in result.output


def test_invalid_config_is_reported(services, tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text('[logging]\nformat = "xml"\n')
    result = CliRunner().invoke(cli, ["--config", str(tmp_path), "groups"])
    assert result.exit_code == 1
    assert "logging.format" in result.output


@pytest.mark.parametrize(
    ("args", "application"),
    [
        (["view", "com.example.app"], "com.example.app"),
        (["decode", "com.example.app"], "com.example.app"),
        (["groups"], None),
    ],
)
def test_logging_is_scoped_to_application(services, monkeypatch, tmp_path, args, application):
    calls = []
    monkeypatch.setattr(cli_module, "configure_logging", lambda **kwargs: calls.append(kwargs))
    (tmp_path / CONFIG_FILENAME).write_text(f'[logging]\nlog_root = "{tmp_path}"\n')

    result = CliRunner().invoke(cli, ["--config", str(tmp_path), *args])

    assert result.exit_code == 0, result.output
    assert len(calls) == 1
    assert calls[0]["application"] == application
    assert calls[0]["log_root"] == tmp_path
