"""Shared fixtures for CLI tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from dynashard.cli import app
from dynashard.config import DynashardConfig
from dynashard.gateway import Gateway
from dynashard.records import RecordTable
from dynashard.schema import load_schema
from dynashard.store_sqlite import SqliteStore

if TYPE_CHECKING:
    from click.testing import Result

SCHEMA = """
tables:
  - name: users
    attributes:
      name: string
      email: string
      city: string
    indexes:
      - keys: [email]
  - name: events
    attributes:
      kind: string
      ts: number
    range_key: ts
"""


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "DYNASHARD_STORE",
        "DYNASHARD_CONFIG",
        "DYNASHARD_PARTITIONING",
        "DYNASHARD_PARTITION_SIZE",
        "DYNASHARD_NAMESPACE",
        "DYNASHARD_REMOVE_EMPTY_INDEX",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_store(tmp_path) -> str:
    """A store URI for a temp SQLite file."""
    return f"sqlite:{tmp_path / 'cli_test.db'}"


@pytest.fixture
def schema_file(tmp_path) -> str:
    path = tmp_path / "schema.yaml"
    path.write_text(SCHEMA)
    return str(path)


@pytest.fixture
def quiet_config(tmp_path) -> str:
    """A config file that silences scan warnings."""
    path = tmp_path / "dynashard.yaml"
    path.write_text("warn_on_scan: false\n")
    return str(path)


@pytest.fixture
def seeded_store(cli_store, schema_file) -> str:
    """A store with the schema's tables and a few records."""
    store = SqliteStore(cli_store.removeprefix("sqlite:"))
    gateway = Gateway(store, DynashardConfig())
    document = load_schema(schema_file)
    users = RecordTable(gateway, document.table("users"))
    events = RecordTable(gateway, document.table("events"))
    users.create_table()
    events.create_table()
    users.save(users.new(id="u1", name="Ann", email="a@x", city="Oslo"))
    users.save(users.new(id="u2", name="Bob", email="a@x", city="Rome"))
    users.save(users.new(id="u3", name="Cid", email="c@x", city="Oslo"))
    for ts in (1, 2, 3):
        events.save(events.new(id="e1", ts=ts, kind=f"k{ts}"))
    store.close()
    return cli_store


def invoke(runner: CliRunner, args: list[str], store_uri: str | None = None) -> "Result":
    """Invoke CLI with the store selected before the subcommand."""
    if store_uri:
        args = ["--store", store_uri] + args
    return runner.invoke(app, args, catch_exceptions=False)
