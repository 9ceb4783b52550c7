"""Shared test fixtures for dynashard tests."""

from __future__ import annotations

import random

import pytest

from dynashard.config import DynashardConfig
from dynashard.gateway import Gateway
from dynashard.records import RecordTable
from dynashard.schema import IndexSpec, TableSpec
from dynashard.store_sqlite import SqliteStore

# --- Test table declarations ---


def users_spec() -> TableSpec:
    return TableSpec(
        name="users",
        attributes={"name": "string", "email": "string", "age": "number", "city": "string"},
        indexes=[IndexSpec(keys=["email"])],
    )


def events_spec() -> TableSpec:
    return TableSpec(
        name="events",
        attributes={"kind": "string", "ts": "number", "user_id": "string"},
        range_key="ts",
        indexes=[IndexSpec(keys=["kind"])],
    )


class TickingClock:
    """Monotonic fake clock: every call is one second later than the previous one."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


# --- Fixtures ---


@pytest.fixture
def store():
    """An in-memory SQLite store."""
    s = SqliteStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def config() -> DynashardConfig:
    return DynashardConfig(partition_size=4, warn_on_scan=False)


@pytest.fixture
def gateway(store, config) -> Gateway:
    """Unpartitioned gateway over the in-memory store."""
    return Gateway(store, config, rng=random.Random(7), clock=TickingClock())


@pytest.fixture
def partitioned_gateway(store) -> Gateway:
    """Gateway with partitioning on and a small partition space."""
    cfg = DynashardConfig(partitioning=True, partition_size=4, warn_on_scan=False)
    return Gateway(store, cfg, rng=random.Random(7), clock=TickingClock())


@pytest.fixture
def users(gateway) -> RecordTable:
    """The users table (with its email index) created in the store."""
    table = RecordTable(gateway, users_spec())
    table.create_table()
    return table


@pytest.fixture
def events(gateway) -> RecordTable:
    """The events table (ranged on ts, indexed on kind) created in the store."""
    table = RecordTable(gateway, events_spec())
    table.create_table()
    return table
