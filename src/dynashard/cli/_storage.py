"""CLI helpers for building a gateway from the global store selection."""

from __future__ import annotations

from typing import Any

from dynashard.config import DynashardConfig, config_from_env, load_config
from dynashard.gateway import Gateway
from dynashard.store import normalize_number, open_store


def resolve_config() -> DynashardConfig:
    """Config file (if given) overlaid with DYNASHARD_* environment variables."""
    from dynashard.cli import state

    base = load_config(state.config) if state.config else None
    return config_from_env(base)


def open_gateway() -> Gateway:
    """Open a gateway over the store selected by ``--store``."""
    from dynashard.cli import state

    config = resolve_config()
    return Gateway(open_store(state.store_uri, config=config), config)


def coerce_range(gateway: Gateway, table_name: str, raw: str | None) -> Any:
    """Convert a command-line range key to the table's declared range type."""
    if raw is None:
        return None
    range_key = gateway.get_table(table_name).range_key
    if range_key is not None and range_key.type == "number":
        return normalize_number(float(raw))
    return raw
