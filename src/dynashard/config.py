"""Configuration for the dynashard gateway."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from dynashard.errors import ConfigurationError


@dataclass
class DynashardConfig:
    """Configuration for the partition-aware gateway and its stores."""

    partitioning: bool = False
    partition_size: int = 200
    remove_empty_index: bool = False
    namespace: str = "dynashard"
    warn_on_scan: bool = True
    read_capacity: int = 100
    write_capacity: int = 20
    fan_out_workers: int = 1
    region: str | None = None
    endpoint_url: str | None = None
    request_timeout_s: float = 10.0
    max_attempts: int = 5

    def __post_init__(self) -> None:
        if self.partition_size < 1:
            raise ConfigurationError(f"partition_size must be >= 1, got {self.partition_size}")
        if self.fan_out_workers < 1:
            raise ConfigurationError(
                f"fan_out_workers must be >= 1, got {self.fan_out_workers}"
            )
        if self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {self.max_attempts}")


_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    return raw.strip().lower() in _TRUTHY


def load_config(path: str | Path) -> DynashardConfig:
    """Load a config from a YAML mapping; unknown keys are rejected."""
    text = Path(path).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file '{path}' must contain a mapping")
    known = {f.name for f in fields(DynashardConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown config keys in '{path}': {unknown}")
    return DynashardConfig(**data)


def config_from_env(base: DynashardConfig | None = None) -> DynashardConfig:
    """Overlay DYNASHARD_* environment variables on top of ``base``."""
    values: dict[str, Any] = {}
    if base is not None:
        values = {f.name: getattr(base, f.name) for f in fields(DynashardConfig)}

    for key in ("partitioning", "remove_empty_index"):
        flag = _env_flag(f"DYNASHARD_{key.upper()}")
        if flag is not None:
            values[key] = flag

    partition_size = os.getenv("DYNASHARD_PARTITION_SIZE")
    if partition_size:
        try:
            values["partition_size"] = int(partition_size)
        except ValueError as e:
            raise ConfigurationError(
                f"DYNASHARD_PARTITION_SIZE must be an integer, got {partition_size!r}"
            ) from e

    for key in ("namespace", "region", "endpoint_url"):
        raw = os.getenv(f"DYNASHARD_{key.upper()}")
        if raw:
            values[key] = raw

    return DynashardConfig(**values)
