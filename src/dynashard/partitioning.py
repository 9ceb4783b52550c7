"""Mapping between logical ids and their physical partition ids."""

from __future__ import annotations

import random
from typing import Any

Key = Any  # a hash value, or a (hash value, range value) tuple


def _as_key_list(ids: Any) -> list[Key]:
    if ids is None:
        return []
    if isinstance(ids, (list, set, frozenset)):
        return list(ids)
    # A bare tuple is a single (hash, range) pair, not a list of ids.
    return [ids]


def id_with_partitions(ids: Any, partition_size: int) -> list[Key]:
    """Expand logical ids into every physical id of their partition space.

    Tuples are treated as ``(hash, range)`` pairs; the range value is carried through
    unchanged.

    >>> id_with_partitions(["1"], 3)
    ['1.0', '1.1', '1.2']
    >>> id_with_partitions([("1", 2.0)], 2)
    [('1.0', 2.0), ('1.1', 2.0)]
    """
    expanded: list[Key] = []
    for key in _as_key_list(ids):
        for n in range(partition_size):
            if isinstance(key, tuple):
                expanded.append((f"{key[0]}.{n}", key[1]))
            else:
                expanded.append(f"{key}.{n}")
    return expanded


def get_original_id_and_partition(physical_id: str) -> tuple[str, str | None]:
    """Split ``"<logical>.<ordinal>"`` into ``(logical, ordinal)``.

    Only the last dot separates the ordinal, so logical ids may themselves contain dots.
    An id without a dot is returned unchanged with no ordinal.

    >>> get_original_id_and_partition("42.7")
    ('42', '7')
    """
    logical, sep, partition = str(physical_id).rpartition(".")
    if not sep:
        return str(physical_id), None
    return logical, partition


def partitioned_id(logical_id: Any, partition_size: int, rng: random.Random | None = None) -> str:
    """Pick a physical id for one write, uniformly over ``[0, partition_size)``."""
    ordinal = (rng or random).randrange(partition_size)
    return f"{logical_id}.{ordinal}"

