"""Merge physical partition copies back into logical records."""

from __future__ import annotations

from typing import Any, Iterable

from dynashard.partitioning import get_original_id_and_partition
from dynashard.store import TableInfo


def _updated_at(record: dict[str, Any]) -> float:
    value = record.get("updated_at")
    return float(value) if value is not None else float("-inf")


def result_for_partition(
    results: Iterable[dict[str, Any] | None] | None,
    table: TableInfo,
) -> list[dict[str, Any]]:
    """Collapse partitioned rows into one record per logical id (and range value).

    The most recently updated copy wins; ties keep the copy seen first. The winner's
    ``id`` is rewritten to the logical id. Input rows are not mutated.

    Only the rows actually returned are considered: a partition missing from
    ``results`` is indistinguishable from one that was never written.
    """
    hash_attr = table.hash_key
    range_attr = table.range_key.name if table.range_key else None
    winners: dict[tuple[Any, ...], dict[str, Any]] = {}

    for record in results or ():
        if record is None:
            continue
        logical_id, _partition = get_original_id_and_partition(record[hash_attr])
        group: tuple[Any, ...] = (logical_id,)
        if range_attr is not None:
            group = (logical_id, record.get(range_attr))

        current = winners.get(group)
        if current is None or _updated_at(record) > _updated_at(current):
            winner = dict(record)
            winner[hash_attr] = logical_id
            winners[group] = winner

    return list(winners.values())
