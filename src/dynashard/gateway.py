"""Partition-aware gateway over a store.

The gateway is the single read/write path for logical records. With partitioning on,
every write lands on one randomly chosen physical id (``<id>.<n>``) and every read,
query, scan or delete fans out over all ``partition_size`` physical ids, reconciling
the copies by most recent ``updated_at``.
"""

from __future__ import annotations

import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from dynashard.config import DynashardConfig
from dynashard.indexes import IndexMaintainer
from dynashard.instrumentation import benchmark, instrumented
from dynashard.partitioning import id_with_partitions, partitioned_id
from dynashard.reconcile import result_for_partition
from dynashard.store import ItemUpdate, RangeKeyInfo, StoreProtocol, TableInfo

logger = logging.getLogger(__name__)


def _is_many(ids: Any) -> bool:
    return isinstance(ids, (list, tuple, set, frozenset))


class Gateway:
    """Logical record access over a ``StoreProtocol`` implementation."""

    def __init__(
        self,
        store: StoreProtocol,
        config: DynashardConfig | None = None,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.config = config or DynashardConfig()
        self._rng = rng or random.Random()
        self._clock = clock
        self.index_maintainer = IndexMaintainer(self)

    @property
    def partitioning(self) -> bool:
        return self.config.partitioning

    def close(self) -> None:
        self.store.close()

    def reconcile(
        self, table_name: str, results: list[dict[str, Any]] | None
    ) -> list[dict[str, Any]]:
        """Collapse physical copies returned from ``table_name`` into logical records."""
        return result_for_partition(results, self.get_table(table_name))

    def _partitions(self, keys: Any) -> list[Any]:
        return id_with_partitions(keys, self.config.partition_size)

    # --- Logical operations ---

    def write(self, table_name: str, record: dict[str, Any], **options: Any) -> dict[str, Any]:
        """Persist ``record``; returns the (possibly rewritten) physical record.

        With partitioning on and an ``id`` present, the id gets a random partition
        suffix and ``updated_at`` is stamped. Exactly one physical write is issued.
        """
        item = dict(record)
        if self.partitioning and item.get("id"):
            item["id"] = partitioned_id(item["id"], self.config.partition_size, self._rng)
            item["updated_at"] = self._clock()
        self.put_item(table_name, item, **options)
        return item

    def read(
        self,
        table_name: str,
        ids: Any,
        *,
        range_key: Any = None,
        **options: Any,
    ) -> dict[str, list[dict[str, Any]]] | dict[str, Any] | None:
        """Read one id (returns a record or ``None``) or many (returns ``{table: [...]}``).

        Any list, tuple or set of ids is a batch; range values go in ``range_key``,
        which is paired with every id. With partitioning on, every id is expanded to
        its full partition space and the copies are reconciled.
        """
        if _is_many(ids):
            keys = [(i, range_key) if range_key is not None else i for i in ids]
            if self.partitioning:
                results = self.batch_get_item({table_name: self._partitions(keys)}, **options)
                return {table_name: self.reconcile(table_name, results.get(table_name))}
            return self.batch_get_item({table_name: keys}, **options)

        if self.partitioning:
            keys = [(ids, range_key)] if range_key is not None else [ids]
            results = self.batch_get_item({table_name: self._partitions(keys)}, **options)
            found = self.reconcile(table_name, results.get(table_name))
            return found[0] if found else None
        return self.get_item(table_name, ids, range_key=range_key, **options)

    def delete(self, table_name: str, ids: Any, *, range_key: Any = None) -> None:
        """Delete one or many logical records, every physical copy included.

        Any list, tuple or set of ids is a batch. ``range_key`` is either one value
        applied to every id or a sequence paired positionally with ``ids``. Removal of
        every partition is not verified.
        """
        if _is_many(ids):
            ids = list(ids)
            if isinstance(range_key, (list, tuple)):
                if len(range_key) != len(ids):
                    raise ValueError(
                        f"Got {len(range_key)} range keys for {len(ids)} ids; "
                        "they are paired positionally"
                    )
                keys: list[Any] = list(zip(ids, range_key))
            elif range_key is not None:
                keys = [(i, range_key) for i in ids]
            else:
                keys = ids
            if self.partitioning:
                keys = self._partitions(keys)
            self.batch_delete_item({table_name: keys})
            return

        if self.partitioning:
            keys = [(ids, range_key)] if range_key is not None else [ids]
            self.batch_delete_item({table_name: self._partitions(keys)})
            return
        self.delete_item(table_name, ids, range_key=range_key)

    def scan(
        self,
        table_name: str,
        conditions: dict[str, Any] | None = None,
        **options: Any,
    ) -> list[dict[str, Any]]:
        """Scan a table. Slow; with partitioning on the rows are reconciled."""
        if self.config.warn_on_scan:
            logger.warning(
                "Scanning table %s%s; prefer a query or an index",
                table_name,
                f" for {conditions}" if conditions else "",
            )
        with benchmark("scan", table_name, table_name, conditions):
            results = self.store.scan(table_name, conditions, **options)
        if self.partitioning:
            return self.reconcile(table_name, results)
        return results

    def query(self, table_name: str, hash_value: Any, **options: Any) -> list[dict[str, Any]]:
        """Query by hash value, fanning out over every partition when partitioning is on.

        Partitioned queries cost ``partition_size`` round trips; they run on up to
        ``fan_out_workers`` threads and all of them complete before reconciling.
        """
        if not self.partitioning:
            with benchmark("query", table_name, table_name, hash_value, options):
                return self.store.query(table_name, hash_value, **options)

        physical = self._partitions([hash_value])

        def run(phys_hash: str) -> list[dict[str, Any]]:
            with benchmark("query", table_name, table_name, phys_hash, options):
                return self.store.query(table_name, phys_hash, **options)

        workers = min(self.config.fan_out_workers, len(physical))
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                pages = list(executor.map(run, physical))
        else:
            pages = [run(phys_hash) for phys_hash in physical]

        results = [row for page in pages for row in page]
        return self.reconcile(table_name, results)

    # --- Index id-set maintenance ---

    def add_index_value(
        self,
        table_name: str,
        record: Any,
        hash_value: Any,
        range_value: Any = None,
    ) -> dict[str, Any] | None:
        return self.index_maintainer.add(table_name, record, hash_value, range_value)

    def delete_index_value(
        self,
        table_name: str,
        record: Any,
        hash_value: Any,
        range_value: Any = None,
    ) -> dict[str, Any] | None:
        return self.index_maintainer.remove(table_name, record, hash_value, range_value)

    # --- Store passthrough ---

    def get_table(self, table_name: str) -> TableInfo:
        return self.store.get_table(table_name)

    @instrumented()
    def list_tables(self) -> list[str]:
        return self.store.list_tables()

    @instrumented()
    def create_table(
        self,
        table_name: str,
        key: str = "id",
        *,
        range_key: RangeKeyInfo | None = None,
        read_capacity: int | None = None,
        write_capacity: int | None = None,
    ) -> TableInfo:
        return self.store.create_table(
            table_name,
            key,
            range_key=range_key,
            read_capacity=read_capacity or self.config.read_capacity,
            write_capacity=write_capacity or self.config.write_capacity,
        )

    @instrumented()
    def delete_table(self, table_name: str) -> None:
        self.store.delete_table(table_name)

    @instrumented()
    def get_item(self, table_name: str, key: Any, **options: Any) -> dict[str, Any] | None:
        return self.store.get_item(table_name, key, **options)

    @instrumented()
    def batch_get_item(
        self, requests: dict[str, list[Any]], **options: Any
    ) -> dict[str, list[dict[str, Any]]]:
        return self.store.batch_get_item(requests, **options)

    @instrumented()
    def put_item(self, table_name: str, item: dict[str, Any], **options: Any) -> None:
        self.store.put_item(table_name, item, **options)

    @instrumented()
    def delete_item(self, table_name: str, key: Any, **options: Any) -> None:
        self.store.delete_item(table_name, key, **options)

    @instrumented()
    def batch_delete_item(self, requests: dict[str, list[Any]]) -> None:
        self.store.batch_delete_item(requests)

    @instrumented()
    def update_item(
        self, table_name: str, key: Any, update: ItemUpdate, **options: Any
    ) -> dict[str, Any] | None:
        return self.store.update_item(table_name, key, update, **options)

    def invoke(self, operation: str, *args: Any, **kwargs: Any) -> Any:
        """Call a store-specific operation by name, timed like every other call.

        A store that lacks ``operation`` raises its own ``AttributeError``.
        """
        method = getattr(self.store, operation)
        table_name = args[0] if args and isinstance(args[0], str) else None
        with benchmark(operation, table_name, *args):
            return method(*args, **kwargs)
