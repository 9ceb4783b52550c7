"""Secondary indexes kept as denormalized id-set tables.

An index row is keyed by the ``hash_value`` (and optional ``range_value``) derived from
a record's indexed attributes; its ``ids`` attribute is the set of record ids found
there. Rows are only ever changed through atomic set deltas, never read-modify-write,
so concurrent writers cannot drop each other's ids.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Protocol, runtime_checkable

from dynashard.errors import ConditionalCheckFailed, InvalidField, UnsupportedOperation
from dynashard.inflection import pluralize, singularize
from dynashard.schema import TableSpec
from dynashard.store import ItemUpdate, RangeKeyInfo

if TYPE_CHECKING:
    from dynashard.gateway import Gateway

logger = logging.getLogger(__name__)

INDEX_HASH_KEY = "id"
INDEX_RANGE_KEY = "range"
INDEX_IDS = "ids"


@runtime_checkable
class IndexedRecord(Protocol):
    """What the index layer needs from a model-layer record."""

    @property
    def hash_key(self) -> Any: ...

    @property
    def range_value(self) -> Any: ...

    @property
    def is_new(self) -> bool: ...

    @property
    def attributes(self) -> Mapping[str, Any]: ...

    def changes(self) -> dict[str, tuple[Any, Any]]: ...


def sort_keys(names: Any) -> tuple[str, ...]:
    """Canonical, de-duplicated, alphabetical key names.

    >>> sort_keys(["gamma", "alpha", ["beta", "alpha"]])
    ('alpha', 'beta', 'gamma')
    """

    def flatten(value: Any) -> Iterable[Any]:
        if isinstance(value, (list, tuple, set, frozenset)):
            for v in value:
                yield from flatten(v)
        elif value is not None:
            yield value

    return tuple(sorted({str(n) for n in flatten(names)}))


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class IndexDescriptor:
    """Definition of one secondary index over a source table. Immutable once built."""

    def __init__(
        self,
        source: TableSpec,
        name: str | Iterable[str],
        *,
        namespace: str = "dynashard",
        range: bool = False,
        range_key: str | Iterable[str] | None = None,
    ) -> None:
        self.source = source
        self.namespace = namespace
        self.hash_keys = sort_keys(name)
        if range:
            self.range_keys = sort_keys(name)
        elif range_key:
            self.range_keys = sort_keys(range_key)
        else:
            self.range_keys = ()
        self.name = sort_keys([self.hash_keys, self.range_keys])

        missing = [k for k in self.keys if k not in source.attributes]
        if missing:
            raise InvalidField(missing, source.name)

    def __repr__(self) -> str:
        return f"IndexDescriptor({self.source.name}, {list(self.name)})"

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(self.hash_keys + self.range_keys))

    @property
    def has_range(self) -> bool:
        return bool(self.range_keys)

    @property
    def range_type(self) -> str:
        """``string`` if any range key is a string attribute, else ``number``."""
        if any(self.source.attributes.get(k) == "string" for k in self.range_keys):
            return "string"
        return "number"

    @property
    def table_name(self) -> str:
        keys = "_and_".join(pluralize(k) for k in self.name)
        return f"{self.namespace}_index_{singularize(self.source.name)}_{keys}"

    def values(self, record: IndexedRecord, changed_only: bool = False) -> dict[str, Any]:
        """Compute ``{"hash_value": ..., "range_value": ...}`` for ``record``.

        With ``changed_only``, return ``{}`` when none of this index's keys changed;
        otherwise compute the key from the pre-change values (the old placement).
        """
        previous: dict[str, Any] = {}
        if changed_only:
            changed = {k: v for k, v in record.changes().items() if v[0] != v[1]}
            if not set(self.keys) & set(changed):
                return {}
            previous = {k: old if old is not None else new for k, (old, new) in changed.items()}

        attrs = record.attributes

        def value_of(key: str) -> Any:
            if previous.get(key) is not None:
                return previous[key]
            return attrs.get(key)

        result: dict[str, Any] = {
            "hash_value": ".".join(
                "" if value_of(k) is None else str(value_of(k)) for k in self.hash_keys
            )
        }
        if self.has_range:
            if self.range_type == "string":
                result["range_value"] = "".join(
                    "" if value_of(k) is None else str(value_of(k)) for k in self.range_keys
                )
            else:
                result["range_value"] = sum(float(value_of(k) or 0) for k in self.range_keys)
        return result

    def _unindexable(self, values: dict[str, Any]) -> bool:
        return _blank(values.get("hash_value")) or (
            "range_value" in values and _blank(values["range_value"])
        )

    def save(self, record: IndexedRecord, maintainer: IndexMaintainer) -> bool:
        """Place ``record`` in this index, first removing it from its old placement.

        Records whose key data is missing are left out of the index.
        """
        if not record.is_new and not self.values(record, changed_only=True):
            return True
        if not record.is_new and record.changes():
            self.delete(record, maintainer, changed_only=True)
        values = self.values(record)
        if self._unindexable(values):
            return True
        maintainer.add(self.table_name, record, values["hash_value"], values.get("range_value"))
        return True

    def delete(
        self,
        record: IndexedRecord,
        maintainer: IndexMaintainer,
        changed_only: bool = False,
    ) -> bool:
        """Remove ``record`` from this index (its old placement with ``changed_only``)."""
        values = self.values(record, changed_only)
        if self._unindexable(values):
            return True
        maintainer.remove(self.table_name, record, values["hash_value"], values.get("range_value"))
        return True


def index_element(record: IndexedRecord) -> str:
    """The id-set element for a record: ``"<id>"`` or ``"<id>.<range value>"``."""
    if record.range_value is not None:
        return f"{record.hash_key}.{record.range_value}"
    return f"{record.hash_key}"


class IndexMaintainer:
    """Applies atomic id-set deltas to index rows through the gateway."""

    def __init__(self, gateway: Gateway) -> None:
        self.gateway = gateway

    def ensure_unpartitioned(self) -> None:
        # Index rows live on a single physical key; partitioned index rows are not
        # maintained.
        if self.gateway.config.partitioning:
            raise UnsupportedOperation(
                "Secondary index maintenance is not supported while partitioning is enabled"
            )

    def add(
        self,
        table_name: str,
        record: IndexedRecord,
        hash_value: Any,
        range_value: Any = None,
    ) -> dict[str, Any] | None:
        """Add ``record``'s element to the row's id set in one atomic update."""
        self.ensure_unpartitioned()
        update = ItemUpdate().add(**{INDEX_IDS: [index_element(record)]})
        return self.gateway.update_item(table_name, hash_value, update, range_key=range_value)

    def remove(
        self,
        table_name: str,
        record: IndexedRecord,
        hash_value: Any,
        range_value: Any = None,
    ) -> dict[str, Any] | None:
        """Remove ``record``'s element; drop the row if it is left empty and allowed to.

        The drop is conditional on ``ids`` still being absent, so an id added in the
        meantime keeps the row alive.
        """
        self.ensure_unpartitioned()
        update = ItemUpdate().delete(**{INDEX_IDS: [index_element(record)]})
        result = self.gateway.update_item(table_name, hash_value, update, range_key=range_value)
        if (
            self.gateway.config.remove_empty_index
            and result is not None
            and not result.get(INDEX_IDS)
        ):
            try:
                self.gateway.delete_item(
                    table_name, hash_value, range_key=range_value, unless_exists=INDEX_IDS
                )
            except ConditionalCheckFailed:
                logger.info("Index at %s was repopulated concurrently; keeping it", hash_value)
                return result
            logger.info("Removing empty index at %s", hash_value)
        return result


class IndexSet:
    """The indexes declared for one source table, owned by the model layer."""

    def __init__(self, gateway: Gateway, source: TableSpec) -> None:
        self.gateway = gateway
        self.source = source
        self.indexes: dict[tuple[str, ...], IndexDescriptor] = {}

    def __iter__(self) -> Any:
        return iter(self.indexes.values())

    def __len__(self) -> int:
        return len(self.indexes)

    def index(
        self,
        name: str | Iterable[str],
        *,
        range: bool = False,
        range_key: str | Iterable[str] | None = None,
    ) -> IndexDescriptor:
        """Declare an index and create its table if it does not exist yet."""
        descriptor = IndexDescriptor(
            self.source,
            name,
            namespace=self.gateway.config.namespace,
            range=range,
            range_key=range_key,
        )
        self.indexes[descriptor.name] = descriptor
        self.create_tables()
        return descriptor

    def find(self, name: str | Iterable[str]) -> IndexDescriptor | None:
        return self.indexes.get(sort_keys(name))

    def create_tables(self) -> list[str]:
        """Create missing index tables; returns the names created."""
        existing = set(self.gateway.list_tables())
        created = []
        for descriptor in self.indexes.values():
            if descriptor.table_name in existing:
                continue
            range_key = None
            if descriptor.has_range:
                range_key = RangeKeyInfo(INDEX_RANGE_KEY, descriptor.range_type)
            self.gateway.create_table(descriptor.table_name, INDEX_HASH_KEY, range_key=range_key)
            created.append(descriptor.table_name)
        return created

    def ensure_supported(self) -> None:
        """Raise ``UnsupportedOperation`` if these indexes cannot be maintained."""
        if self.indexes:
            self.gateway.index_maintainer.ensure_unpartitioned()

    def save(self, record: IndexedRecord) -> None:
        for descriptor in self.indexes.values():
            descriptor.save(record, self.gateway.index_maintainer)

    def delete(self, record: IndexedRecord) -> None:
        for descriptor in self.indexes.values():
            descriptor.delete(record, self.gateway.index_maintainer)

    def lookup(
        self,
        name: str | Iterable[str],
        hash_value: Any,
        range_value: Any = None,
    ) -> set[str]:
        """The id-set elements stored at ``hash_value`` (and ``range_value``)."""
        descriptor = self.find(name)
        if descriptor is None:
            raise KeyError(f"No index {list(sort_keys(name))} on table '{self.source.name}'")
        row = self.gateway.get_item(descriptor.table_name, hash_value, range_key=range_value)
        if row is None:
            return set()
        return set(row.get(INDEX_IDS) or ())
