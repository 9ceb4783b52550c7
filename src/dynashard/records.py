"""Model-layer records with dirty tracking, and the table facade that persists them."""

from __future__ import annotations

import copy
import time
import uuid
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from dynashard.indexes import IndexedRecord, IndexSet
from dynashard.schema import TableSpec
from dynashard.store import RangeKeyInfo, normalize_number

if TYPE_CHECKING:
    from dynashard.gateway import Gateway


class Record:
    """A mutable attribute mapping that remembers its last persisted state."""

    def __init__(
        self,
        table: TableSpec,
        attributes: Mapping[str, Any] | None = None,
        *,
        new: bool = True,
        **values: Any,
    ) -> None:
        self.table = table
        self._attributes: dict[str, Any] = {**(attributes or {}), **values}
        self._new = new
        self._persisted: dict[str, Any] = {} if new else copy.deepcopy(self._attributes)

    def __repr__(self) -> str:
        state = "new" if self._new else "persisted"
        return f"Record({self.table.name}, {self._attributes!r}, {state})"

    def __getitem__(self, name: str) -> Any:
        return self._attributes[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self._attributes[name] = value

    def __contains__(self, name: object) -> bool:
        return name in self._attributes

    def get(self, name: str, default: Any = None) -> Any:
        return self._attributes.get(name, default)

    def update(self, **values: Any) -> Record:
        self._attributes.update(values)
        return self

    @property
    def attributes(self) -> dict[str, Any]:
        return self._attributes

    @property
    def hash_key(self) -> Any:
        return self._attributes.get("id")

    @property
    def range_value(self) -> Any:
        if self.table.range_key is None:
            return None
        return self._attributes.get(self.table.range_key)

    @property
    def is_new(self) -> bool:
        return self._new

    def changes(self) -> dict[str, tuple[Any, Any]]:
        """``{attribute: (persisted value, current value)}`` for every differing attribute."""
        out: dict[str, tuple[Any, Any]] = {}
        for name in dict.fromkeys([*self._persisted, *self._attributes]):
            old, new = self._persisted.get(name), self._attributes.get(name)
            if old != new:
                out[name] = (old, new)
        return out

    @property
    def changed(self) -> bool:
        return bool(self.changes())

    def mark_persisted(self) -> None:
        self._persisted = copy.deepcopy(self._attributes)
        self._new = False

    def to_item(self) -> dict[str, Any]:
        """The attributes to write; unset (``None``) attributes are left out."""
        return {k: v for k, v in self._attributes.items() if v is not None}


class RecordTable:
    """Persists records of one ``TableSpec`` through a gateway and keeps its indexes."""

    def __init__(self, gateway: Gateway, spec: TableSpec) -> None:
        self.gateway = gateway
        self.spec = spec
        self.table_name = spec.table_name(gateway.config.namespace)
        self.indexes = IndexSet(gateway, spec)

    def _range_key_info(self) -> RangeKeyInfo | None:
        if self.spec.range_key is None or self.spec.range_type is None:
            return None
        return RangeKeyInfo(self.spec.range_key, self.spec.range_type)

    def create_table(self) -> None:
        """Create the table if missing, then declare (and create) its indexes."""
        if self.table_name not in self.gateway.list_tables():
            self.gateway.create_table(self.table_name, "id", range_key=self._range_key_info())
        for index in self.spec.indexes:
            self.indexes.index(index.keys, range=index.range, range_key=index.range_key)

    def new(self, **values: Any) -> Record:
        return Record(self.spec, values)

    def _load(self, item: dict[str, Any] | None) -> Record | None:
        if item is None:
            return None
        return Record(self.spec, item, new=False)

    def save(self, record: Record) -> Record:
        self.indexes.ensure_supported()
        if record.hash_key is None:
            record["id"] = str(uuid.uuid4())
        now = time.time()
        if record.is_new and record.get("created_at") is None:
            record["created_at"] = now
        record["updated_at"] = now
        self.gateway.write(self.table_name, record.to_item())
        self.indexes.save(record)
        record.mark_persisted()
        return record

    def find(self, record_id: Any, range_key: Any = None) -> Record | None:
        item = self.gateway.read(self.table_name, record_id, range_key=range_key)
        return self._load(item)  # type: ignore[arg-type]

    def find_all(self, ids: Iterable[Any], range_key: Any = None) -> list[Record]:
        result = self.gateway.read(self.table_name, list(ids), range_key=range_key)
        items = result.get(self.table_name, []) if result else []  # type: ignore[union-attr]
        records = [Record(self.spec, item, new=False) for item in items]
        return sorted(records, key=lambda r: str(r.hash_key))

    def destroy(self, record: Record) -> None:
        self.indexes.ensure_supported()
        self.gateway.delete(self.table_name, record.hash_key, range_key=record.range_value)
        self.indexes.delete(record)

    def _split_element(self, element: str) -> tuple[str, Any]:
        hash_key, _, raw_range = element.partition(".")
        if self.spec.range_type == "number":
            return hash_key, normalize_number(float(raw_range))
        return hash_key, raw_range

    def find_by_index(
        self,
        name: str | Iterable[str],
        hash_value: Any,
        range_value: Any = None,
    ) -> list[Record]:
        """Records whose ids the index holds at ``hash_value`` (and ``range_value``)."""
        elements = sorted(self.indexes.lookup(name, hash_value, range_value))
        if self.spec.range_key is None:
            return self.find_all(elements) if elements else []
        found = []
        for element in elements:
            record_id, record_range = self._split_element(element)
            record = self.find(record_id, range_key=record_range)
            if record is not None:
                found.append(record)
        return found


__all__ = ["IndexedRecord", "Record", "RecordTable"]
