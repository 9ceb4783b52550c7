"""Store contract, shared key/update types, and backend selection."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol, runtime_checkable
from urllib.parse import parse_qs, urlparse

from dynashard.config import DynashardConfig
from dynashard.errors import StorageBackendError

RANGE_TYPES = ("string", "number")

# Options accepted by Store.query to constrain the range key.
RANGE_OPTIONS = (
    "range_value",
    "range_greater_than",
    "range_less_than",
    "range_gte",
    "range_lte",
)


@dataclass(frozen=True)
class RangeKeyInfo:
    """Name and type (``string`` or ``number``) of a table's range key."""

    name: str
    type: str = "string"

    def __post_init__(self) -> None:
        if self.type not in RANGE_TYPES:
            raise ValueError(f"Range key type must be one of {RANGE_TYPES}, got {self.type!r}")


@dataclass(frozen=True)
class TableInfo:
    """Key layout of one table as reported by a store."""

    name: str
    hash_key: str = "id"
    range_key: RangeKeyInfo | None = None


@dataclass
class ItemUpdate:
    """Atomic set-element deltas applied by ``Store.update_item``.

    >>> ItemUpdate().add(ids=["u1"]).added
    {'ids': {'u1'}}
    """

    added: dict[str, set[Any]] = field(default_factory=dict)
    deleted: dict[str, set[Any]] = field(default_factory=dict)

    def add(self, **values: Iterable[Any]) -> ItemUpdate:
        for attr, elements in values.items():
            self.added.setdefault(attr, set()).update(elements)
        return self

    def delete(self, **values: Iterable[Any]) -> ItemUpdate:
        for attr, elements in values.items():
            self.deleted.setdefault(attr, set()).update(elements)
        return self

    def apply(self, item: dict[str, Any]) -> dict[str, Any]:
        """Apply the deltas to ``item`` in place; emptied sets are dropped."""
        for attr, elements in self.added.items():
            item[attr] = set(item.get(attr) or ()) | elements
        for attr, elements in self.deleted.items():
            remaining = set(item.get(attr) or ()) - elements
            if remaining:
                item[attr] = remaining
            else:
                item.pop(attr, None)
        return item


def normalize_number(value: Any) -> int | float:
    """Collapse numerically equal values so ``1``, ``1.0`` and ``Decimal("1")`` match."""
    number = float(value)
    if number.is_integer():
        return int(number)
    return number


def range_condition(options: dict[str, Any]) -> tuple[str, Any] | None:
    """Pick the single range constraint out of query ``options``.

    A query constrains its range key at most once; ``range_value`` is an inclusive
    ``(low, high)`` pair, the others are single bounds.
    """
    unknown = set(options) - set(RANGE_OPTIONS)
    if unknown:
        raise ValueError(f"Unsupported query options: {sorted(unknown)}")
    given = [(name, options[name]) for name in RANGE_OPTIONS if options.get(name) is not None]
    if len(given) > 1:
        raise ValueError(
            f"Only one range condition may be given per query, got {[n for n, _ in given]}"
        )
    return given[0] if given else None


def range_matches(value: Any, condition: tuple[str, Any] | None, range_type: str) -> bool:
    """Evaluate a ``range_condition`` result against one stored range value."""
    if condition is None:
        return True
    if value is None:
        return False

    def coerce(v: Any) -> Any:
        return normalize_number(v) if range_type == "number" else str(v)

    name, bound = condition
    current = coerce(value)
    if name == "range_value":
        low, high = bound
        return coerce(low) <= current <= coerce(high)
    if name == "range_greater_than":
        return current > coerce(bound)
    if name == "range_less_than":
        return current < coerce(bound)
    if name == "range_gte":
        return current >= coerce(bound)
    return current <= coerce(bound)


@runtime_checkable
class StoreProtocol(Protocol):
    """Backend-agnostic key-value contract consumed by the gateway.

    Batch requests map a table name to keys; a key is a hash value or a
    ``(hash, range)`` tuple.
    """

    def close(self) -> None: ...

    def get_table(self, table_name: str) -> TableInfo: ...

    def list_tables(self) -> list[str]: ...

    def create_table(
        self,
        table_name: str,
        key: str = "id",
        *,
        range_key: RangeKeyInfo | None = None,
        read_capacity: int = 100,
        write_capacity: int = 20,
    ) -> TableInfo: ...

    def delete_table(self, table_name: str) -> None: ...

    def get_item(
        self,
        table_name: str,
        key: Any,
        *,
        range_key: Any = None,
        consistent_read: bool = False,
    ) -> dict[str, Any] | None: ...

    def batch_get_item(
        self,
        requests: dict[str, list[Any]],
        *,
        consistent_read: bool = False,
    ) -> dict[str, list[dict[str, Any]]]: ...

    def put_item(
        self,
        table_name: str,
        item: dict[str, Any],
        *,
        unless_exists: str | None = None,
    ) -> None: ...

    def delete_item(
        self,
        table_name: str,
        key: Any,
        *,
        range_key: Any = None,
        unless_exists: str | None = None,
    ) -> None: ...

    def batch_delete_item(self, requests: dict[str, list[Any]]) -> None: ...

    def update_item(
        self,
        table_name: str,
        key: Any,
        update: ItemUpdate,
        *,
        range_key: Any = None,
    ) -> dict[str, Any] | None: ...

    def scan(
        self,
        table_name: str,
        conditions: dict[str, Any] | None = None,
        *,
        limit: int | None = None,
    ) -> list[dict[str, Any]]: ...

    def query(
        self,
        table_name: str,
        hash_value: Any,
        *,
        limit: int | None = None,
        scan_index_forward: bool = True,
        **range_options: Any,
    ) -> list[dict[str, Any]]: ...


@dataclass(frozen=True)
class StorageTarget:
    """Resolved store target from a storage URI."""

    backend: str
    uri: str
    db_path: str | None = None
    region: str | None = None
    endpoint_url: str | None = None


def parse_storage_target(storage_uri: str | None = None) -> StorageTarget:
    """Resolve a ``sqlite:`` path URI or ``dynamodb://[region][?endpoint_url=...]``."""
    if storage_uri is None:
        storage_uri = "sqlite:dynashard.db"
    parsed = urlparse(storage_uri)

    if parsed.scheme == "sqlite":
        sqlite_path = parsed.path
        if parsed.netloc:
            sqlite_path = f"{parsed.netloc}{sqlite_path}"
        elif sqlite_path.startswith("//"):
            # sqlite:////abs/path -> /abs/path
            sqlite_path = sqlite_path[1:]
        if sqlite_path == "/:memory:":
            sqlite_path = ":memory:"
        if not sqlite_path:
            raise StorageBackendError("parse_storage_uri", f"Invalid sqlite URI: {storage_uri}")
        return StorageTarget(backend="sqlite", uri=storage_uri, db_path=sqlite_path)

    if parsed.scheme == "dynamodb":
        query = parse_qs(parsed.query)
        endpoint = query.get("endpoint_url", [None])[0]
        return StorageTarget(
            backend="dynamodb",
            uri=storage_uri,
            region=parsed.netloc or None,
            endpoint_url=endpoint,
        )

    raise StorageBackendError(
        "parse_storage_uri",
        f"Unsupported storage URI scheme '{parsed.scheme}' for '{storage_uri}'",
    )


def open_store(
    storage_uri: str | None = None,
    *,
    config: DynashardConfig | None = None,
) -> StoreProtocol:
    """Open a store handle from a storage URI."""
    target = parse_storage_target(storage_uri)
    cfg = config or DynashardConfig()
    if target.backend == "sqlite":
        from dynashard.store_sqlite import SqliteStore

        assert target.db_path is not None
        return SqliteStore(target.db_path)
    if target.backend == "dynamodb":
        from dynashard.store_dynamodb import DynamoDBStore

        return DynamoDBStore(
            config=cfg,
            region=target.region or cfg.region,
            endpoint_url=target.endpoint_url or cfg.endpoint_url,
        )
    raise StorageBackendError("open_store", f"Unsupported backend '{target.backend}'")


__all__ = [
    "ItemUpdate",
    "RANGE_OPTIONS",
    "RangeKeyInfo",
    "StorageTarget",
    "StoreProtocol",
    "TableInfo",
    "normalize_number",
    "open_store",
    "parse_storage_target",
    "range_condition",
    "range_matches",
]
