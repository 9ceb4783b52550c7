"""dynashard: partition-aware gateway and secondary indexes over a key-value store."""

__version__ = "0.1.0"

from dynashard.config import DynashardConfig, config_from_env, load_config
from dynashard.errors import (
    ConditionalCheckFailed,
    ConfigurationError,
    DynashardError,
    InvalidField,
    StorageBackendError,
    TableNotFoundError,
    UnsupportedOperation,
)
from dynashard.gateway import Gateway
from dynashard.indexes import IndexDescriptor, IndexedRecord, IndexMaintainer, IndexSet
from dynashard.partitioning import get_original_id_and_partition, id_with_partitions
from dynashard.reconcile import result_for_partition
from dynashard.records import Record, RecordTable
from dynashard.schema import IndexSpec, SchemaDocument, TableSpec, load_schema
from dynashard.store import ItemUpdate, RangeKeyInfo, StoreProtocol, TableInfo, open_store

__all__ = [
    "__version__",
    "DynashardConfig",
    "config_from_env",
    "load_config",
    "Gateway",
    "open_store",
    "StoreProtocol",
    "TableInfo",
    "RangeKeyInfo",
    "ItemUpdate",
    "IndexDescriptor",
    "IndexMaintainer",
    "IndexSet",
    "IndexedRecord",
    "Record",
    "RecordTable",
    "IndexSpec",
    "TableSpec",
    "SchemaDocument",
    "load_schema",
    "id_with_partitions",
    "get_original_id_and_partition",
    "result_for_partition",
    "DynashardError",
    "InvalidField",
    "ConditionalCheckFailed",
    "TableNotFoundError",
    "ConfigurationError",
    "UnsupportedOperation",
    "StorageBackendError",
]
