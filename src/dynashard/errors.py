"""Structured error types for dynashard."""

from __future__ import annotations


class DynashardError(Exception):
    """Base error for all dynashard errors."""


class InvalidField(DynashardError):
    """Raised when an index references an attribute its source table does not declare."""

    def __init__(self, missing: list[str], table: str) -> None:
        self.missing = missing
        self.table = table
        super().__init__(
            f"A key specified for an index is not a field: {missing} (table '{table}')"
        )


class ConditionalCheckFailed(DynashardError):
    """Raised when a conditional put/delete finds its condition violated."""

    def __init__(self, table: str, key: object, condition: str) -> None:
        self.table = table
        self.key = key
        self.condition = condition
        super().__init__(f"Conditional check '{condition}' failed on {table} at {key!r}")


class TableNotFoundError(DynashardError):
    """Raised when a store is asked about a table it does not hold."""

    def __init__(self, table: str) -> None:
        self.table = table
        super().__init__(f"Table '{table}' does not exist")


class ConfigurationError(DynashardError):
    """Raised for invalid configuration values or files."""


class UnsupportedOperation(DynashardError):
    """Raised for operations deliberately left unimplemented."""


class StorageBackendError(DynashardError):
    """Raised when backend storage operations fail."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage backend error during {operation}: {detail}")
