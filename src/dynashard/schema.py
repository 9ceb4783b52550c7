"""Table and index declarations, loadable from YAML."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from dynashard.errors import ConfigurationError

AttributeType = Literal["string", "number", "datetime", "boolean", "set"]

# Every table carries these, the way the model layer stamps them.
IMPLICIT_ATTRIBUTES: dict[str, AttributeType] = {
    "id": "string",
    "created_at": "datetime",
    "updated_at": "datetime",
}


class IndexSpec(BaseModel):
    """One secondary index declaration: hash keys plus optional range keys."""

    keys: list[str] = Field(min_length=1)
    range: bool = False
    range_key: str | list[str] | None = None


class TableSpec(BaseModel):
    """A logical table: its attributes, optional range key and secondary indexes."""

    name: str
    attributes: dict[str, AttributeType] = Field(default_factory=dict)
    range_key: str | None = None
    indexes: list[IndexSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def complete_attributes(self) -> TableSpec:
        for attr, attr_type in IMPLICIT_ATTRIBUTES.items():
            self.attributes.setdefault(attr, attr_type)
        if self.range_key is not None:
            range_type = self.attributes.get(self.range_key)
            if range_type is None:
                raise ValueError(f"range_key '{self.range_key}' is not a declared attribute")
            if range_type not in ("string", "number"):
                raise ValueError(
                    f"range_key '{self.range_key}' must be a string or number attribute, "
                    f"got {range_type}"
                )
        return self

    @property
    def range_type(self) -> str | None:
        if self.range_key is None:
            return None
        return "number" if self.attributes[self.range_key] == "number" else "string"

    def table_name(self, namespace: str) -> str:
        return f"{namespace}_{self.name}" if namespace else self.name


class SchemaDocument(BaseModel):
    """Top-level schema file: a list of tables."""

    tables: list[TableSpec] = Field(default_factory=list)

    def table(self, name: str) -> TableSpec:
        for spec in self.tables:
            if spec.name == name:
                return spec
        raise KeyError(f"Table '{name}' is not declared in the schema")


def load_schema(path: str | Path) -> SchemaDocument:
    """Parse a YAML schema file into a validated ``SchemaDocument``."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    try:
        return SchemaDocument.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid schema file '{path}': {e}") from e
