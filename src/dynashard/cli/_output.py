"""Output formatting helpers for the CLI."""

from __future__ import annotations

import json
import sys
from decimal import Decimal
from typing import Any


def _json_default(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, Decimal):
        return float(value)
    return str(value)


def dumps(data: Any) -> str:
    return json.dumps(data, indent=2, default=_json_default)


def _text(value: Any) -> str:
    if isinstance(value, (set, frozenset)):
        return "{" + ", ".join(sorted(str(v) for v in value)) + "}"
    return str(value)


def print_table(headers: list[str], rows: list[list[Any]], *, json_mode: bool = False) -> None:
    """Print data as a table (text) or JSON array."""
    if json_mode:
        print(dumps([dict(zip(headers, row)) for row in rows]))
        return

    if not rows:
        return

    widths = [len(h) for h in headers]
    str_rows = [[_text(v) for v in row] for row in rows]
    for row in str_rows:
        for i, val in enumerate(row):
            if i < len(widths):
                widths[i] = max(widths[i], len(val))

    print("  ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
    print("  ".join("-" * w for w in widths))
    for row in str_rows:
        print(
            "  ".join(val.ljust(widths[i]) if i < len(widths) else val for i, val in enumerate(row))
        )


def print_items(items: list[dict[str, Any]], *, json_mode: bool = False) -> None:
    """Print records with the union of their attributes as columns, ``id`` first."""
    if json_mode:
        print(dumps(items))
        return
    headers: list[str] = []
    for item in items:
        for key in item:
            if key not in headers:
                headers.append(key)
    if "id" in headers:
        headers.remove("id")
        headers.insert(0, "id")
    print_table(headers, [[item.get(h, "") for h in headers] for item in items])


def print_object(data: dict[str, Any] | list[Any], *, json_mode: bool = False) -> None:
    """Print a single object or list as JSON or key-value pairs."""
    if json_mode:
        print(dumps(data))
        return

    if isinstance(data, list):
        for item in data:
            if isinstance(item, dict):
                for k, v in item.items():
                    print(f"  {k}: {_text(v)}")
                print()
            else:
                print(f"  {_text(item)}")
        return

    for k, v in data.items():
        print(f"{k}: {_text(v)}")


def print_error(msg: str) -> None:
    """Print an error message to stderr."""
    print(f"Error: {msg}", file=sys.stderr)
