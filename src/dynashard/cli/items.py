"""dynashard put/get/scan/query/delete: logical record access through the gateway."""

from __future__ import annotations

import json
from typing import Any, Optional

import typer

from dynashard.cli import _exitcodes as ec
from dynashard.cli._output import dumps, print_error, print_items, print_object
from dynashard.cli._storage import coerce_range, open_gateway
from dynashard.errors import ConditionalCheckFailed, TableNotFoundError
from dynashard.gateway import Gateway


def _open() -> Gateway:
    try:
        return open_gateway()
    except Exception as e:
        print_error(f"Cannot open store: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)


def parse_where(clauses: list[str] | None) -> dict[str, Any]:
    """``["k=v", ...]`` into an equality mapping; values are JSON when they parse."""
    conditions: dict[str, Any] = {}
    for clause in clauses or []:
        key, sep, raw = clause.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got '{clause}'")
        try:
            conditions[key] = json.loads(raw)
        except json.JSONDecodeError:
            conditions[key] = raw
    return conditions


def put_cmd(
    table: str = typer.Argument(..., help="Table name"),
    item_json: str = typer.Argument(..., help="Record as a JSON object"),
    unless_exists: Optional[str] = typer.Option(
        None, "--unless-exists", help="Only write if this attribute is absent on the stored row"
    ),
) -> None:
    """Write one record."""
    from dynashard.cli import state

    try:
        item = json.loads(item_json)
    except json.JSONDecodeError as e:
        print_error(f"Invalid JSON: {e}")
        raise typer.Exit(ec.USAGE_ERROR)
    if not isinstance(item, dict):
        print_error("Record must be a JSON object")
        raise typer.Exit(ec.USAGE_ERROR)

    gateway = _open()
    try:
        options = {"unless_exists": unless_exists} if unless_exists else {}
        written = gateway.write(table, item, **options)
        if state.json_output:
            print(dumps(written))
        else:
            print(f"Wrote {written.get('id')} to {table}")
    except ConditionalCheckFailed as e:
        print_error(str(e))
        raise typer.Exit(ec.CONDITION_FAILED)
    except TableNotFoundError as e:
        print_error(str(e))
        raise typer.Exit(ec.EXECUTION_FAILURE)
    finally:
        gateway.close()


def get_cmd(
    table: str = typer.Argument(..., help="Table name"),
    record_id: str = typer.Argument(..., help="Logical record id"),
    range_key: Optional[str] = typer.Option(None, "--range-key", help="Range key value"),
) -> None:
    """Read one logical record."""
    from dynashard.cli import state

    gateway = _open()
    try:
        item = gateway.read(table, record_id, range_key=coerce_range(gateway, table, range_key))
        if item is None:
            print_error(f"No record '{record_id}' in {table}")
            raise typer.Exit(ec.EXECUTION_FAILURE)
        print_object(item, json_mode=state.json_output)  # type: ignore[arg-type]
    except TableNotFoundError as e:
        print_error(str(e))
        raise typer.Exit(ec.EXECUTION_FAILURE)
    finally:
        gateway.close()


def scan_cmd(
    table: str = typer.Argument(..., help="Table name"),
    where: Optional[list[str]] = typer.Option(
        None, "--where", help="KEY=VALUE equality filter (repeatable)"
    ),
    limit: Optional[int] = typer.Option(None, "--limit", help="Max rows to scan"),
) -> None:
    """Scan a table, optionally filtered by attribute equality."""
    from dynashard.cli import state

    try:
        conditions = parse_where(where)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)

    gateway = _open()
    try:
        rows = gateway.scan(table, conditions or None, limit=limit)
        print_items(rows, json_mode=state.json_output)
    except TableNotFoundError as e:
        print_error(str(e))
        raise typer.Exit(ec.EXECUTION_FAILURE)
    finally:
        gateway.close()


def query_cmd(
    table: str = typer.Argument(..., help="Table name"),
    hash_value: str = typer.Argument(..., help="Logical hash key value"),
    gt: Optional[str] = typer.Option(None, "--gt", help="Range key greater than"),
    lt: Optional[str] = typer.Option(None, "--lt", help="Range key less than"),
    gte: Optional[str] = typer.Option(None, "--gte", help="Range key greater or equal"),
    lte: Optional[str] = typer.Option(None, "--lte", help="Range key less or equal"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Max results per partition"),
    descending: bool = typer.Option(False, "--desc", help="Descending range order"),
) -> None:
    """Query records sharing a hash key, optionally bounded on the range key."""
    from dynashard.cli import state

    gateway = _open()
    try:
        bounds = {
            "range_greater_than": gt,
            "range_less_than": lt,
            "range_gte": gte,
            "range_lte": lte,
        }
        options: dict[str, Any] = {
            name: coerce_range(gateway, table, raw)
            for name, raw in bounds.items()
            if raw is not None
        }
        if len(options) > 1:
            print_error("Only one of --gt/--lt/--gte/--lte may be given")
            raise typer.Exit(ec.USAGE_ERROR)
        if limit is not None:
            options["limit"] = limit
        if descending:
            options["scan_index_forward"] = False
        rows = gateway.query(table, hash_value, **options)
        print_items(rows, json_mode=state.json_output)
    except TableNotFoundError as e:
        print_error(str(e))
        raise typer.Exit(ec.EXECUTION_FAILURE)
    finally:
        gateway.close()


def delete_cmd(
    table: str = typer.Argument(..., help="Table name"),
    record_ids: list[str] = typer.Argument(..., help="Logical record ids"),
    range_key: Optional[str] = typer.Option(
        None, "--range-key", help="Range key value applied to every id"
    ),
) -> None:
    """Delete logical records, every partition copy included."""
    from dynashard.cli import state

    gateway = _open()
    try:
        value = coerce_range(gateway, table, range_key)
        if len(record_ids) == 1:
            gateway.delete(table, record_ids[0], range_key=value)
        else:
            gateway.delete(table, record_ids, range_key=value)
        if state.json_output:
            print_object({"deleted": record_ids}, json_mode=True)
        else:
            print(f"Deleted {len(record_ids)} record(s) from {table}")
    except TableNotFoundError as e:
        print_error(str(e))
        raise typer.Exit(ec.EXECUTION_FAILURE)
    finally:
        gateway.close()
