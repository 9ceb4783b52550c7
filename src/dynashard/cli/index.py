"""dynashard index: inspect the secondary indexes a schema declares."""

from __future__ import annotations

from typing import Optional

import typer

from dynashard.cli import _exitcodes as ec
from dynashard.cli._output import print_error, print_object, print_table
from dynashard.cli._storage import open_gateway, resolve_config
from dynashard.indexes import INDEX_IDS, IndexDescriptor, sort_keys
from dynashard.schema import SchemaDocument, load_schema
from dynashard.store import normalize_number

app = typer.Typer(no_args_is_help=True)


def _load(schema: str) -> SchemaDocument:
    try:
        return load_schema(schema)
    except Exception as e:
        print_error(f"Failed to load schema: {e}")
        raise typer.Exit(ec.USAGE_ERROR)


@app.command(name="list")
def index_list_cmd(
    schema: str = typer.Option(..., "--schema", help="YAML schema file"),
) -> None:
    """List every declared index with its physical table name."""
    from dynashard.cli import state

    document = _load(schema)
    namespace = resolve_config().namespace
    rows = []
    try:
        for spec in document.tables:
            for index in spec.indexes:
                descriptor = IndexDescriptor(
                    spec,
                    index.keys,
                    namespace=namespace,
                    range=index.range,
                    range_key=index.range_key,
                )
                rows.append(
                    [
                        spec.name,
                        ",".join(descriptor.hash_keys),
                        ",".join(descriptor.range_keys),
                        descriptor.table_name,
                    ]
                )
    except Exception as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)

    if not rows and not state.json_output:
        print("No indexes declared.")
        return
    headers = ["table", "hash_keys", "range_keys", "index_table"]
    print_table(headers, rows, json_mode=state.json_output)


@app.command(name="lookup")
def index_lookup_cmd(
    table: str = typer.Argument(..., help="Logical table name from the schema"),
    index_name: str = typer.Argument(..., help="Index key names, comma separated"),
    hash_value: str = typer.Argument(..., help="Index hash value"),
    range_value: Optional[str] = typer.Option(None, "--range", help="Index range value"),
    schema: str = typer.Option(..., "--schema", help="YAML schema file"),
) -> None:
    """Show the ids an index row holds."""
    from dynashard.cli import state

    document = _load(schema)
    try:
        spec = document.table(table)
    except KeyError as e:
        print_error(str(e.args[0]))
        raise typer.Exit(ec.USAGE_ERROR)

    try:
        gateway = open_gateway()
    except Exception as e:
        print_error(f"Cannot open store: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        names = sort_keys([n.strip() for n in index_name.split(",") if n.strip()])
        descriptors = [
            IndexDescriptor(
                spec,
                index.keys,
                namespace=gateway.config.namespace,
                range=index.range,
                range_key=index.range_key,
            )
            for index in spec.indexes
        ]
        descriptor = next((d for d in descriptors if d.name == names), None)
        if descriptor is None:
            print_error(f"No index {list(names)} on table '{table}'")
            raise typer.Exit(ec.USAGE_ERROR)
        range_arg = None
        if range_value is not None:
            range_arg = (
                normalize_number(range_value)
                if descriptor.range_type == "number"
                else range_value
            )
        row = gateway.get_item(descriptor.table_name, hash_value, range_key=range_arg)
        ids = sorted((row or {}).get(INDEX_IDS) or ())
        data = {"index_table": descriptor.table_name, "ids": ids}
        print_object(data, json_mode=state.json_output)
    except typer.Exit:
        raise
    except Exception as e:
        print_error(str(e))
        raise typer.Exit(ec.EXECUTION_FAILURE)
    finally:
        gateway.close()
