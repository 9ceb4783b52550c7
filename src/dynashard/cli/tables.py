"""dynashard tables: list tables and create them from a schema file."""

from __future__ import annotations

import typer

from dynashard.cli import _exitcodes as ec
from dynashard.cli._output import print_error, print_object, print_table
from dynashard.cli._storage import open_gateway
from dynashard.records import RecordTable
from dynashard.schema import load_schema

app = typer.Typer(no_args_is_help=True)


@app.command(name="list")
def tables_list_cmd() -> None:
    """List every table in the store."""
    from dynashard.cli import state

    try:
        gateway = open_gateway()
    except Exception as e:
        print_error(f"Cannot open store: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        rows = []
        for name in gateway.list_tables():
            info = gateway.get_table(name)
            range_key = f"{info.range_key.name} ({info.range_key.type})" if info.range_key else ""
            rows.append([name, info.hash_key, range_key])
        if not rows and not state.json_output:
            print("No tables.")
            return
        print_table(["table", "hash_key", "range_key"], rows, json_mode=state.json_output)
    finally:
        gateway.close()


@app.command(name="create")
def tables_create_cmd(
    schema: str = typer.Option(..., "--schema", help="YAML schema file"),
) -> None:
    """Create the tables and index tables a schema declares; existing ones are kept."""
    from dynashard.cli import state

    try:
        document = load_schema(schema)
    except Exception as e:
        print_error(f"Failed to load schema: {e}")
        raise typer.Exit(ec.USAGE_ERROR)

    try:
        gateway = open_gateway()
    except Exception as e:
        print_error(f"Cannot open store: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        before = set(gateway.list_tables())
        for spec in document.tables:
            RecordTable(gateway, spec).create_table()
        created = sorted(set(gateway.list_tables()) - before)
        if state.json_output:
            print_object({"created": created}, json_mode=True)
        elif created:
            for name in created:
                print(f"Created {name}")
        else:
            print("All tables already exist.")
    except Exception as e:
        print_error(str(e))
        raise typer.Exit(ec.EXECUTION_FAILURE)
    finally:
        gateway.close()
