"""dynashard CLI: operator console for tables, records and secondary indexes."""

from __future__ import annotations

from typing import Optional

import typer

from dynashard.cli import index, items, tables

app = typer.Typer(
    name="dynashard",
    help="dynashard CLI: inspect and manage partitioned tables and their indexes.",
    no_args_is_help=True,
)


class _State:
    """Global CLI state shared across subcommands."""

    store_uri: str | None = None
    config: str | None = None
    json_output: bool = False


state = _State()


def _version_callback(value: bool) -> None:
    if value:
        from dynashard import __version__

        print(f"dynashard {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    store_uri: Optional[str] = typer.Option(
        None,
        "--store",
        envvar="DYNASHARD_STORE",
        help="Store URI (e.g. sqlite:///dynashard.db or dynamodb://us-east-1)",
    ),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="DYNASHARD_CONFIG",
        help="YAML config file path",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output when supported"),
    version: bool = typer.Option(
        False, "--version", help="Show version", is_eager=True, callback=_version_callback
    ),
) -> None:
    """Global options for all dynashard commands."""
    from dynashard.store import parse_storage_target

    if store_uri:
        try:
            parse_storage_target(store_uri)
        except Exception as e:
            raise typer.BadParameter(str(e))

    state.store_uri = store_uri
    state.config = config
    state.json_output = json_output
    if ctx.invoked_subcommand is None and not version:
        print(ctx.get_help())
        raise typer.Exit()


# Register subcommand groups
app.add_typer(tables.app, name="tables", help="List and create tables")
app.add_typer(index.app, name="index", help="Inspect secondary indexes")

# Register top-level commands
app.command(name="put")(items.put_cmd)
app.command(name="get")(items.get_cmd)
app.command(name="scan")(items.scan_cmd)
app.command(name="query")(items.query_cmd)
app.command(name="delete")(items.delete_cmd)


def main() -> None:
    """Entry point for the dynashard CLI."""
    app()
