"""Switchyard CLI - Main entry point."""

import logging
import sys
from typing import Annotated

import typer

import switchyard
from switchyard.cli.context import CLIContext
from switchyard.service import get_backend_url

app = typer.Typer(
    name="switchyard",
    help="Switchyard CLI - one filter language for every backend",
    no_args_is_help=True,
)

# Store CLI context globally (will be set in callback)
state: dict[str, CLIContext] = {}


@app.callback()
def main_callback(
    ctx: typer.Context,
    database: Annotated[
        str | None,
        typer.Option(
            "--database",
            "-d",
            envvar="SWITCHYARD_URL",
            help="Backend URL (sqlite://, postgresql://, mysql:// or memory://)",
        ),
    ] = None,
    schema: Annotated[
        str | None,
        typer.Option(
            "--schema",
            "-s",
            envvar="SWITCHYARD_SCHEMA",
            help="Schema file or directory of *.json collection definitions",
        ),
    ] = None,
    echo: Annotated[
        bool,
        typer.Option("--echo", "-e", help="Echo SQL statements to console"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output as JSON (machine-readable)"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log rendered queries and schema changes to stderr"),
    ] = False,
) -> None:
    """Initialize CLI context with global options."""
    if verbose:
        logging.basicConfig(
            stream=sys.stderr,
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    cli_ctx = CLIContext(
        database_url=get_backend_url(database),
        schema_path=schema,
        echo=echo,
        json_output=json_output,
    )

    ctx.obj = cli_ctx
    state["cli_ctx"] = cli_ctx


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"Switchyard v{switchyard.__version__}")


# Register command groups
from switchyard.cli.commands import data, schema  # noqa: E402

app.add_typer(schema.app, name="schema")
app.add_typer(data.app, name="data")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
