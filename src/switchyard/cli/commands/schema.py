"""Collection schema commands."""

from typing import Annotated

import typer

from switchyard.cli.context import CLIContext
from switchyard.cli.output import OutputFormatter
from switchyard.service import load_schemata

app = typer.Typer(help="Manage collection schemas")


@app.command("list")
def schema_list(ctx: typer.Context) -> None:
    """List all collections on the backend."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        service = cli_ctx.get_service()
        names = service.list_collections()

        if cli_ctx.json_output:
            formatter.print_data(names)
        else:
            table_data = []
            for name in names:
                collection = service.collection(name)
                table_data.append(
                    {
                        "Name": name,
                        "Fields": len(collection.fields),
                        "Identity": collection.identity_field,
                    }
                )
            formatter.print_table(
                f"Collections ({len(names)} total)",
                table_data,
                ["Name", "Fields", "Identity"],
            )
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("show")
def schema_show(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Collection name")],
) -> None:
    """Show a collection as the backend reports it."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        service = cli_ctx.get_service()
        formatter.print_collection(service.backend.get_collection(name))
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("create")
def schema_create(
    ctx: typer.Context,
    from_file: Annotated[
        str,
        typer.Argument(help="JSON file (or directory) with collection definitions"),
    ],
) -> None:
    """Create collections from a definition file.

    Examples:

        switchyard schema create schema/users.json
        switchyard schema create schema/
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        service = cli_ctx.get_service()
        created = service.create_collections(load_schemata(from_file))
        formatter.print_success(
            f"Created {len(created)} collection(s)",
            {"collections": created},
        )
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("migrate")
def schema_migrate(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Collection name (must be in --schema)")],
    apply: Annotated[
        bool,
        typer.Option("--apply", help="Apply the differences instead of only reporting them"),
    ] = False,
) -> None:
    """Compare a collection with its definition and optionally migrate it.

    Examples:

        switchyard --schema schema/ schema migrate users
        switchyard --schema schema/ schema migrate users --apply
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        service = cli_ctx.get_service()
        deltas = service.migrate(name, apply=apply)
        formatter.print_deltas(name, deltas)
        if deltas and not apply:
            raise typer.Exit(code=2)
    except typer.Exit:
        raise
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("drop")
def schema_drop(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Collection name")],
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Skip confirmation prompt"),
    ] = False,
) -> None:
    """Drop a collection and all of its records."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    if not force and not cli_ctx.json_output:
        typer.confirm(f"Drop collection '{name}' and all its records?", abort=True)

    try:
        service = cli_ctx.get_service()
        service.drop_collection(name)
        formatter.print_success(f"Dropped collection '{name}'", {"collection": name})
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()
