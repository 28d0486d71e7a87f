"""Record commands: reads, queries, aggregates."""

import json
from pathlib import Path
from typing import Annotated

import typer

from switchyard.cli.context import CLIContext
from switchyard.cli.output import OutputFormatter
from switchyard.filter.filter import Aggregation

app = typer.Typer(help="Read and query collection records")


def _split(value: str | None) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()] if value else []


@app.command("insert")
def data_insert(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Collection name")],
    data_json: Annotated[
        str | None,
        typer.Argument(help="Record (JSON object) or records (JSON array)"),
    ] = None,
    from_file: Annotated[
        str | None,
        typer.Option("--from-file", "-f", help="Load records from a JSON file"),
    ] = None,
) -> None:
    """Insert record(s) into a collection.

    Examples:

        switchyard data insert users '{"email": "a@example.com", "age": 30}'
        switchyard data insert users --from-file users.json
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        if from_file:
            payload = json.loads(Path(from_file).read_text())
        elif data_json:
            payload = json.loads(data_json)
        else:
            raise typer.BadParameter("Either provide records as JSON or use --from-file")

        values = payload if isinstance(payload, list) else [payload]
        records = cli_ctx.get_service().insert(name, values)
        formatter.print_success(
            f"Inserted {len(records)} record(s)",
            {"count": len(records), "ids": records.ids()},
        )
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("get")
def data_get(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Collection name")],
    record_id: Annotated[str, typer.Argument(help="Record identity")],
    fields: Annotated[
        str | None,
        typer.Option("--fields", help="Comma-separated fields to return"),
    ] = None,
) -> None:
    """Get one record by identity."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        service = cli_ctx.get_service()
        collection = service.collection(name)
        record = service.retrieve(name, record_id, _split(fields) or None)
        formatter.print_data(record.to_dict(collection))
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("query")
def data_query(
    ctx: typer.Context,
    name: Annotated[
        str,
        typer.Argument(help="Collection name, or 'left.field:right.field' to join two"),
    ],
    query: Annotated[
        str,
        typer.Argument(help="Filter, e.g. 'status/is/active/age/gt/30' or 'all'"),
    ] = "all",
    limit: Annotated[int | None, typer.Option("--limit", "-l", help="Maximum records")] = None,
    offset: Annotated[int | None, typer.Option("--offset", help="Records to skip")] = None,
    sort: Annotated[
        str | None,
        typer.Option("--sort", help="Comma-separated sort fields, '-' prefix for descending"),
    ] = None,
    fields: Annotated[
        str | None,
        typer.Option("--fields", help="Comma-separated fields to return"),
    ] = None,
) -> None:
    """Query records with the filter grammar.

    Examples:

        switchyard data query users 'age/gte/21' --sort=-age --limit 10
        switchyard data query users.id:orders.user_id 'name/prefix/a'
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        service = cli_ctx.get_service()
        params = {"limit": limit, "offset": offset, "sort": sort, "fields": fields}
        recordset = service.query(name, query, params)

        left = name.split(":", 1)[0].split(".", 1)[0]
        formatter.print_records(name, recordset, service.collection(left).identity_field)
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("aggregate")
def data_aggregate(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Collection name")],
    fields: Annotated[str, typer.Argument(help="Comma-separated fields to aggregate")],
    functions: Annotated[
        str | None,
        typer.Option(
            "--fn",
            help=f"Comma-separated functions ({', '.join(Aggregation.values())}); default all",
        ),
    ] = None,
    query: Annotated[str, typer.Option("--query", "-q", help="Filter")] = "all",
) -> None:
    """Compute aggregates over matching records.

    Examples:

        switchyard data aggregate orders total --fn sum,avg --query 'status/is/paid'
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        service = cli_ctx.get_service()
        results = service.aggregate(name, _split(fields), _split(functions) or None, query)

        if cli_ctx.json_output:
            formatter.print_data(results)
        else:
            fns = list(next(iter(results.values()), {}))
            rows = [{"Field": f, **values} for f, values in results.items()]
            formatter.print_table(f"Aggregates of {name}", rows, ["Field", *fns])
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("values")
def data_values(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Collection name")],
    fields: Annotated[str, typer.Argument(help="Comma-separated fields")],
    query: Annotated[str, typer.Option("--query", "-q", help="Filter")] = "all",
) -> None:
    """List the distinct values of fields among matching records."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        service = cli_ctx.get_service()
        formatter.print_data(service.list_values(name, _split(fields), query))
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("explain")
def data_explain(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Collection name")],
    query: Annotated[str, typer.Argument(help="Filter")] = "all",
    dialect: Annotated[
        str,
        typer.Option(
            "--dialect",
            help="sqlite, postgresql, mysql or elasticsearch",
        ),
    ] = "sqlite",
) -> None:
    """Show the statement a query compiles to, without running it."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        service = cli_ctx.get_service()
        compiled = service.explain(name, query, dialect)
        formatter.print_data({"statement": compiled.statement, "params": compiled.bind()})
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("delete")
def data_delete(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Collection name")],
    record_ids: Annotated[list[str], typer.Argument(help="Identities of records to delete")],
) -> None:
    """Delete records by identity."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        service = cli_ctx.get_service()
        service.delete(name, *record_ids)
        formatter.print_success(
            f"Deleted {len(record_ids)} record(s)", {"ids": record_ids}
        )
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()
