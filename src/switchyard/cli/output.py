"""Output formatting for CLI commands."""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from switchyard.dal.collection import Collection
from switchyard.dal.delta import SchemaDelta
from switchyard.dal.record import RecordSet
from switchyard.exceptions import SwitchyardError

console = Console()


def _dump(data: Any) -> None:
    print(json.dumps(data, default=str, indent=2))


class OutputFormatter:
    """Formats output for terminal or JSON mode."""

    def __init__(self, json_mode: bool = False) -> None:
        """Initialize formatter.

        Args:
            json_mode: If True, output JSON instead of Rich formatting
        """
        self.json_mode = json_mode

    def print_table(
        self,
        title: str,
        data: list[dict[str, Any]],
        columns: list[str],
    ) -> None:
        """Print data as Rich table or JSON array."""
        if self.json_mode:
            _dump(data)
        else:
            table = Table(title=title, show_header=True, header_style="bold magenta")
            for col in columns:
                table.add_column(col)
            for row in data:
                table.add_row(*["" if row.get(col) is None else str(row[col]) for col in columns])
            console.print(table)

    def print_collection(self, collection: Collection) -> None:
        """Print a collection definition with its fields."""
        if self.json_mode:
            _dump(collection.model_dump(mode="json"))
            return

        console.print(f"\n[bold]Collection:[/bold] {collection.name}")
        if collection.identity_field:
            console.print(
                f"Identity: {collection.identity_field} ({collection.identity_field_type})"
            )
        if collection.index_name:
            console.print(f"Index: {collection.index_name}")

        if collection.fields:
            console.print(f"\n[bold]Fields ({len(collection.fields)}):[/bold]")
            fields_table = Table(show_header=True, header_style="bold cyan")
            fields_table.add_column("Name")
            fields_table.add_column("Type")
            fields_table.add_column("Required")
            fields_table.add_column("Unique")
            fields_table.add_column("Default")

            for field in collection.fields:
                fields_table.add_row(
                    field.name,
                    field.type,
                    "✓" if field.required else "",
                    "✓" if field.unique else "",
                    "" if field.default is None else str(field.default),
                )
            console.print(fields_table)

    def print_records(self, title: str, recordset: RecordSet, identity_field: str) -> None:
        """Print a record set, one row per record."""
        rows = [{identity_field or "id": r.id, **r.fields} for r in recordset]

        if self.json_mode:
            _dump(
                {
                    "records": rows,
                    "result_count": recordset.result_count,
                    "page": recordset.page,
                    "records_per_page": recordset.records_per_page,
                }
            )
            return

        columns: list[str] = []
        for row in rows:
            columns.extend(c for c in row if c not in columns)
        self.print_table(f"{title} ({recordset.result_count} records)", rows, columns)

    def print_deltas(self, collection_name: str, deltas: list[SchemaDelta]) -> None:
        if self.json_mode:
            _dump({"collection": collection_name, "deltas": [d.to_dict() for d in deltas]})
            return
        if not deltas:
            console.print(
                f"✓ Collection '{collection_name}' matches its definition", style="green"
            )
            return
        console.print(f"[bold]Collection '{collection_name}' differs:[/bold]")
        for delta in deltas:
            console.print(f"  {delta}", style="yellow")

    def print_success(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Print success message."""
        if self.json_mode:
            output = {"success": True, "message": message}
            if details:
                output.update(details)
            _dump(output)
        else:
            console.print(f"✓ {message}", style="green")
            if details:
                for key, value in details.items():
                    console.print(f"  {key}: {value}", style="dim")

    def print_error(self, error: Exception) -> None:
        """Print error message."""
        if self.json_mode:
            if isinstance(error, SwitchyardError):
                _dump(error.to_dict())
            else:
                _dump({"error": str(error)})
        else:
            error_text = str(error)
            if isinstance(error, SwitchyardError) and error.context:
                context_str = "\n".join(f"{k}: {v}" for k, v in error.context.items())
                error_text = f"{error_text}\n\n{context_str}"

            panel = Panel(
                error_text,
                title="[red]Error[/red]",
                border_style="red",
            )
            console.print(panel)

    def print_data(self, data: Any) -> None:
        """Print generic data (dict, list, etc.)."""
        if self.json_mode:
            _dump(data)
        else:
            console.print_json(json.dumps(data, default=str))
