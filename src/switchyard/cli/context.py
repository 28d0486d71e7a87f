"""CLI context management for the data service and shared state."""

from dataclasses import dataclass, field

from switchyard.service import DataService


@dataclass
class CLIContext:
    """Shared context for CLI commands.

    Manages the service lifecycle and output preferences.
    """

    database_url: str
    schema_path: str | None
    echo: bool
    json_output: bool
    _service: DataService | None = field(default=None, init=False, repr=False)

    def get_service(self) -> DataService:
        """Get or create the data service (lazy initialization)."""
        if self._service is None:
            self._service = DataService(
                self.database_url, echo=self.echo, schema_path=self.schema_path
            )
        return self._service

    def close(self) -> None:
        """Close the backend if open."""
        if self._service is not None:
            self._service.close()
            self._service = None
