"""Custom exceptions for Switchyard.

Every failure carries enough structure to be told apart programmatically:
- A distinct class per error kind
- A ``context`` dict with the names and values involved
- A ``status_code`` the application boundary maps onto its own protocol
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from switchyard.dal.delta import SchemaDelta


class SwitchyardError(Exception):
    """Base exception for all Switchyard errors."""

    status_code = 500

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class ConnectionError(SwitchyardError):
    """Failed to connect to the backend."""

    pass


class NotFoundError(SwitchyardError):
    """A collection or record does not exist."""

    status_code = 404


class CollectionNotFoundError(NotFoundError):
    """Collection does not exist on the backend."""

    def __init__(self, collection_name: str, available: list[str] | None = None) -> None:
        available = available or []
        if available:
            message = (
                f"Collection '{collection_name}' does not exist. "
                f"Available collections: {', '.join(available)}"
            )
        else:
            message = f"Collection '{collection_name}' does not exist. No collections exist yet."

        super().__init__(message, {"collection": collection_name, "available": available})
        self.collection_name = collection_name
        self.available = available


class RecordNotFoundError(NotFoundError):
    """Record with given ID does not exist."""

    def __init__(self, record_id: Any, collection_name: str) -> None:
        message = f"Record '{record_id}' does not exist in '{collection_name}'."
        super().__init__(message, {"record_id": record_id, "collection": collection_name})
        self.record_id = record_id
        self.collection_name = collection_name


class ExistsError(SwitchyardError):
    """Something being created already exists."""

    status_code = 409


class CollectionExistsError(ExistsError):
    """Collection already exists (duplicate creation)."""

    def __init__(self, collection_name: str) -> None:
        message = (
            f"Collection '{collection_name}' already exists. "
            f"Drop it first or migrate the existing schema."
        )
        super().__init__(message, {"collection": collection_name})
        self.collection_name = collection_name


class InvalidInputError(SwitchyardError):
    """The mapper was given a value it cannot read fields from."""

    status_code = 400

    def __init__(self, value: Any, reason: str | None = None) -> None:
        type_name = type(value).__name__
        message = reason or (
            f"Cannot make a record from a value of type '{type_name}'. "
            f"Pass a Record, a mapping, a dataclass instance, or register a binding for the type."
        )
        super().__init__(message, {"type": type_name})
        self.value_type = type_name


class UnknownFieldError(SwitchyardError):
    """A filter, sort or projection references a field the collection does not declare."""

    status_code = 400

    def __init__(
        self, field_name: str, collection_name: str, available: list[str] | None = None
    ) -> None:
        available = available or []
        if available:
            message = (
                f"Unknown field '{field_name}' in collection '{collection_name}'. "
                f"Available fields: {', '.join(available)}"
            )
        else:
            message = f"Unknown field '{field_name}' in collection '{collection_name}'."

        super().__init__(
            message,
            {"field": field_name, "collection": collection_name, "available": available},
        )
        self.field_name = field_name
        self.collection_name = collection_name
        self.available = available


class UnsupportedOperationError(SwitchyardError):
    """The backend (or generator) does not implement the requested capability."""

    status_code = 400

    def __init__(self, backend: Any, operation: str) -> None:
        backend_type = backend if isinstance(backend, str) else type(backend).__name__
        message = f"Backend {backend_type} does not support {operation}."
        super().__init__(message, {"backend": backend_type, "operation": operation})
        self.backend_type = backend_type
        self.operation = operation


class SchemaMismatchError(SwitchyardError):
    """The actual schema differs from the desired one."""

    def __init__(self, collection_name: str, deltas: list[SchemaDelta]) -> None:
        lines = [f"Actual schema for collection '{collection_name}' differs from desired schema:"]
        lines.extend(f"  {delta}" for delta in deltas)

        super().__init__(
            "\n".join(lines),
            {"collection": collection_name, "deltas": [d.to_dict() for d in deltas]},
        )
        self.collection_name = collection_name
        self.deltas = deltas


class PopulationError(SwitchyardError):
    """A record value could not be coerced into the target's declared type."""

    def __init__(self, field_name: str, target: Any, reason: str) -> None:
        target_type = type(target).__name__
        message = f"Cannot populate '{target_type}.{field_name}': {reason}"
        super().__init__(message, {"field": field_name, "target": target_type})
        self.field_name = field_name
        self.target_type = target_type


class ParseError(SwitchyardError):
    """A filter string or mapping is malformed."""

    status_code = 400

    def __init__(self, message: str, query: Any = None) -> None:
        super().__init__(message, {"query": query} if query is not None else {})
        self.query = query


class InvalidJoinError(ParseError):
    """A join request names anything other than one or two collections."""

    def __init__(self, spec: str) -> None:
        super().__init__("Only two (2) joined collections are supported", spec)
        self.spec = spec


class ValidationError(SwitchyardError):
    """Record data failed field validation."""

    status_code = 400

    def __init__(self, message: str, field_errors: dict[str, str] | None = None) -> None:
        super().__init__(message, {"field_errors": field_errors or {}})
        self.field_errors = field_errors or {}


class QueryError(SwitchyardError):
    """Statement execution failed on the backend."""

    pass


class BatchError(SwitchyardError):
    """Several items of a batch operation failed; the others were applied."""

    status_code = 400

    def __init__(self, errors: dict[str, SwitchyardError], succeeded: list[str]) -> None:
        message = f"{len(errors)} of {len(errors) + len(succeeded)} items failed: " + "; ".join(
            f"{name}: {err.message}" for name, err in errors.items()
        )
        super().__init__(
            message,
            {
                "errors": {name: err.to_dict() for name, err in errors.items()},
                "succeeded": succeeded,
            },
        )
        self.errors = errors
        self.succeeded = succeeded
