"""Backend contract and optional capabilities.

Every backend implements the executor methods on ``Backend``. Searching, aggregating
and schema migration are optional: a backend advertises them through
``capabilities()``, and callers ask for them with ``with_search()``,
``with_aggregator()`` or ``with_migrator()``, which return None when absent.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from enum import StrEnum
from typing import Any

from switchyard.backends.registry import CollectionRegistry
from switchyard.dal.collection import Collection
from switchyard.dal.delta import SchemaDelta
from switchyard.dal.record import Record, RecordSet
from switchyard.exceptions import UnsupportedOperationError
from switchyard.filter.filter import Aggregate, Filter


class Capability(StrEnum):
    """Optional backend features."""

    SEARCH = "search"
    AGGREGATOR = "aggregator"
    MIGRATABLE = "migratable"


class Search(ABC):
    """Querying by filter."""

    @abstractmethod
    def query(self, collection: Collection, flt: Filter) -> RecordSet:
        raise NotImplementedError

    @abstractmethod
    def list_values(
        self, collection: Collection, field_names: list[str], flt: Filter
    ) -> dict[str, list[Any]]:
        """Distinct values of each named field among records matching ``flt``."""
        raise NotImplementedError


class Aggregator(ABC):
    """Scalar and grouped aggregates."""

    @abstractmethod
    def count(self, collection: Collection, flt: Filter | None = None) -> int:
        raise NotImplementedError

    @abstractmethod
    def sum(self, collection: Collection, field: str, flt: Filter | None = None) -> float:
        raise NotImplementedError

    @abstractmethod
    def minimum(self, collection: Collection, field: str, flt: Filter | None = None) -> float:
        raise NotImplementedError

    @abstractmethod
    def maximum(self, collection: Collection, field: str, flt: Filter | None = None) -> float:
        raise NotImplementedError

    @abstractmethod
    def average(self, collection: Collection, field: str, flt: Filter | None = None) -> float:
        raise NotImplementedError

    @abstractmethod
    def group_by(
        self,
        collection: Collection,
        group_by: list[str],
        aggregates: list[Aggregate],
        flt: Filter | None = None,
    ) -> RecordSet:
        raise NotImplementedError


class Migratable(ABC):
    """Explicit application of schema deltas."""

    @abstractmethod
    def migrate(self, collection: Collection, deltas: list[SchemaDelta]) -> None:
        raise NotImplementedError


_CAPABILITY_TYPES: dict[Capability, type] = {
    Capability.SEARCH: Search,
    Capability.AGGREGATOR: Aggregator,
    Capability.MIGRATABLE: Migratable,
}


def as_records(records: RecordSet | Record | Iterable[Record]) -> list[Record]:
    if isinstance(records, Record):
        return [records]
    if isinstance(records, RecordSet):
        return list(records.records)
    return list(records)


class Backend(ABC):
    """A storage backend holding collections of records."""

    def __init__(self) -> None:
        self.registry = CollectionRegistry()

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    @property
    def type_name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def initialize(self) -> None:
        """Connect and verify the backend is usable."""
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources."""
        return None

    def register_collection(self, collection: Collection) -> Collection:
        """Make a collection definition known without touching storage."""
        return self.registry.register(collection)

    @abstractmethod
    def get_collection(self, name: str) -> Collection:
        """Raises CollectionNotFoundError when the collection does not exist."""
        raise NotImplementedError

    @abstractmethod
    def create_collection(self, collection: Collection) -> None:
        """Raises CollectionExistsError when the collection already exists."""
        raise NotImplementedError

    @abstractmethod
    def delete_collection(self, name: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_collections(self) -> list[str]:
        raise NotImplementedError

    @abstractmethod
    def insert(self, name: str, records: RecordSet | Record | Iterable[Record]) -> None:
        """Store new records; generated identities are written back to them."""
        raise NotImplementedError

    @abstractmethod
    def update(self, name: str, records: RecordSet | Record | Iterable[Record]) -> None:
        raise NotImplementedError

    @abstractmethod
    def retrieve(self, name: str, record_id: Any, fields: list[str] | None = None) -> Record:
        """Raises RecordNotFoundError when no record has that identity."""
        raise NotImplementedError

    @abstractmethod
    def exists(self, name: str, record_id: Any) -> bool:
        raise NotImplementedError

    @abstractmethod
    def delete(self, name: str, *ids: Any) -> None:
        raise NotImplementedError

    def capabilities(self) -> frozenset[Capability]:
        """The optional capabilities this backend instance provides."""
        return frozenset(cap for cap, kind in _CAPABILITY_TYPES.items() if isinstance(self, kind))

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities()

    def with_search(self, collection: Collection | None = None) -> Search | None:
        return self if self.supports(Capability.SEARCH) else None  # type: ignore[return-value]

    def with_aggregator(self, collection: Collection | None = None) -> Aggregator | None:
        return self if self.supports(Capability.AGGREGATOR) else None  # type: ignore[return-value]

    def with_migrator(self) -> Migratable | None:
        return self if self.supports(Capability.MIGRATABLE) else None  # type: ignore[return-value]

    def require(self, capability: Capability) -> Any:
        """Return the capability implementation.

        Raises:
            UnsupportedOperationError: Naming this backend's type when absent
        """
        if not self.supports(capability):
            raise UnsupportedOperationError(self, _OPERATION_NAMES[capability])
        return self


_OPERATION_NAMES = {
    Capability.SEARCH: "complex queries",
    Capability.AGGREGATOR: "aggregations",
    Capability.MIGRATABLE: "schema migration",
}
