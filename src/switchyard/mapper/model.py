"""Model: CRUD for one collection in terms of application values."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from switchyard.backends.base import Backend, Capability
from switchyard.dal.collection import Collection
from switchyard.dal.record import Record, RecordSet
from switchyard.exceptions import CollectionNotFoundError, SchemaMismatchError
from switchyard.filter.filter import Aggregate, Filter
from switchyard.mapper.binding import binding_for

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Model:
    """Binds a collection definition to a backend.

    Application values are converted with the collection's binding tables on the
    way in and populated back on the way out.

    Example:
        users = Model(backend, Collection(name="users", fields=(Field(name="email"),)))
        users.migrate()
        users.create(User(email="a@example.com"))
        found = users.find(Filter.parse("email/prefix/a"), into=User)
    """

    def __init__(self, backend: Backend, collection: Collection) -> None:
        self.backend = backend
        self.collection = collection

    def __repr__(self) -> str:
        return f"Model({self.collection.name!r}, {self.backend!r})"

    @property
    def name(self) -> str:
        return self.collection.name

    def migrate(self) -> None:
        """Create the collection if missing, then verify the actual schema.

        Nothing is altered on an existing collection; use the backend's migrator
        for that.

        Raises:
            SchemaMismatchError: If the actual schema differs from this model's
        """
        try:
            actual = self.backend.get_collection(self.name)
        except CollectionNotFoundError:
            logger.info("Collection '%s' not found, creating it", self.name)
            self.backend.create_collection(self.collection)
            actual = self.backend.get_collection(self.name)

        if deltas := self.collection.diff(actual):
            error = SchemaMismatchError(self.name, deltas)
            logger.error(error.message)
            raise error

        self.backend.register_collection(self.collection)

    def drop(self) -> None:
        self.backend.delete_collection(self.name)

    def exists(self, record_id: Any) -> bool:
        return self.backend.exists(self.name, record_id)

    def create(self, value: Any) -> Record:
        """Insert a new record built from ``value``.

        A generated identity is written back to ``value`` when it is a bound object.

        Returns:
            The inserted record
        """
        record = self.collection.make_record(value)
        self.backend.insert(self.name, record)
        self._write_back_identity(record, value)
        return record

    def get(self, record_id: Any, into: Any = None) -> Any:
        """Retrieve one record.

        Args:
            record_id: Identity of the record
            into: An instance to fill, a bound type to instantiate, or None for the Record

        Raises:
            RecordNotFoundError: If there is no record with that identity
        """
        record = self.backend.retrieve(self.name, record_id)
        if into is None:
            return record
        return record.populate(self._target(into), self.collection)

    def update(self, value: Any) -> Record:
        record = self.collection.make_record(value)
        self.backend.update(self.name, record)
        return record

    def create_or_update(self, record_id: Any, value: Any) -> Record:
        if record_id is None or not self.exists(record_id):
            return self.create(value)
        return self.update(value)

    def delete(self, *ids: Any) -> None:
        self.backend.delete(self.name, *ids)

    def find(self, flt: Filter, into: type[T] | None = None) -> RecordSet | list[T]:
        """Query the collection.

        Returns:
            The RecordSet as-is when ``into`` is None, otherwise one populated
            ``into`` instance per record
        """
        search = self.backend.require(Capability.SEARCH)
        recordset = search.query(self.collection, flt)
        if into is None:
            return recordset
        return [record.populate(self._target(into), self.collection) for record in recordset]

    def all(self, into: type[T] | None = None) -> RecordSet | list[T]:
        return self.find(Filter.all(), into)

    def count(self, flt: Filter | None = None) -> int:
        return self.backend.require(Capability.AGGREGATOR).count(self.collection, flt)

    def sum(self, field: str, flt: Filter | None = None) -> float:
        return self.backend.require(Capability.AGGREGATOR).sum(self.collection, field, flt)

    def minimum(self, field: str, flt: Filter | None = None) -> float:
        return self.backend.require(Capability.AGGREGATOR).minimum(self.collection, field, flt)

    def maximum(self, field: str, flt: Filter | None = None) -> float:
        return self.backend.require(Capability.AGGREGATOR).maximum(self.collection, field, flt)

    def average(self, field: str, flt: Filter | None = None) -> float:
        return self.backend.require(Capability.AGGREGATOR).average(self.collection, field, flt)

    def group_by(
        self, fields: list[str], aggregates: list[Aggregate], flt: Filter | None = None
    ) -> RecordSet:
        aggregator = self.backend.require(Capability.AGGREGATOR)
        return aggregator.group_by(self.collection, fields, aggregates, flt)

    @staticmethod
    def _target(into: Any) -> Any:
        if isinstance(into, type):
            if into is dict:
                return {}
            if into is Record:
                return Record()
            binding = binding_for(into)
            if binding is not None:
                return binding.new_instance()
            return into()
        return into

    def _write_back_identity(self, record: Record, value: Any) -> None:
        if record.id is None or isinstance(value, (dict, Record)) or value is None:
            return
        if binding_for(type(value)) is None:
            return
        record.populate(value, self.collection)
