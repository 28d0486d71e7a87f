"""Records and record sets."""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel
from pydantic import Field as Attr

if TYPE_CHECKING:
    from switchyard.dal.collection import Collection


class Record(BaseModel):
    """One entity instance: an identity value plus a field-value mapping.

    The identity never appears in ``fields``; it lives in ``id``.
    """

    id: Any = None
    fields: dict[str, Any] = Attr(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    def set(self, key: str, value: Any, collection: Collection | None = None) -> Record:
        """Set a field value; the collection's identity key sets ``id`` instead."""
        if collection is not None and collection.is_identity(key):
            self.id = value
        else:
            self.fields[key] = value
        return self

    def populate(self, target: Any, collection: Collection) -> Any:
        """Fill ``target`` from this record (see ``switchyard.mapper``).

        Returns:
            The populated target
        """
        from switchyard.mapper.binding import populate

        return populate(self, target, collection)

    def to_dict(self, collection: Collection | None = None) -> dict[str, Any]:
        """Flatten to a single dict with the identity under its field name."""
        key = collection.identity_field if collection and collection.identity_field else "id"
        return {key: self.id, **self.fields}

    @classmethod
    def from_dict(cls, data: dict[str, Any], collection: Collection) -> Record:
        fields = dict(data)
        record_id = None
        if collection.identity_field:
            record_id = fields.pop(collection.identity_field, None)
        return cls(id=record_id, fields=fields)


class RecordSet(BaseModel):
    """An ordered batch of records plus paging metadata."""

    records: list[Record] = Attr(default_factory=list)
    result_count: int = 0
    page: int | None = None
    total_pages: int | None = None
    records_per_page: int | None = None
    known_size: bool = False

    def push(self, *records: Record) -> RecordSet:
        self.records.extend(records)
        self.result_count = len(self.records)
        return self

    def __iter__(self) -> Iterator[Record]:  # type: ignore[override]
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def ids(self) -> list[Any]:
        return [record.id for record in self.records]

    def values(self, field: str) -> list[Any]:
        return [record.get(field) for record in self.records]

    @classmethod
    def of(cls, *records: Record) -> RecordSet:
        return cls().push(*records)
