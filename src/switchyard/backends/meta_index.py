"""Joins composed from two independent searches.

A meta-index queries the left collection, collects the join values it found, and
queries the right collection for records whose join field is one of them. The two
result sets are then merged on equal keys. Both sides may live on different backends.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from switchyard.backends.base import Search
from switchyard.dal.collection import Collection
from switchyard.dal.record import Record, RecordSet
from switchyard.exceptions import InvalidJoinError, ParseError
from switchyard.filter.filter import Condition, Filter, Operator

logger = logging.getLogger(__name__)

JOIN_SEPARATOR = ":"
MAX_JOINED_COLLECTIONS = 2


@dataclass(frozen=True)
class JoinSide:
    collection: str
    field: str

    def __str__(self) -> str:
        return f"{self.collection}.{self.field}"


@dataclass(frozen=True)
class JoinSpec:
    """``left.field:right.field``"""

    left: JoinSide
    right: JoinSide

    def __str__(self) -> str:
        return f"{self.left}{JOIN_SEPARATOR}{self.right}"


def is_join_spec(spec: str) -> bool:
    return JOIN_SEPARATOR in spec


def parse_join_spec(spec: str) -> JoinSpec:
    """Parse ``"a.x:b.y"`` into a JoinSpec.

    Raises:
        InvalidJoinError: If more than two collections are named
        ParseError: If a side is not of the form ``collection.field``
    """
    parts = spec.split(JOIN_SEPARATOR)
    if len(parts) > MAX_JOINED_COLLECTIONS:
        raise InvalidJoinError(spec)
    if len(parts) != MAX_JOINED_COLLECTIONS:
        raise ParseError(f"Join '{spec}' must name two collections as 'a.field:b.field'", spec)

    sides = []
    for part in parts:
        collection, _, field = part.strip().partition(".")
        if not collection or not field:
            raise ParseError(
                f"Join side '{part}' must be of the form 'collection.field'", spec
            )
        sides.append(JoinSide(collection, field))

    return JoinSpec(sides[0], sides[1])


def _join_value(collection: Collection, record: Record, field: str) -> Any:
    return record.id if collection.is_identity(field) else record.get(field)


class MetaIndex(Search):
    """Search over the inner join of two collections."""

    def __init__(
        self,
        join: JoinSpec,
        left: Search,
        right: Search,
        right_collection: Collection,
    ) -> None:
        self.join = join
        self.left = left
        self.right = right
        self.right_collection = right_collection

    def __repr__(self) -> str:
        return f"MetaIndex({str(self.join)!r})"

    def _key(self, value: Any) -> Any:
        """A join value in the right field's type, or None when it has none."""
        try:
            return self.right_collection.convert_value(self.join.right.field, value)
        except ValueError:
            return None

    def query(self, collection: Collection, flt: Filter) -> RecordSet:
        """Run ``flt`` on the left collection and attach matching right records.

        Merged records keep the left id and fields; right fields are added as
        ``<right collection>.<field>``.
        """
        left_field = collection.require_field(self.join.left.field).name
        right_field = self.right_collection.require_field(self.join.right.field).name

        left_records = self.left.query(collection, flt)

        keys: list[Any] = []
        for record in left_records:
            value = self._key(_join_value(collection, record, left_field))
            if value is not None and value not in keys:
                keys.append(value)

        merged = RecordSet(
            page=left_records.page, records_per_page=left_records.records_per_page
        )
        if not keys:
            return merged

        right_filter = Filter(
            criteria=[Condition(right_field, Operator.IS, tuple(keys))], match_all=True
        )
        right_records = self.right.query(self.right_collection, right_filter)

        by_key: dict[Any, list[Record]] = defaultdict(list)
        for record in right_records:
            key = self._key(_join_value(self.right_collection, record, right_field))
            by_key[key].append(record)

        prefix = self.right_collection.name
        for left in left_records:
            key = self._key(_join_value(collection, left, left_field))
            if key is None:
                continue
            for right in by_key.get(key, []):
                fields = dict(left.fields)
                if self.right_collection.identity_field:
                    fields[f"{prefix}.{self.right_collection.identity_field}"] = right.id
                fields.update({f"{prefix}.{k}": v for k, v in right.fields.items()})
                merged.push(Record(id=left.id, fields=fields))

        logger.debug(
            "Joined %d left and %d right records into %d",
            len(left_records),
            len(right_records),
            len(merged),
        )
        return merged

    def list_values(
        self, collection: Collection, field_names: list[str], flt: Filter
    ) -> dict[str, list[Any]]:
        return self.left.list_values(collection, field_names, flt)
