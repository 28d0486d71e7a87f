"""Aggregates for the SQL backend."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from switchyard.backends.base import Aggregator
from switchyard.dal.collection import Collection
from switchyard.dal.record import Record, RecordSet
from switchyard.filter.filter import ROW_COUNT_FIELD, Aggregate, Aggregation, Filter
from switchyard.filter.generators import render

if TYPE_CHECKING:
    from sqlalchemy.engine import CursorResult

    from switchyard.filter.generators import CompiledQuery, SqlGenerator


def _first_cell(result: CursorResult[Any]) -> Any:
    row = result.first()
    return None if row is None else row[0]


class SqlAggregator(Aggregator):
    """Aggregator mixin; relies on the host backend's ``generator`` and ``execute``."""

    generator: SqlGenerator
    execute: Callable[..., Any]

    def _aggregate(
        self,
        collection: Collection,
        aggregates: list[Aggregate],
        flt: Filter | None,
        group_by: list[str] | None = None,
        extract: Callable[[CursorResult[Any]], Any] | None = None,
    ) -> Any:
        flt = (flt or Filter()).with_aggregation(group_by or [], aggregates)
        compiled: CompiledQuery = render(self.generator, collection, flt)
        return self.execute(compiled, extract)

    def _scalar(
        self, aggregation: Aggregation, collection: Collection, field: str, flt: Filter | None
    ) -> float:
        value = self._aggregate(
            collection, [Aggregate(aggregation, field)], flt, extract=_first_cell
        )
        # aggregates over no rows are NULL
        return 0.0 if value is None else float(value)

    def count(self, collection: Collection, flt: Filter | None = None) -> int:
        target = collection.identity_field or ROW_COUNT_FIELD
        value = self._aggregate(
            collection, [Aggregate(Aggregation.COUNT, target)], flt, extract=_first_cell
        )
        return int(value or 0)

    def sum(self, collection: Collection, field: str, flt: Filter | None = None) -> float:
        return self._scalar(Aggregation.SUM, collection, field, flt)

    def minimum(self, collection: Collection, field: str, flt: Filter | None = None) -> float:
        return self._scalar(Aggregation.MINIMUM, collection, field, flt)

    def maximum(self, collection: Collection, field: str, flt: Filter | None = None) -> float:
        return self._scalar(Aggregation.MAXIMUM, collection, field, flt)

    def average(self, collection: Collection, field: str, flt: Filter | None = None) -> float:
        return self._scalar(Aggregation.AVERAGE, collection, field, flt)

    def group_by(
        self,
        collection: Collection,
        group_by: list[str],
        aggregates: list[Aggregate],
        flt: Filter | None = None,
    ) -> RecordSet:
        """One record per group: the group values plus each aggregate under its alias."""
        rows = self._aggregate(collection, aggregates, flt, group_by=group_by)

        recordset = RecordSet()
        for row in rows:
            record = Record()
            for key, value in row.items():
                if key in group_by:
                    record.fields[key] = collection.convert_value(key, value)
                else:
                    record.fields[key] = value
            recordset.push(record)
        return recordset
