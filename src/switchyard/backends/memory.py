"""In-process backend keeping records in dictionaries.

Supports searching but not aggregation or migration, which makes it the reference
backend for capability checks. Plans are evaluated in Python with the same
semantics the SQL generator renders.
"""

from __future__ import annotations

import copy
import itertools
import logging
import re
import threading
from collections.abc import Iterable
from typing import Any
from uuid import uuid4

from switchyard.backends.base import Backend, Capability, Search, as_records
from switchyard.dal.collection import Collection
from switchyard.dal.field import FieldType
from switchyard.dal.record import Record, RecordSet
from switchyard.exceptions import (
    CollectionExistsError,
    CollectionNotFoundError,
    ExistsError,
    InvalidInputError,
    RecordNotFoundError,
)
from switchyard.filter.filter import Filter, Operator
from switchyard.filter.plan import PlannedCondition, QueryPlan, plan

logger = logging.getLogger(__name__)


def _pattern_regex(op: Operator, value: str) -> re.Pattern[str]:
    escaped = re.escape(value)
    if op is Operator.CONTAINS:
        pattern = f".*{escaped}.*"
    elif op is Operator.PREFIX:
        pattern = f"{escaped}.*"
    elif op is Operator.SUFFIX:
        pattern = f".*{escaped}"
    else:
        pattern = escaped.replace(r"\*", ".*")
    return re.compile(pattern, re.DOTALL)


def _compare(op: Operator, left: Any, right: Any) -> bool:
    if left is None:
        return False
    try:
        if op is Operator.GT:
            return left > right
        if op is Operator.GTE:
            return left >= right
        if op is Operator.LT:
            return left < right
        return left <= right
    except TypeError:
        return False


def matches(condition: PlannedCondition, value: Any) -> bool:
    """Evaluate one planned condition against a stored value."""
    op = condition.operator

    if op is Operator.IS:
        return value in condition.values
    if op is Operator.NOT:
        return value not in condition.values
    if op.is_comparison:
        return any(_compare(op, value, v) for v in condition.values)

    if value is None:
        return op is Operator.UNLIKE
    text = value if isinstance(value, str) else str(value)
    hits = [_pattern_regex(op, v).fullmatch(text) is not None for v in condition.values]
    if op is Operator.UNLIKE:
        return not any(hits)
    return any(hits)


def _sort_key(value: Any) -> tuple[int, Any]:
    # nulls first, as SQLite orders them
    return (0, 0) if value is None else (1, value)


class _Table:
    def __init__(self, collection: Collection) -> None:
        self.collection = collection
        self.rows: dict[Any, dict[str, Any]] = {}
        self.sequence = itertools.count(1)

    def next_id(self) -> Any:
        if self.collection.identity_field_type == FieldType.STRING:
            return str(uuid4())
        identity = next(self.sequence)
        while identity in self.rows:
            identity = next(self.sequence)
        return identity


class MemoryBackend(Search, Backend):
    """Dictionary-backed store; collections exist only for the life of the process."""

    def __init__(self) -> None:
        super().__init__()
        self._lock = threading.RLock()
        self._tables: dict[str, _Table] = {}

    def initialize(self) -> None:
        logger.debug("Memory backend ready")

    def close(self) -> None:
        with self._lock:
            self._tables.clear()

    def _table(self, name: str) -> _Table:
        table = self._tables.get(name)
        if table is None:
            raise CollectionNotFoundError(name, self.list_collections())
        return table

    def get_collection(self, name: str) -> Collection:
        """The definition the collection was created with."""
        with self._lock:
            return self._table(name).collection

    def create_collection(self, collection: Collection) -> None:
        with self._lock:
            if collection.name in self._tables:
                raise CollectionExistsError(collection.name)
            self._tables[collection.name] = _Table(collection)
        self.register_collection(collection)

    def delete_collection(self, name: str) -> None:
        with self._lock:
            self._table(name)
            del self._tables[name]
        self.registry.unregister(name)

    def list_collections(self) -> list[str]:
        return sorted(self._tables)

    def insert(self, name: str, records: RecordSet | Record | Iterable[Record]) -> None:
        collection = self.get_collection(name)
        originals = as_records(records)
        prepared = [collection.prepare_record(r) for r in originals]

        with self._lock:
            table = self._table(name)
            for record in prepared:
                if record.id is not None and record.id in table.rows:
                    raise ExistsError(
                        f"Record '{record.id}' already exists in '{name}'",
                        {"collection": name, "id": record.id},
                    )
            for original, record in zip(originals, prepared, strict=True):
                record_id = record.id if record.id is not None else table.next_id()
                table.rows[record_id] = copy.deepcopy(record.fields)
                original.id = record_id

    def update(self, name: str, records: RecordSet | Record | Iterable[Record]) -> None:
        collection = self.get_collection(name)

        prepared = []
        for record in as_records(records):
            if record.id is None:
                raise InvalidInputError(record, f"Cannot update a record of '{name}' without an id")
            prepared.append(collection.prepare_record(record, partial=True))

        with self._lock:
            table = self._table(name)
            for record in prepared:
                if record.id not in table.rows:
                    raise RecordNotFoundError(record.id, name)
            for record in prepared:
                table.rows[record.id].update(copy.deepcopy(record.fields))

    def _convert_id(self, collection: Collection, record_id: Any) -> Any:
        try:
            return collection.identity_as_field().convert_value(record_id)
        except ValueError as e:
            raise InvalidInputError(record_id, str(e)) from e

    def retrieve(self, name: str, record_id: Any, fields: list[str] | None = None) -> Record:
        collection = self.get_collection(name)
        record_id = self._convert_id(collection, record_id)
        with self._lock:
            row = self._table(name).rows.get(record_id)
            if row is None:
                raise RecordNotFoundError(record_id, name)
            values = copy.deepcopy(row)

        if fields:
            wanted = [collection.require_field(f).name for f in fields]
            values = {k: v for k, v in values.items() if k in wanted}
        return Record(id=record_id, fields=values)

    def exists(self, name: str, record_id: Any) -> bool:
        collection = self.get_collection(name)
        with self._lock:
            return self._convert_id(collection, record_id) in self._table(name).rows

    def delete(self, name: str, *ids: Any) -> None:
        collection = self.get_collection(name)

        if len(ids) == 1 and isinstance(ids[0], Filter):
            doomed = [r.id for r in self._select(plan(collection, ids[0]))]
        else:
            doomed = [self._convert_id(collection, i) for i in ids]

        with self._lock:
            rows = self._table(name).rows
            for record_id in doomed:
                rows.pop(record_id, None)

    def _select(self, query_plan: QueryPlan) -> list[Record]:
        collection = query_plan.collection

        with self._lock:
            rows = [
                (record_id, copy.deepcopy(values))
                for record_id, values in self._table(collection.name).rows.items()
            ]

        def value_of(record_id: Any, values: dict[str, Any], name: str) -> Any:
            return record_id if collection.is_identity(name) else values.get(name)

        selected = [
            (record_id, values)
            for record_id, values in rows
            if all(
                matches(c, value_of(record_id, values, c.name)) for c in query_plan.conditions
            )
        ]

        # stable sorts applied last key first
        for key in reversed(query_plan.sort):
            selected.sort(
                key=lambda item, name=key.field: _sort_key(value_of(item[0], item[1], name)),
                reverse=key.descending,
            )

        end = None if query_plan.limit is None else query_plan.offset + query_plan.limit
        selected = selected[query_plan.offset : end]

        records = []
        for record_id, values in selected:
            if query_plan.identity_only:
                values = {}
            elif query_plan.projection:
                values = {k: v for k, v in values.items() if k in query_plan.projection}
            records.append(Record(id=record_id, fields=values))
        return records

    def query(self, collection: Collection, flt: Filter) -> RecordSet:
        if flt.aggregates or flt.group_by:
            self.require(Capability.AGGREGATOR)
        query_plan = plan(collection, flt)
        recordset = RecordSet.of(*self._select(query_plan))
        if query_plan.limit:
            recordset.records_per_page = query_plan.limit
            recordset.page = query_plan.offset // query_plan.limit + 1
        return recordset

    def list_values(
        self, collection: Collection, field_names: list[str], flt: Filter
    ) -> dict[str, list[Any]]:
        paging = plan(collection, flt)
        unbounded = flt.copy(limit=None, offset=0, match_all=True, sort=[], fields=[])
        records = self._select(plan(collection, unbounded))

        values: dict[str, list[Any]] = {}
        for name in field_names:
            collection.require_field(name)
            seen: list[Any] = []
            for record in records:
                value = record.id if collection.is_identity(name) else record.get(name)
                if value not in seen:
                    seen.append(value)
            end = None if paging.limit is None else paging.offset + paging.limit
            values[name] = sorted(seen, key=_sort_key)[paging.offset : end]
        return values
