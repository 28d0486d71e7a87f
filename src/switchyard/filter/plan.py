"""Normalization of a Filter against a Collection.

``plan()`` is the only place that looks at both: it resolves every referenced field,
coerces condition values to the field types and freezes the result into a
``QueryPlan`` that generators render without further lookups.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from switchyard.dal.collection import Collection
from switchyard.dal.field import Field, FieldType
from switchyard.exceptions import ParseError, UnknownFieldError
from switchyard.filter.filter import (
    ROW_COUNT_FIELD,
    Aggregate,
    Aggregation,
    Condition,
    Filter,
    Operator,
)


@dataclass(frozen=True)
class PlannedCondition:
    field: Field
    operator: Operator
    values: tuple[Any, ...]

    @property
    def name(self) -> str:
        return self.field.name


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class QueryPlan:
    """A validated, backend-neutral query ready for rendering."""

    collection: Collection
    conditions: tuple[PlannedCondition, ...] = ()
    projection: tuple[str, ...] = ()
    sort: tuple[SortKey, ...] = ()
    limit: int | None = None
    offset: int = 0
    identity_only: bool = False
    group_by: tuple[str, ...] = ()
    aggregates: tuple[Aggregate, ...] = ()

    @property
    def table(self) -> str:
        return self.collection.name

    @property
    def is_aggregate(self) -> bool:
        return bool(self.aggregates)


def _coerce_values(field: Field, condition: Condition) -> tuple[Any, ...]:
    if condition.operator.is_pattern:
        # patterns stay textual whatever the column type
        return tuple(None if v is None else str(v) for v in condition.values)

    values = []
    for value in condition.values:
        try:
            values.append(field.convert_value(value))
        except ValueError as e:
            raise ParseError(
                f"Value {value!r} for field '{field.name}' is not a valid {field.type}: {e}",
                str(condition),
            ) from e
    return tuple(values)


def _plan_condition(collection: Collection, condition: Condition) -> PlannedCondition:
    field = collection.require_field(condition.field)

    if not condition.values:
        raise ParseError(f"Condition on '{condition.field}' has no values", str(condition))
    if (condition.operator.is_comparison or condition.operator.is_pattern) and (
        None in condition.values
    ):
        raise ParseError(
            f"Operator '{condition.operator}' cannot compare against null", str(condition)
        )

    return PlannedCondition(field, condition.operator, _coerce_values(field, condition))


def _plan_sort(collection: Collection, entries: list[str]) -> tuple[SortKey, ...]:
    keys = []
    for entry in entries:
        entry = entry.strip()
        if not entry:
            continue
        descending = entry.startswith("-")
        name = entry.lstrip("+-")
        collection.require_field(name)
        keys.append(SortKey(name, descending))
    return tuple(keys)


def _plan_aggregates(collection: Collection, aggregates: list[Aggregate]) -> tuple[Aggregate, ...]:
    planned = []
    for agg in aggregates:
        aggregation = Aggregation(agg.aggregation)
        if agg.field == ROW_COUNT_FIELD:
            if aggregation is not Aggregation.COUNT:
                raise UnknownFieldError(agg.field, collection.name, collection.field_names)
        else:
            field = collection.require_field(agg.field)
            if aggregation in (Aggregation.SUM, Aggregation.AVERAGE) and field.type not in (
                FieldType.INT,
                FieldType.FLOAT,
                FieldType.BOOL,
            ):
                raise ParseError(
                    f"Cannot {aggregation} non-numeric field '{agg.field}' ({field.type})"
                )
        planned.append(Aggregate(aggregation, agg.field))
    return tuple(planned)


def plan(collection: Collection, flt: Filter, default_limit: int | None = None) -> QueryPlan:
    """Validate ``flt`` against ``collection`` and freeze it.

    Raises:
        UnknownFieldError: If a condition, sort key, projection, group or aggregate
            names an undeclared field
        ParseError: If a value cannot be coerced to its field's type
    """
    conditions = tuple(_plan_condition(collection, c) for c in flt.criteria)

    projection = []
    for name in flt.fields:
        collection.require_field(name)
        if not collection.is_identity(name) and name not in projection:
            projection.append(name)

    for name in flt.group_by:
        collection.require_field(name)

    sort = _plan_sort(collection, flt.sort)
    aggregates = _plan_aggregates(collection, flt.aggregates)

    if aggregates:
        # ordering an aggregate only makes sense over its groups
        sort = tuple(key for key in sort if key.field in flt.group_by)

    return QueryPlan(
        collection=collection,
        conditions=conditions,
        projection=tuple(projection),
        sort=sort,
        limit=flt.effective_limit(default_limit),
        offset=max(flt.offset, 0),
        identity_only=flt.identity_only,
        group_by=tuple(flt.group_by),
        aggregates=aggregates,
    )
