"""Backend-neutral query descriptions."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from urllib.parse import quote

from switchyard.dal.field import FieldType


class Operator(StrEnum):
    """Condition operators."""

    IS = "is"
    NOT = "not"
    CONTAINS = "contains"
    PREFIX = "prefix"
    SUFFIX = "suffix"
    LIKE = "like"
    UNLIKE = "unlike"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"

    @property
    def is_comparison(self) -> bool:
        return self in (Operator.GT, Operator.GTE, Operator.LT, Operator.LTE)

    @property
    def is_pattern(self) -> bool:
        return self in (
            Operator.CONTAINS,
            Operator.PREFIX,
            Operator.SUFFIX,
            Operator.LIKE,
            Operator.UNLIKE,
        )


# Alternate spellings accepted by the parsers
OPERATOR_ALIASES: dict[str, Operator] = {
    "eq": Operator.IS,
    "in": Operator.IS,
    "ne": Operator.NOT,
}


def lookup_operator(name: str) -> Operator | None:
    name = name.strip().lower()
    try:
        return Operator(name)
    except ValueError:
        return OPERATOR_ALIASES.get(name)


class Aggregation(StrEnum):
    """Aggregate functions."""

    COUNT = "count"
    SUM = "sum"
    MINIMUM = "min"
    MAXIMUM = "max"
    AVERAGE = "avg"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid aggregation names."""
        return [a.value for a in cls]


# Pseudo-field meaning "count rows" rather than a column
ROW_COUNT_FIELD = "1"


@dataclass(frozen=True)
class Aggregate:
    """A single aggregate function applied to one field."""

    aggregation: Aggregation
    field: str

    @property
    def alias(self) -> str:
        return f"{self.aggregation}_{self.field}"


@dataclass(frozen=True)
class Condition:
    """``field <operator> values``; several values are alternatives (OR / IN)."""

    field: str
    operator: Operator = Operator.IS
    values: tuple[Any, ...] = ()
    type: FieldType | None = None

    def __str__(self) -> str:
        name = f"{self.type}:{self.field}" if self.type else self.field
        rendered = "|".join("null" if v is None else quote(str(v), safe="") for v in self.values)
        return f"{name}/{self.operator}/{rendered}"


@dataclass
class Filter:
    """Conditions, sort, paging, projection and an optional aggregation request.

    ``limit`` is None until someone sets it. ``match_all`` is only set by the
    literal ``all`` query and makes an unset limit mean "no limit".
    """

    criteria: list[Condition] = field(default_factory=list)
    sort: list[str] = field(default_factory=list)
    fields: list[str] = field(default_factory=list)
    limit: int | None = None
    offset: int = 0
    identity_only: bool = False
    match_all: bool = False
    group_by: list[str] = field(default_factory=list)
    aggregates: list[Aggregate] = field(default_factory=list)

    @classmethod
    def all(cls) -> Filter:
        return cls(match_all=True)

    @classmethod
    def parse(cls, query: str) -> Filter:
        from switchyard.filter.parse import parse

        return parse(query)

    @classmethod
    def from_map(cls, data: dict[str, Any]) -> Filter:
        from switchyard.filter.parse import from_map

        return from_map(data)

    def where(
        self, field_name: str, operator: Operator | str = Operator.IS, *values: Any
    ) -> Filter:
        """Append a condition (fluent)."""
        op = operator if isinstance(operator, Operator) else Operator(operator)
        self.criteria.append(Condition(field_name, op, tuple(values)))
        return self

    def copy(self, **changes: Any) -> Filter:
        """Return a copy; list attributes are duplicated, never shared."""
        base = {
            "criteria": list(self.criteria),
            "sort": list(self.sort),
            "fields": list(self.fields),
            "group_by": list(self.group_by),
            "aggregates": list(self.aggregates),
        }
        base.update(changes)
        return dataclasses.replace(self, **base)

    def with_aggregation(
        self, group_by: list[str] | None, aggregates: list[Aggregate]
    ) -> Filter:
        return self.copy(group_by=list(group_by or []), aggregates=list(aggregates))

    def with_default_limit(self, default: int | None) -> Filter:
        if self.limit is None and not self.match_all and default:
            return self.copy(limit=default)
        return self

    def effective_limit(self, default: int | None = None) -> int | None:
        """Limit to render: positive ``limit`` wins, ``all`` means none, else default."""
        if self.limit is not None and self.limit > 0:
            return self.limit
        if self.match_all:
            return None
        if default is not None and default > 0:
            return default
        return None

    @property
    def is_match_all(self) -> bool:
        return not self.criteria

    @property
    def is_aggregate(self) -> bool:
        return bool(self.aggregates)

    def condition_for(self, field_name: str) -> Condition | None:
        for condition in self.criteria:
            if condition.field == field_name:
                return condition
        return None

    def __str__(self) -> str:
        if not self.criteria:
            return "all"
        return "/".join(str(c) for c in self.criteria)
