"""SQL statement generator.

Produces statement text with named placeholders (``:p0``, ``:p1``, ...) suitable
for ``sqlalchemy.text()``, plus the parallel parameter list.
"""

from __future__ import annotations

from typing import Any

from switchyard.dal.field import Field, FieldType
from switchyard.filter.filter import ROW_COUNT_FIELD, Aggregate, Aggregation, Operator
from switchyard.filter.generators.base import PARAM_PREFIX, CompiledQuery, Generator
from switchyard.filter.plan import PlannedCondition, QueryPlan

SUPPORTED_DIALECTS = ("sqlite", "postgresql", "mysql")

_COMPARISON_SQL = {
    Operator.GT: ">",
    Operator.GTE: ">=",
    Operator.LT: "<",
    Operator.LTE: "<=",
}

_AGGREGATE_SQL = {
    Aggregation.COUNT: "COUNT",
    Aggregation.SUM: "SUM",
    Aggregation.MINIMUM: "MIN",
    Aggregation.MAXIMUM: "MAX",
    Aggregation.AVERAGE: "AVG",
}

# MySQL has no "no limit" literal; this is its documented maximum
_MYSQL_MAX_LIMIT = "18446744073709551615"


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class _Params:
    """Collects bound values and hands out their placeholder names."""

    def __init__(self) -> None:
        self.values: list[Any] = []
        self.fields: list[Field | None] = []

    def bind(self, value: Any, field: Field | None = None) -> str:
        self.values.append(value)
        self.fields.append(field)
        return f":{PARAM_PREFIX}{len(self.values) - 1}"


class SqlGenerator(Generator):
    """Renders query plans as SQL for one dialect."""

    family = "sql"
    supports_aggregation = True
    supports_grouping = True

    def __init__(self, dialect: str = "sqlite") -> None:
        if dialect not in SUPPORTED_DIALECTS:
            raise ValueError(
                f"Unsupported SQL dialect '{dialect}'. Supported: {', '.join(SUPPORTED_DIALECTS)}"
            )
        self.dialect = dialect
        self._quote = "`" if dialect == "mysql" else '"'

    def __repr__(self) -> str:
        return f"SqlGenerator(dialect={self.dialect!r})"

    def quote(self, identifier: str) -> str:
        q = self._quote
        return f"{q}{identifier.replace(q, q + q)}{q}"

    def render(self, plan: QueryPlan) -> CompiledQuery:
        params = _Params()
        parts = [f"SELECT {self._select_list(plan)} FROM {self.quote(plan.table)}"]

        if where := self._where(plan, params):
            parts.append(f"WHERE {where}")

        if plan.group_by:
            parts.append("GROUP BY " + ", ".join(self.quote(f) for f in plan.group_by))

        if plan.sort:
            parts.append(
                "ORDER BY "
                + ", ".join(
                    f"{self.quote(key.field)} {'DESC' if key.descending else 'ASC'}"
                    for key in plan.sort
                )
            )

        if paging := self._paging(plan):
            parts.append(paging)

        return CompiledQuery(" ".join(parts), params.values, params.fields)

    def render_delete(self, plan: QueryPlan) -> CompiledQuery:
        params = _Params()
        statement = f"DELETE FROM {self.quote(plan.table)}"
        if where := self._where(plan, params):
            statement += f" WHERE {where}"
        return CompiledQuery(statement, params.values, params.fields)

    def render_distinct(self, plan: QueryPlan, field: str) -> CompiledQuery:
        params = _Params()
        column = self.quote(field)
        statement = f"SELECT DISTINCT {column} FROM {self.quote(plan.table)}"
        if where := self._where(plan, params):
            statement += f" WHERE {where}"
        statement += f" ORDER BY {column} ASC"
        if paging := self._paging(plan):
            statement += f" {paging}"
        return CompiledQuery(statement, params.values, params.fields)

    def _select_list(self, plan: QueryPlan) -> str:
        collection = plan.collection

        if plan.aggregates:
            columns = [self.quote(f) for f in plan.group_by]
            columns.extend(self._aggregate(agg) for agg in plan.aggregates)
            return ", ".join(columns)

        if plan.identity_only and collection.identity_field:
            return self.quote(collection.identity_field)

        if plan.projection:
            columns = [collection.identity_field] if collection.identity_field else []
            columns.extend(plan.projection)
            return ", ".join(self.quote(c) for c in columns)

        return "*"

    def _aggregate(self, agg: Aggregate) -> str:
        function = _AGGREGATE_SQL[agg.aggregation]
        target = "1" if agg.field == ROW_COUNT_FIELD else self.quote(agg.field)
        return f"{function}({target}) AS {self.quote(agg.alias)}"

    def _paging(self, plan: QueryPlan) -> str:
        if plan.limit is not None:
            clause = f"LIMIT {int(plan.limit)}"
            if plan.offset:
                clause += f" OFFSET {int(plan.offset)}"
            return clause
        if plan.offset:
            if self.dialect == "postgresql":
                return f"OFFSET {int(plan.offset)}"
            unbounded = _MYSQL_MAX_LIMIT if self.dialect == "mysql" else "-1"
            return f"LIMIT {unbounded} OFFSET {int(plan.offset)}"
        return ""

    def _where(self, plan: QueryPlan, params: _Params) -> str:
        clauses = [self._condition(c, params) for c in plan.conditions]
        return " AND ".join(clauses)

    def _like_target(self, condition: PlannedCondition) -> str:
        column = self.quote(condition.name)
        if self.dialect == "postgresql" and condition.field.type is not FieldType.STRING:
            return f"CAST({column} AS TEXT)"
        return column

    def _like_escape(self) -> str:
        return " ESCAPE '\\\\'" if self.dialect == "mysql" else " ESCAPE '\\'"

    def _condition(self, condition: PlannedCondition, params: _Params) -> str:
        column = self.quote(condition.name)
        field = condition.field
        op = condition.operator
        present = [v for v in condition.values if v is not None]
        has_null = len(present) != len(condition.values)

        if op in (Operator.IS, Operator.NOT):
            negate = op is Operator.NOT
            parts = []
            if len(present) == 1:
                parts.append(f"{column} {'<>' if negate else '='} {params.bind(present[0], field)}")
            elif present:
                placeholders = ", ".join(params.bind(v, field) for v in present)
                parts.append(f"{column} {'NOT IN' if negate else 'IN'} ({placeholders})")
            if has_null:
                parts.append(f"{column} IS {'NOT ' if negate else ''}NULL")
            return self._group(parts, " AND " if negate else " OR ")

        if op.is_comparison:
            symbol = _COMPARISON_SQL[op]
            clauses = [f"{column} {symbol} {params.bind(v, field)}" for v in present]
            return self._group(clauses, " OR ")

        target = self._like_target(condition)
        escape = self._like_escape()
        patterns = [self._pattern(op, str(v)) for v in present]

        if op is Operator.UNLIKE:
            return self._group(
                [f"{target} NOT LIKE {params.bind(p)}{escape}" for p in patterns], " AND "
            )
        return self._group([f"{target} LIKE {params.bind(p)}{escape}" for p in patterns], " OR ")

    @staticmethod
    def _pattern(op: Operator, value: str) -> str:
        escaped = escape_like(value)
        if op is Operator.CONTAINS:
            return f"%{escaped}%"
        if op is Operator.PREFIX:
            return f"{escaped}%"
        if op is Operator.SUFFIX:
            return f"%{escaped}"
        # like / unlike: '*' is the user-facing wildcard
        return escaped.replace("*", "%")

    @staticmethod
    def _group(parts: list[str], joiner: str) -> str:
        if len(parts) == 1:
            return parts[0]
        return "(" + joiner.join(parts) + ")"
